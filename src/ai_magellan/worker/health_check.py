# worker/health_check.py
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

import httpx
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ai_magellan.core.config import settings
from ai_magellan.core.timeutil import utcnow
from ai_magellan.errors import PersistenceError
from ai_magellan.models import Listing
from ai_magellan.models.listing import ACTIVE_OFFLINE, ACTIVE_ONLINE, STATUS_APPROVED
from ai_magellan.worker.checker import (
    PROBE_ERROR,
    PROBE_OFFLINE,
    PROBE_ONLINE,
    PROBE_SLOW,
    ProbeResult,
    probe_batch,
)

logger = logging.getLogger(__name__)

QUALITY_DELTA = {
    PROBE_ONLINE: 1,
    PROBE_SLOW: 0,
    PROBE_OFFLINE: -2,
    PROBE_ERROR: -2,
}


@dataclass(frozen=True)
class BatchItem:
    id: int
    url: str


@dataclass
class RunCounters:
    """Outcome counters for a single health-check run."""

    checked: int = 0
    online: int = 0
    slow: int = 0
    offline: int = 0
    error: int = 0
    write_failures: int = 0

    def record(self, result: ProbeResult) -> None:
        self.checked += 1
        setattr(self, result.status, getattr(self, result.status) + 1)


@dataclass
class HealthCheckSummary:
    counters: RunCounters
    dead_links: List[Tuple[str, Optional[str]]] = field(default_factory=list)

    def as_dict(self) -> dict:
        c = self.counters
        return {
            "checked": c.checked,
            "online": c.online,
            "slow": c.slow,
            "offline": c.offline,
            "error": c.error,
            "writeFailures": c.write_failures,
            "deadLinks": [{"url": url, "error": err} for url, err in self.dead_links],
        }


def select_batch(db: Session, limit: int) -> List[BatchItem]:
    """
    Approved listings due for a probe: never-checked first, then the ones
    checked longest ago.
    """
    if limit <= 0:
        return []
    limit = min(limit, settings.max_batch_limit)

    rows = (
        db.query(Listing.id, Listing.url)
        .filter(Listing.status == STATUS_APPROVED)
        .order_by(
            Listing.last_checked.asc().nulls_first(),
            Listing.updated_at.desc(),
            Listing.id.asc(),
        )
        .limit(limit)
        .all()
    )
    return [BatchItem(id=row.id, url=row.url) for row in rows]


def write_status(db: Session, listing_id: int, result: ProbeResult, now: datetime) -> None:
    values = {
        Listing.active: ACTIVE_ONLINE if result.alive else ACTIVE_OFFLINE,
        Listing.last_checked: now,
        # first failure of a dead streak starts the clock, recovery clears it
        Listing.dead_since: None if result.alive else func.coalesce(Listing.dead_since, now),
        Listing.response_time_ms: result.response_time_ms,
        Listing.ssl_enabled: result.ssl_enabled,
        Listing.quality_score: Listing.quality_score + QUALITY_DELTA[result.status],
        Listing.updated_at: now,
    }
    try:
        updated = (
            db.query(Listing)
            .filter(
                Listing.id == listing_id,
                Listing.status == STATUS_APPROVED,
                or_(Listing.last_checked.is_(None), Listing.last_checked <= now),
            )
            .update(values, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(listing_id, str(e)) from e

    if updated == 0:
        raise PersistenceError(listing_id, "listing missing, no longer approved, or checked more recently")


def run_health_check(
    db: Session,
    limit: Optional[int] = None,
    client: Optional[httpx.Client] = None,
    counters: Optional[RunCounters] = None,
) -> HealthCheckSummary:
    """
    select -> probe -> write, one listing at a time. A failed probe or write
    for one listing never stops the rest of the batch.
    """
    if limit is None:
        limit = settings.default_batch_limit
    if counters is None:
        counters = RunCounters()
    summary = HealthCheckSummary(counters=counters)

    batch = select_batch(db, limit)
    if not batch:
        logger.info("No listings to check")
        return summary

    logger.info("Checking %d listings...", len(batch))

    for item, result in probe_batch(batch, client=client):
        counters.record(result)

        logger.info(
            "Listing %s (%s) -> %s http=%s time_ms=%s ssl=%s err=%s",
            item.id,
            item.url,
            result.status,
            result.status_code,
            result.response_time_ms,
            result.ssl_enabled,
            result.error,
        )

        if not result.alive:
            summary.dead_links.append((item.url, result.error))

        try:
            write_status(db, item.id, result, utcnow())
        except PersistenceError as e:
            counters.write_failures += 1
            logger.error("Failed to update listing status: %s", e)

    logger.info(
        "Health check results: checked=%d online=%d slow=%d offline=%d error=%d write_failures=%d",
        counters.checked,
        counters.online,
        counters.slow,
        counters.offline,
        counters.error,
        counters.write_failures,
    )
    if summary.dead_links:
        logger.warning(
            "Found %d unreachable listings: %s",
            len(summary.dead_links),
            ", ".join(f"{url} ({err})" for url, err in summary.dead_links),
        )

    return summary
