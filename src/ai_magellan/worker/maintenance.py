# worker/maintenance.py
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ai_magellan.core.config import settings
from ai_magellan.core.timeutil import utcnow
from ai_magellan.models import Listing
from ai_magellan.models.listing import ACTIVE_OFFLINE, STATUS_APPROVED

logger = logging.getLogger(__name__)


def cleanup_dead_links(db: Session, now: Optional[datetime] = None) -> int:
    """
    Penalize approved listings that have been unreachable without a break
    for longer than the grace period: lower quality_score and drop the
    trusted flag. Nothing is deleted.
    """
    if now is None:
        now = utcnow()
    cutoff = now - timedelta(days=settings.dead_link_grace_days)

    suspicious = (
        db.query(Listing)
        .filter(
            Listing.status == STATUS_APPROVED,
            Listing.active == ACTIVE_OFFLINE,
            Listing.dead_since < cutoff,
        )
        .all()
    )

    if not suspicious:
        logger.info("No long-dead listings found")
        return 0

    for listing in suspicious:
        listing.quality_score = listing.quality_score - settings.dead_link_quality_penalty
        listing.is_trusted = False
        logger.info("Penalized long-dead listing %s (%s)", listing.id, listing.url)

    db.commit()
    logger.info("Lowered quality score of %d long-dead listings", len(suspicious))
    return len(suspicious)
