# worker/stats.py
from sqlalchemy import func
from sqlalchemy.orm import Session

from ai_magellan.core.timeutil import isoformat_utc, utcnow
from ai_magellan.models import Listing
from ai_magellan.models.listing import ACTIVE_OFFLINE, ACTIVE_ONLINE, STATUS_APPROVED


def collect_stats(db: Session, recent_limit: int = 10) -> dict:
    """
    Liveness snapshot of approved listings, recomputed on every call:
    - online/offline/unknown counts
    - average response time over listings that have one
    - the most recently checked listings
    """
    counts = dict(
        db.query(Listing.active, func.count(Listing.id))
        .filter(Listing.status == STATUS_APPROVED)
        .group_by(Listing.active)
        .all()
    )

    avg = (
        db.query(func.avg(Listing.response_time_ms))
        .filter(
            Listing.status == STATUS_APPROVED,
            Listing.response_time_ms.isnot(None),
        )
        .scalar()
    )

    recent = (
        db.query(Listing)
        .filter(
            Listing.status == STATUS_APPROVED,
            Listing.last_checked.isnot(None),
        )
        .order_by(Listing.last_checked.desc(), Listing.id.desc())
        .limit(recent_limit)
        .all()
    )

    return {
        "stats": {
            "online": counts.get(ACTIVE_ONLINE, 0),
            "offline": counts.get(ACTIVE_OFFLINE, 0),
            "unknown": counts.get(None, 0),
            "averageResponseTime": round(float(avg), 2) if avg is not None else 0,
        },
        "recentChecks": [
            {
                "id": listing.id,
                "url": listing.url,
                "active": listing.active,
                "responseTime": listing.response_time_ms,
                "lastChecked": isoformat_utc(listing.last_checked),
                "sslEnabled": listing.ssl_enabled,
            }
            for listing in recent
        ],
        "lastUpdate": isoformat_utc(utcnow()),
    }
