from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC now; all timestamp columns store naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_utc(dt):
    if dt is None:
        return None
    return dt.replace(microsecond=0).isoformat() + "Z"
