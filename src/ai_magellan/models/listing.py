# models/listing.py
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime

from ai_magellan.core.timeutil import utcnow
from ai_magellan.db.session import Base

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
MODERATION_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)

# liveness encoding of Listing.active; NULL means never checked
ACTIVE_ONLINE = 1
ACTIVE_OFFLINE = 0


class Listing(Base):
    __tablename__ = "listings"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    url = Column(String(500), nullable=False, unique=True)
    description = Column(Text, nullable=False, default="")

    status = Column(String(20), nullable=False, default=STATUS_PENDING, index=True)

    active = Column(Integer, nullable=True)  # 1/0/NULL
    last_checked = Column(DateTime, nullable=True, index=True)
    dead_since = Column(DateTime, nullable=True)  # start of the current unreachable streak
    response_time_ms = Column(Integer, nullable=True)
    ssl_enabled = Column(Boolean, default=False, nullable=False)

    quality_score = Column(Integer, default=50, nullable=False)
    is_trusted = Column(Boolean, default=False, nullable=False)

    submitted_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
