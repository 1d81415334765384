import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ai_magellan.db.session import Base, engine
from ai_magellan.api.deps import get_db, get_http_client, require_admin_token
from ai_magellan.api.schemas import HealthCheckRequest, ListingModerate, ListingSubmit
from ai_magellan.core.config import APP_VERSION, settings
from ai_magellan.core.init_data import init_data, normalize_url, unique_slug
from ai_magellan.core.timeutil import isoformat_utc, utcnow
from ai_magellan.models import Listing
from ai_magellan.models.listing import STATUS_PENDING
from ai_magellan.worker.health_check import run_health_check
from ai_magellan.worker.stats import collect_stats

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    Base.metadata.create_all(bind=engine)
    init_data()
    yield
    # Shutdown (if needed)


app = FastAPI(title="AI Magellan", lifespan=lifespan)


def _listing_out(listing: Listing) -> dict:
    return {
        "id": listing.id,
        "title": listing.title,
        "slug": listing.slug,
        "url": listing.url,
        "description": listing.description,
        "status": listing.status,
        "active": listing.active,
        "lastChecked": isoformat_utc(listing.last_checked),
        "responseTime": listing.response_time_ms,
        "sslEnabled": listing.ssl_enabled,
        "qualityScore": listing.quality_score,
        "isTrusted": listing.is_trusted,
        "submittedBy": listing.submitted_by,
        "createdAt": isoformat_utc(listing.created_at),
    }


@app.get("/health")
def healthcheck():
    return {"status": "ok", "service": "AIMagellan", "version": APP_VERSION}


@app.post("/api/admin/health-check", dependencies=[Depends(require_admin_token)])
def trigger_health_check(
    payload: Optional[HealthCheckRequest] = None,
    db: Session = Depends(get_db),
    client: httpx.Client = Depends(get_http_client),
):
    """
    On-demand health check of up to `limit` approved listings
    (default settings.default_batch_limit). limit <= 0 is a no-op.
    """
    limit = settings.default_batch_limit
    if payload is not None and payload.limit is not None:
        limit = payload.limit

    try:
        summary = run_health_check(db, limit=limit, client=client)
    except Exception:
        logger.exception("Health check API error")
        raise HTTPException(status_code=500, detail="Health check failed")

    return {
        "success": True,
        "message": "Health check completed",
        "timestamp": isoformat_utc(utcnow()),
        "summary": summary.as_dict(),
    }


@app.get("/api/admin/health-check", dependencies=[Depends(require_admin_token)])
def health_check_stats(db: Session = Depends(get_db)):
    try:
        return collect_stats(db)
    except Exception:
        logger.exception("Health check stats error")
        raise HTTPException(status_code=500, detail="Failed to get health check stats")


@app.post("/api/listings", status_code=201)
def submit_listing(payload: ListingSubmit, db: Session = Depends(get_db)):
    """New submissions start as pending until an administrator moderates them."""
    url = normalize_url(str(payload.url))
    if db.query(Listing.id).filter(Listing.url == url).first() is not None:
        raise HTTPException(status_code=409, detail="Listing with this url already exists")

    listing = Listing(
        title=payload.title,
        slug=unique_slug(db, payload.title),
        url=url,
        description=payload.description,
        status=STATUS_PENDING,
        submitted_by=payload.submitted_by,
    )
    db.add(listing)
    db.commit()
    db.refresh(listing)
    logger.info("Listing submitted: %s (%s)", listing.id, url)
    return _listing_out(listing)


@app.get("/api/admin/listings", dependencies=[Depends(require_admin_token)])
def list_listings(
    status: str = Query(STATUS_PENDING, pattern="^(pending|approved|rejected)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    q = db.query(Listing).filter(Listing.status == status)
    total = q.count()
    items = (
        q.order_by(Listing.created_at.desc(), Listing.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "items": [_listing_out(listing) for listing in items],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@app.patch("/api/admin/listings/{listing_id}", dependencies=[Depends(require_admin_token)])
def moderate_listing(
    listing_id: int,
    payload: ListingModerate,
    db: Session = Depends(get_db),
):
    listing = db.get(Listing, listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail="Listing not found")

    if listing.status != payload.status:
        logger.info("Listing %s moderated: %s -> %s", listing.id, listing.status, payload.status)
        listing.status = payload.status
        listing.updated_at = utcnow()
        db.commit()
        db.refresh(listing)

    return _listing_out(listing)
