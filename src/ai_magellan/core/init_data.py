# core/init_data.py
import re
from pathlib import Path
from typing import Any, Dict, List
import logging

import yaml
from pydantic import AnyHttpUrl, TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from ai_magellan.core.config import settings
from ai_magellan.db.session import SessionLocal
from ai_magellan.models import Listing
from ai_magellan.models.listing import MODERATION_STATUSES, STATUS_PENDING

logger = logging.getLogger(__name__)

_http_url = TypeAdapter(AnyHttpUrl)


def load_config() -> Dict[str, Any]:
    path = Path(settings.seed_file)
    if not path.exists():
        logger.warning("Seed file %s not found", path)
        return {}

    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return data


def normalize_url(url: str) -> str:
    """
    Canonical form used as the listing identity: lower-cased host, default
    port dropped, "/" path for a bare origin. Raises ValidationError for
    anything that is not an http(s) URL.
    """
    return str(_http_url.validate_python(url.strip()))


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug or "listing"


def unique_slug(db: Session, title: str) -> str:
    base = slugify(title)
    slug = base
    n = 2
    while db.query(Listing.id).filter(Listing.slug == slug).first() is not None:
        slug = f"{base}-{n}"
        n += 1
    return slug


def sync_from_config(db: Session, cfg: Dict[str, Any]) -> None:
    """
    config/listings.yaml format:

    listings:
      - title: Example AI
        url: https://example.com
        description: ...
        status: approved

    Listings are matched by normalized url. Rows missing from the file are kept.
    """

    listings_cfg: List[Dict[str, Any]] = cfg.get("listings") or []
    if not listings_cfg:
        logger.info("No listings in seed file")
        return

    existing = {}
    for row in db.query(Listing).all():
        try:
            existing[normalize_url(row.url)] = row
        except ValidationError:
            existing[row.url] = row

    for item in listings_cfg:
        try:
            url = normalize_url(item["url"])
        except ValidationError:
            logger.warning("Skipping %r: not an http(s) URL", item["url"])
            continue
        title = item["title"]
        description = item.get("description") or ""
        status = item.get("status") or STATUS_PENDING
        if status not in MODERATION_STATUSES:
            logger.warning("Skipping %s: unknown status %r", url, status)
            continue

        listing = existing.get(url)
        if listing is None:
            listing = Listing(
                title=title,
                slug=unique_slug(db, title),
                url=url,
                description=description,
                status=status,
            )
            db.add(listing)
            db.flush()
            existing[url] = listing
            logger.info("Created listing: %s [%s]", url, status)
        else:
            changed = False
            if listing.url != url:
                listing.url = url
                changed = True
            if listing.title != title:
                listing.title = title
                changed = True
            if listing.description != description:
                listing.description = description
                changed = True
            if listing.status != status:
                listing.status = status
                changed = True
            if changed:
                logger.info("Updated listing: %s [%s]", url, status)

    db.commit()


def init_data() -> None:
    cfg = load_config()
    if not cfg:
        return

    db = SessionLocal()
    try:
        sync_from_config(db, cfg)
    finally:
        db.close()
