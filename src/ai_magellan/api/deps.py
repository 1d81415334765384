import secrets
from typing import Generator, Optional

import httpx
from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from ai_magellan.core.config import settings
from ai_magellan.db.session import SessionLocal
from ai_magellan.errors import AuthorizationError


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_http_client() -> Generator[httpx.Client, None, None]:
    with httpx.Client() as client:
        yield client


def check_bearer_token(authorization: Optional[str]) -> None:
    expected = settings.health_check_token
    if not expected or not authorization:
        raise AuthorizationError("missing token")
    scheme, _, token = authorization.partition(" ")
    if scheme != "Bearer" or not secrets.compare_digest(token.encode(), expected.encode()):
        raise AuthorizationError("invalid token")


def require_admin_token(authorization: Optional[str] = Header(None)) -> None:
    try:
        check_bearer_token(authorization)
    except AuthorizationError:
        raise HTTPException(status_code=401, detail="Unauthorized")
