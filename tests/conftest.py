import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["HEALTH_CHECK_TOKEN"] = "test-secret"
os.environ["ENVIRONMENT"] = "development"

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ai_magellan.api.deps import get_db, get_http_client
from ai_magellan.api.routes import app
from ai_magellan.db.session import Base
from ai_magellan.models import Listing
from ai_magellan.models.listing import STATUS_APPROVED



@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def make_listing(db):
    counter = {"n": 0}

    def _make(url, status=STATUS_APPROVED, **kwargs):
        counter["n"] += 1
        listing = Listing(
            title=kwargs.pop("title", f"Tool {counter['n']}"),
            slug=kwargs.pop("slug", f"tool-{counter['n']}"),
            url=url,
            status=status,
            **kwargs,
        )
        db.add(listing)
        db.commit()
        db.refresh(listing)
        return listing

    return _make


@pytest.fixture()
def site_handlers():
    """host -> handler(request) -> httpx.Response; unknown hosts fail DNS."""
    return {}


@pytest.fixture()
def probe_requests():
    return []


@pytest.fixture()
def http_client(site_handlers, probe_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        probe_requests.append(request)
        site = site_handlers.get(request.url.host)
        if site is None:
            raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)
        return site(request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    yield client
    client.close()


@pytest.fixture()
def api(session_factory, http_client):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def _get_http_client():
        yield http_client

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_http_client] = _get_http_client
    yield TestClient(app)
    app.dependency_overrides.clear()
