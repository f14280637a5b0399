"""
Shared fixtures: in-memory database, API client and global state resets.
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lashdesk.api.app import app
from lashdesk.api.dependencies import get_db, get_notification_service
from lashdesk.lib.db import drop_db, init_db
from lashdesk.lib.metrics import reset_metrics
from lashdesk.lib.pricing_config import reset_all_configs
from lashdesk.services.catalog import set_catalog
from lashdesk.services.notification_service import ConsoleEmailProvider, NotificationService
from lashdesk.services.payment_gateway import reset_gateways


@pytest.fixture(autouse=True)
def reset_global_state():
    """Configs, metrics, catalog and gateways are process-wide; start every test clean."""
    reset_all_configs()
    reset_metrics()
    set_catalog(None)
    reset_gateways()
    yield
    reset_all_configs()
    reset_metrics()
    set_catalog(None)
    reset_gateways()


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    drop_db(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def email_provider():
    return ConsoleEmailProvider()


@pytest.fixture
def notifier(email_provider):
    return NotificationService(email_provider)


@pytest.fixture
def client(session_factory, notifier):
    """Test client for FastAPI app, bound to the in-memory database."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_service] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def future_slot():
    """An appointment three days out, on the hour."""
    slot = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0) + timedelta(days=3)
    return slot
