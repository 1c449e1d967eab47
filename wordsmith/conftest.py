# wordsmith/conftest.py
import hashlib
import hmac
import json
import os
import time
import uuid
from types import SimpleNamespace

import pytest

# Tests run against an in-memory SQLite database unless told otherwise
os.environ.setdefault("TEST_DATABASE_URL", "sqlite://")
os.environ.setdefault("SKIP_ENV_VALIDATION", "1")
os.environ.setdefault("ENV", "test")

TEST_WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    """Bind the engine and create all tables once per session."""
    from wordsmith.core.database import create_all_tables, init_engine

    init_engine(os.environ["TEST_DATABASE_URL"])
    create_all_tables()
    yield


@pytest.fixture(scope="function", autouse=True)
def reset_db(create_tables):
    """Drop and recreate all tables so every test starts empty."""
    from wordsmith.core.database import reset_database

    reset_database()
    yield


@pytest.fixture(scope="function", autouse=True)
def reset_metrics():
    from wordsmith.core.metrics import METRICS

    METRICS.reset()
    yield


@pytest.fixture(autouse=True)
def billing_settings(monkeypatch):
    """Known Stripe settings; no JWT secret so X-Workspace-Id is trusted."""
    from wordsmith.core.config import settings

    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "JWT_SECRET", None)
    monkeypatch.setattr(settings, "FRONTEND_URL", "http://localhost:5173")
    monkeypatch.setattr(settings, "UNKNOWN_STATUS_FALLBACK", "past_due")
    yield settings


@pytest.fixture
def catalog():
    """Plan catalog with Stripe prices for starter and pro; enterprise is unpriced."""
    from wordsmith.features.plans.catalog import build_plan_catalog

    return build_plan_catalog(
        SimpleNamespace(
            STRIPE_STARTER_PRICE_ID="price_starter",
            STRIPE_PRO_PRICE_ID="price_pro",
            STRIPE_ENTERPRISE_PRICE_ID=None,
        )
    )


@pytest.fixture
def make_workspace():
    """Factory inserting a workspace row directly; returns its id."""
    from wordsmith.core.database import get_db_session, workspaces

    def _make(workspace_id=None, usage_count=0, usage_limit=100, owner_user_id=None):
        workspace_id = workspace_id or str(uuid.uuid4())
        with get_db_session() as session:
            session.execute(
                workspaces.insert().values(
                    id=workspace_id,
                    owner_user_id=owner_user_id or f"user_{workspace_id}",
                    name="Test Workspace",
                    usage_count=usage_count,
                    usage_limit=usage_limit,
                )
            )
        return workspace_id

    return _make


@pytest.fixture
def sign_payload():
    """Stripe-Signature header for a payload, using Stripe's v1 HMAC-SHA256 scheme."""

    def _sign(payload: bytes, secret: str = TEST_WEBHOOK_SECRET, timestamp=None) -> str:
        ts = int(timestamp if timestamp is not None else time.time())
        signed = f"{ts}.".encode("utf-8") + payload
        signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={ts},v1={signature}"

    return _sign


@pytest.fixture
def make_event():
    """Build a raw Stripe event body."""

    def _make(event_type: str, obj: dict, event_id=None, created=None) -> bytes:
        body = {
            "id": event_id or f"evt_{uuid.uuid4().hex[:16]}",
            "object": "event",
            "type": event_type,
            "created": int(created if created is not None else time.time()),
            "data": {"object": obj},
        }
        return json.dumps(body).encode("utf-8")

    return _make
