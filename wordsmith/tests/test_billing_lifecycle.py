"""
End-to-end subscription lifecycle through signed webhooks.

free workspace -> checkout for starter -> payment fails -> recovered -> canceled,
with quota and usage checked at every step.
"""
import time

from fastapi.testclient import TestClient

from wordsmith.api.billing import get_plan_catalog
from wordsmith.features.billing.reconciler import load_subscription
from wordsmith.features.usage.gate import record_success
from wordsmith.features.workspaces.service import ensure_workspace_for_user, get_workspace
from wordsmith.main import app
from wordsmith.models.plan import PlanId
from wordsmith.models.subscription import SubscriptionStatus


def _post(client, body, sign_payload):
    resp = client.post("/api/billing/webhook", content=body, headers={"Stripe-Signature": sign_payload(body)})
    assert resp.status_code == 200
    return resp


def test_free_to_starter_to_past_due(catalog, make_event, sign_payload):
    app.dependency_overrides[get_plan_catalog] = lambda: catalog
    client = TestClient(app)
    try:
        ws = ensure_workspace_for_user("user_carol", "Carol", catalog).id
        for _ in range(30):
            record_success(ws)
        assert get_workspace(ws).usage_limit == 100

        t0 = int(time.time()) - 100
        metadata = {"workspace_id": ws, "plan_id": "starter"}

        _post(client, make_event(
            "checkout.session.completed",
            {"id": "cs_1", "subscription": "sub_1", "metadata": metadata},
            created=t0,
        ), sign_payload)
        sub = load_subscription(ws)
        assert (sub.plan_id, sub.status) == (PlanId.STARTER, SubscriptionStatus.ACTIVE)
        workspace = get_workspace(ws)
        assert workspace.usage_limit == 500
        assert workspace.usage_count == 30

        _post(client, make_event(
            "invoice.payment_failed",
            {"id": "in_1", "subscription_details": {"metadata": metadata}},
            created=t0 + 10,
        ), sign_payload)
        sub = load_subscription(ws)
        assert (sub.plan_id, sub.status) == (PlanId.STARTER, SubscriptionStatus.PAST_DUE)
        assert get_workspace(ws).usage_limit == 500

        # A late-arriving "active" update from before the failure changes nothing
        _post(client, make_event(
            "customer.subscription.updated",
            {"id": "sub_1", "status": "active", "metadata": metadata},
            created=t0 + 5,
        ), sign_payload)
        assert load_subscription(ws).status == SubscriptionStatus.PAST_DUE

        _post(client, make_event(
            "customer.subscription.updated",
            {"id": "sub_1", "status": "active", "metadata": metadata},
            created=t0 + 20,
        ), sign_payload)
        assert load_subscription(ws).status == SubscriptionStatus.ACTIVE

        _post(client, make_event(
            "customer.subscription.deleted",
            {"id": "sub_1", "status": "canceled", "current_period_end": t0 + 86400, "metadata": metadata},
            created=t0 + 30,
        ), sign_payload)
        sub = load_subscription(ws)
        assert sub.status == SubscriptionStatus.CANCELED
        assert sub.plan_id == PlanId.STARTER
        assert sub.period_end is not None
        # Usage history is never rolled back
        assert get_workspace(ws).usage_count == 30
    finally:
        app.dependency_overrides.clear()
