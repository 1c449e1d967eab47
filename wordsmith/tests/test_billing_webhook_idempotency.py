"""
Test billing webhook idempotency.

Verifies duplicate webhook events are not reprocessed, and that a failed
attempt leaves the event open for the provider's retry.
"""
from unittest.mock import patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from wordsmith.core.database import billing_events, get_db_session
from wordsmith.core.errors import AuthenticationError, PersistenceError
from wordsmith.core.metrics import webhook_events_total
from wordsmith.features.billing.event_log import get_event, payload_hash
from wordsmith.features.billing.reconciler import load_subscription
from wordsmith.features.billing.webhooks import process_webhook
from wordsmith.features.workspaces.service import get_workspace
from wordsmith.models.plan import PlanId
from wordsmith.models.subscription import SubscriptionStatus


def _checkout_body(make_event, ws, plan_id="starter", event_id="evt_checkout_1"):
    return make_event(
        "checkout.session.completed",
        {"id": "cs_1", "subscription": "sub_1", "metadata": {"workspace_id": ws, "plan_id": plan_id}},
        event_id=event_id,
    )


def test_event_processed_once(make_workspace, make_event, sign_payload, catalog):
    ws = make_workspace()
    body = _checkout_body(make_event, ws)

    assert process_webhook(body, sign_payload(body), catalog) == "applied"
    assert process_webhook(body, sign_payload(body), catalog) == "duplicate"

    row = get_event("evt_checkout_1")
    assert row.processed is True
    assert row.attempts == 1
    assert row.workspace_id == ws
    assert row.payload_hash == payload_hash(body)
    assert webhook_events_total.value({"event_type": "checkout.session.completed", "outcome": "duplicate"}) == 1


def test_duplicate_does_not_reapply_after_later_change(make_workspace, make_event, sign_payload, catalog):
    ws = make_workspace()
    checkout = _checkout_body(make_event, ws, plan_id="starter")
    process_webhook(checkout, sign_payload(checkout), catalog)

    upgrade = make_event(
        "customer.subscription.updated",
        {"id": "sub_1", "status": "active", "metadata": {"workspace_id": ws, "plan_id": "pro"}},
        event_id="evt_upgrade",
    )
    process_webhook(upgrade, sign_payload(upgrade), catalog)

    # Redelivery of the original checkout must not downgrade
    assert process_webhook(checkout, sign_payload(checkout), catalog) == "duplicate"
    assert load_subscription(ws).plan_id == PlanId.PRO
    assert get_workspace(ws).usage_limit == 999_999


def test_ignored_and_dropped_events_are_recorded(make_event, sign_payload, catalog):
    unknown = make_event("customer.created", {"id": "cus_1"}, event_id="evt_unknown")
    orphan = make_event(
        "checkout.session.completed",
        {"id": "cs_2", "metadata": {"plan_id": "starter"}},
        event_id="evt_orphan",
    )

    assert process_webhook(unknown, sign_payload(unknown), catalog) == "ignored"
    assert process_webhook(orphan, sign_payload(orphan), catalog) == "dropped"
    assert get_event("evt_unknown").processed is True
    assert get_event("evt_orphan").processed is True
    assert process_webhook(orphan, sign_payload(orphan), catalog) == "duplicate"


def test_failed_attempt_is_recorded_and_retried(make_workspace, make_event, sign_payload, catalog):
    ws = make_workspace()
    body = _checkout_body(make_event, ws)

    with patch(
        "wordsmith.features.billing.reconciler.sync_quota",
        side_effect=OperationalError("UPDATE workspaces", {}, Exception("connection lost")),
    ):
        with pytest.raises(PersistenceError):
            process_webhook(body, sign_payload(body), catalog)

    # Nothing from the failed attempt survived except the failure record
    assert load_subscription(ws) is None
    assert get_workspace(ws).usage_limit == 100
    failed = get_event("evt_checkout_1")
    assert failed.processed is False
    assert "PersistenceError" in failed.error

    # Provider retry goes through
    assert process_webhook(body, sign_payload(body), catalog) == "applied"
    row = get_event("evt_checkout_1")
    assert row.processed is True
    assert row.attempts == 2
    assert row.error is None
    assert load_subscription(ws).status == SubscriptionStatus.ACTIVE
    assert get_workspace(ws).usage_limit == 500


def test_invalid_signature_writes_nothing(make_workspace, make_event, sign_payload, catalog):
    ws = make_workspace()
    body = _checkout_body(make_event, ws)

    with pytest.raises(AuthenticationError):
        process_webhook(body, sign_payload(body, secret="whsec_wrong"), catalog)

    with get_db_session() as session:
        assert session.execute(select(billing_events)).fetchall() == []
    assert load_subscription(ws) is None


def test_events_for_replaced_subscription_do_not_overwrite(make_workspace, make_event, sign_payload, catalog):
    ws = make_workspace()
    t0 = 1767300000

    def deliver(event_type, obj, event_id, created):
        body = make_event(event_type, obj, event_id=event_id, created=created)
        return process_webhook(body, sign_payload(body), catalog)

    deliver(
        "checkout.session.completed",
        {"id": "cs_a", "subscription": "sub_A", "metadata": {"workspace_id": ws, "plan_id": "starter"}},
        "evt_a", t0,
    )
    deliver(
        "checkout.session.completed",
        {"id": "cs_b", "subscription": "sub_B", "metadata": {"workspace_id": ws, "plan_id": "pro"}},
        "evt_b", t0 + 10,
    )

    outcome = deliver(
        "customer.subscription.updated",
        {"id": "sub_A", "status": "canceled", "metadata": {"workspace_id": ws, "plan_id": "starter"}},
        "evt_old_update", t0 + 20,
    )
    assert outcome == "stale"
    assert deliver(
        "customer.subscription.deleted",
        {"id": "sub_A", "status": "canceled", "metadata": {"workspace_id": ws}},
        "evt_old_delete", t0 + 30,
    ) == "stale"

    sub = load_subscription(ws)
    assert sub.external_subscription_ref == "sub_B"
    assert (sub.plan_id, sub.status) == (PlanId.PRO, SubscriptionStatus.ACTIVE)
    assert get_workspace(ws).usage_limit == 999_999
    assert get_event("evt_old_update").processed is True
