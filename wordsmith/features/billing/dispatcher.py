"""
Webhook event dispatcher.

Routes an authenticated event to the handler for its kind. Each handler
turns the event into a partial SubscriptionUpdate for one workspace and hands
it to the reconciler. Unsupported event types are acknowledged and ignored;
events that cannot be tied to a workspace are logged and dropped.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from wordsmith.core.errors import BillingProviderError, DroppedEventWarning, NotFoundError
from wordsmith.features.billing.provider import BillingProvider
from wordsmith.features.billing.reconciler import ReconcileResult, map_external_status, reconcile
from wordsmith.features.plans.catalog import PlanCatalog
from wordsmith.models.plan import PlanId
from wordsmith.models.subscription import SubscriptionStatus, SubscriptionUpdate
from wordsmith.models.webhook_event import EventType, WebhookEvent


logger = logging.getLogger("wordsmith")


# Dispatch outcomes
APPLIED = "applied"
STALE = "stale"
IGNORED = "ignored"
DROPPED = "dropped"


@dataclass(frozen=True)
class DispatchResult:
    outcome: str
    workspace_id: Optional[str] = None
    reconcile: Optional[ReconcileResult] = None


def _timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _require_workspace_id(event: WebhookEvent, metadata: Dict[str, Any]) -> str:
    workspace_id = metadata.get("workspace_id")
    if not workspace_id:
        raise DroppedEventWarning(f"Event {event.id} ({event.type}) carries no workspace_id")
    return str(workspace_id)


def _metadata_plan(event: WebhookEvent, metadata: Dict[str, Any], catalog: PlanCatalog, required: bool) -> Optional[PlanId]:
    raw = metadata.get("plan_id")
    if not raw:
        if required:
            raise DroppedEventWarning(f"Event {event.id} ({event.type}) carries no plan_id")
        return None
    plan = catalog.lookup(raw)
    if plan is None:
        raise DroppedEventWarning(f"Event {event.id} ({event.type}) names unknown plan {raw!r}")
    return plan.id


def _subscription_period(obj: Dict[str, Any]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Period bounds from the subscription, or from its first item on newer API versions."""
    start = obj.get("current_period_start")
    end = obj.get("current_period_end")
    if start is None or end is None:
        items = (obj.get("items") or {}).get("data") or []
        if items:
            start = start if start is not None else items[0].get("current_period_start")
            end = end if end is not None else items[0].get("current_period_end")
    return _timestamp(start), _timestamp(end)


def handle_checkout_completed(event, catalog, provider, session) -> Tuple[str, ReconcileResult]:
    metadata = event.metadata
    workspace_id = _require_workspace_id(event, metadata)
    plan_id = _metadata_plan(event, metadata, catalog, required=True)
    update = SubscriptionUpdate(
        external_subscription_ref=event.data.get("subscription"),
        plan_id=plan_id,
        status=SubscriptionStatus.ACTIVE,
        event_at=event.created,
    )
    return workspace_id, reconcile(workspace_id, update, catalog, session=session)


def handle_subscription_updated(event, catalog, provider, session) -> Tuple[str, ReconcileResult]:
    metadata = event.metadata
    workspace_id = _require_workspace_id(event, metadata)
    plan_id = _metadata_plan(event, metadata, catalog, required=False)
    period_start, period_end = _subscription_period(event.data)
    fields = {
        "external_subscription_ref": event.data.get("id"),
        "status": map_external_status(event.data.get("status")),
        "period_start": period_start,
        "period_end": period_end,
        "event_at": event.created,
    }
    if plan_id is not None:
        fields["plan_id"] = plan_id
    return workspace_id, reconcile(
        workspace_id, SubscriptionUpdate(**fields), catalog, session=session, subject_ref=event.data.get("id"),
    )


def handle_subscription_deleted(event, catalog, provider, session) -> Tuple[str, ReconcileResult]:
    workspace_id = _require_workspace_id(event, event.metadata)
    _, period_end = _subscription_period(event.data)
    update = SubscriptionUpdate(
        status=SubscriptionStatus.CANCELED,
        period_end=period_end,
        event_at=event.created,
    )
    return workspace_id, reconcile(workspace_id, update, catalog, session=session, subject_ref=event.data.get("id"))


def _invoice_subscription_ref(invoice: Dict[str, Any]) -> Optional[str]:
    # Newer API versions nest the subscription under parent.subscription_details
    parent = invoice.get("parent") or {}
    ref = invoice.get("subscription") or (parent.get("subscription_details") or {}).get("subscription")
    if isinstance(ref, dict):
        return ref.get("id")
    return ref or None


def _invoice_metadata(invoice: Dict[str, Any], provider: Optional[BillingProvider]) -> Dict[str, Any]:
    parent = invoice.get("parent") or {}
    for details in (parent.get("subscription_details"), invoice.get("subscription_details")):
        if details and details.get("metadata"):
            return details["metadata"]

    subscription = invoice.get("subscription")
    if isinstance(subscription, dict):
        return subscription.get("metadata") or {}
    subscription_ref = _invoice_subscription_ref(invoice)
    if not subscription_ref or provider is None:
        return {}
    try:
        subscription = provider.retrieve_subscription(subscription_ref)
    except BillingProviderError as e:
        logger.warning(
            "billing.webhook.subscription_lookup_failed",
            extra={"subscription_ref": subscription_ref, "error": str(e)},
        )
        return {}
    return (subscription or {}).get("metadata") or {}


def handle_payment_failed(event, catalog, provider, session) -> Tuple[str, ReconcileResult]:
    metadata = _invoice_metadata(event.data, provider)
    workspace_id = _require_workspace_id(event, metadata)
    update = SubscriptionUpdate(
        status=SubscriptionStatus.PAST_DUE,
        event_at=event.created,
    )
    return workspace_id, reconcile(
        workspace_id, update, catalog, session=session, subject_ref=_invoice_subscription_ref(event.data),
    )


Handler = Callable[..., Tuple[str, ReconcileResult]]

HANDLERS: Dict[EventType, Handler] = {
    EventType.CHECKOUT_COMPLETED: handle_checkout_completed,
    EventType.SUBSCRIPTION_UPDATED: handle_subscription_updated,
    EventType.SUBSCRIPTION_DELETED: handle_subscription_deleted,
    EventType.PAYMENT_FAILED: handle_payment_failed,
}


def dispatch(
    event: WebhookEvent,
    catalog: PlanCatalog,
    session: Optional[Session] = None,
    provider: Optional[BillingProvider] = None,
) -> DispatchResult:
    """
    Route an event to its handler.

    Returns:
        DispatchResult with outcome applied, stale, ignored or dropped

    Raises:
        PersistenceError: Reconciliation failed
    """
    kind = event.kind
    handler = HANDLERS.get(kind) if kind is not None else None
    if handler is None:
        logger.info(
            "billing.webhook.ignored",
            extra={"event_id": event.id, "event_type": event.type},
        )
        return DispatchResult(outcome=IGNORED)

    try:
        workspace_id, result = handler(event, catalog, provider, session)
    except (DroppedEventWarning, NotFoundError) as w:
        logger.warning(
            "billing.webhook.dropped",
            extra={"event_id": event.id, "event_type": event.type, "error_code": w.code, "reason": w.message},
        )
        return DispatchResult(outcome=DROPPED)

    return DispatchResult(
        outcome=APPLIED if result.applied else STALE,
        workspace_id=workspace_id,
        reconcile=result,
    )
