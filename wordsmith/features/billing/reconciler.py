"""
Subscription reconciler.

Applies partial subscription updates derived from provider events to the
subscriptions table, and keeps the workspace quota in step with the plan.

Guarantees:
- One subscription row per workspace (atomic insert-on-conflict-update).
- Updates for one workspace are serialized by a row lock on the workspace.
- Events older than the newest one already applied are ignored.
- Events about a provider subscription other than the stored one are ignored.
- Plan and quota are written in the same transaction.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wordsmith.core.config import settings
from wordsmith.core.database import as_utc, dialect_insert, subscriptions, unit_of_work, workspaces
from wordsmith.core.errors import NotFoundError, PersistenceError, ValidationError
from wordsmith.features.entitlements.service import sync_quota
from wordsmith.features.plans.catalog import PlanCatalog
from wordsmith.models.plan import PlanId
from wordsmith.models.subscription import Subscription, SubscriptionStatus, SubscriptionUpdate


logger = logging.getLogger("wordsmith")


# Stripe subscription status -> internal status
EXTERNAL_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "canceled": SubscriptionStatus.CANCELED,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
}


@dataclass(frozen=True)
class ReconcileResult:
    subscription: Optional[Subscription]
    applied: bool


def map_external_status(external_status: Optional[str], fallback: Optional[str] = None) -> SubscriptionStatus:
    """
    Map a Stripe subscription status to an internal status.

    Unrecognized statuses (incomplete, incomplete_expired, paused, ...) map to
    the configured fallback, UNKNOWN_STATUS_FALLBACK by default.
    """
    mapped = EXTERNAL_STATUS_MAP.get((external_status or "").lower())
    if mapped is not None:
        return mapped

    fallback_status = SubscriptionStatus(fallback or settings.UNKNOWN_STATUS_FALLBACK)
    logger.warning(
        "billing.status.unmapped",
        extra={"external_status": external_status, "fallback": fallback_status.value},
    )
    return fallback_status


def _row_to_subscription(row) -> Subscription:
    return Subscription(
        id=row.id,
        workspace_id=row.workspace_id,
        external_subscription_ref=row.external_subscription_ref,
        plan_id=PlanId(row.plan_id),
        status=SubscriptionStatus(row.status),
        period_start=as_utc(row.period_start),
        period_end=as_utc(row.period_end),
        last_event_at=as_utc(row.last_event_at),
    )


def load_subscription(workspace_id: str, session: Optional[Session] = None) -> Optional[Subscription]:
    """The workspace's subscription, or None if it has never been billed."""
    with unit_of_work(session) as s:
        row = s.execute(
            select(subscriptions).where(subscriptions.c.workspace_id == workspace_id)
        ).fetchone()
    return _row_to_subscription(row) if row else None


def _validate_update(update: SubscriptionUpdate, catalog: PlanCatalog) -> None:
    fields = update.model_fields_set
    if "plan_id" in fields:
        if update.plan_id is None:
            raise ValidationError("plan_id cannot be cleared")
        if update.plan_id not in catalog:
            raise ValidationError(f"Unknown plan: {update.plan_id.value}")
    if "status" in fields and update.status is None:
        raise ValidationError("status cannot be cleared")


def _is_stale(stored: Optional[datetime], incoming: Optional[datetime]) -> bool:
    if stored is None or incoming is None:
        return False
    return as_utc(incoming) < as_utc(stored)


def _is_superseded(stored_ref: Optional[str], subject_ref: Optional[str]) -> bool:
    # A re-subscribe replaces the ref; events for the old subscription no longer apply
    if not stored_ref or not subject_ref:
        return False
    return stored_ref != subject_ref


def reconcile(
    workspace_id: str,
    update: SubscriptionUpdate,
    catalog: PlanCatalog,
    session: Optional[Session] = None,
    subject_ref: Optional[str] = None,
) -> ReconcileResult:
    """
    Apply a partial update to a workspace's subscription.

    Only fields set on the update are written; an explicit None clears a
    nullable column. A new row is seeded with the free plan and active status.

    Args:
        workspace_id: Workspace the subscription belongs to
        update: Partial update; update.event_at orders provider events
        catalog: Plan catalog, used to resolve the quota on plan changes
        session: Join this transaction instead of opening one
        subject_ref: Provider subscription the event is about. When the row
            already tracks a different subscription the update is skipped;
            leave unset for events allowed to replace the reference

    Returns:
        ReconcileResult with the subscription after the call, and whether the
        update was applied (False for stale or superseded events)

    Raises:
        ValidationError: Update clears plan_id or status, or names an unknown plan
        NotFoundError: Workspace does not exist
        PersistenceError: Database failure (the transaction is rolled back)
    """
    _validate_update(update, catalog)
    changes = update.changes()
    event_at = as_utc(update.event_at)

    try:
        with unit_of_work(session) as s:
            locked = s.execute(
                select(workspaces.c.id)
                .where(workspaces.c.id == workspace_id)
                .with_for_update()
            ).fetchone()
            if locked is None:
                raise NotFoundError(f"Workspace not found: {workspace_id}")

            current = load_subscription(workspace_id, session=s)
            if current is not None and _is_stale(current.last_event_at, event_at):
                logger.info(
                    "billing.reconcile.stale",
                    extra={
                        "workspace_id": workspace_id,
                        "event_at": event_at.isoformat(),
                        "last_event_at": current.last_event_at.isoformat(),
                    },
                )
                return ReconcileResult(subscription=current, applied=False)
            if current is not None and _is_superseded(current.external_subscription_ref, subject_ref):
                logger.info(
                    "billing.reconcile.superseded",
                    extra={
                        "workspace_id": workspace_id,
                        "subscription_ref": subject_ref,
                        "current_ref": current.external_subscription_ref,
                    },
                )
                return ReconcileResult(subscription=current, applied=False)

            now = datetime.now(timezone.utc)
            insert_values = {
                "id": str(uuid.uuid4()),
                "workspace_id": workspace_id,
                "plan_id": PlanId.FREE.value,
                "status": SubscriptionStatus.ACTIVE.value,
                "created_at": now,
                "updated_at": now,
            }
            insert_values.update(changes)
            set_values = dict(changes)
            set_values["updated_at"] = now
            if event_at is not None:
                insert_values["last_event_at"] = event_at
                set_values["last_event_at"] = event_at

            stmt = dialect_insert(s, subscriptions).values(**insert_values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[subscriptions.c.workspace_id],
                set_=set_values,
            )
            s.execute(stmt)

            if update.plan_id is not None:
                sync_quota(workspace_id, update.plan_id, catalog, session=s)

            subscription = load_subscription(workspace_id, session=s)
    except SQLAlchemyError as e:
        logger.error(
            "billing.reconcile.failed",
            exc_info=True,
            extra={"workspace_id": workspace_id, "error_code": PersistenceError.code},
        )
        raise PersistenceError("Failed to persist subscription state") from e

    logger.info(
        "billing.reconcile.applied",
        extra={
            "workspace_id": workspace_id,
            "plan_id": subscription.plan_id.value,
            "status": subscription.status.value,
            "fields": sorted(changes),
        },
    )
    return ReconcileResult(subscription=subscription, applied=True)
