"""
Processed webhook event log.

Stripe delivers at least once, so every event id is claimed here before it
is dispatched. The claim, the dispatch and the mark-processed write share the
caller's transaction: if processing fails the claim is rolled back with it and
the provider's retry is processed normally. Failures are recorded afterwards
in a separate transaction for operators.
"""
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, false, select, update
from sqlalchemy.orm import Session

from wordsmith.core.database import billing_events, dialect_insert, get_db_session


logger = logging.getLogger("wordsmith")

# Stored error text is capped
MAX_ERROR_LENGTH = 1000


def payload_hash(raw_payload: bytes) -> str:
    return hashlib.sha256(raw_payload).hexdigest()


def claim_event(session: Session, event_id: str, event_type: str, raw_hash: str) -> bool:
    """
    Claim an event for processing.

    Inserts the event row, or bumps attempts on a row left by an earlier
    failed attempt. Returns False when the event was already processed.
    """
    stmt = dialect_insert(session, billing_events).values(
        stripe_event_id=event_id,
        event_type=event_type,
        payload_hash=raw_hash,
        processed=False,
        attempts=1,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[billing_events.c.stripe_event_id],
        set_={
            "attempts": billing_events.c.attempts + 1,
            "error": None,
        },
        where=billing_events.c.processed == false(),
    )
    result = session.execute(stmt)
    claimed = result.rowcount == 1

    if claimed:
        stored_hash = session.execute(
            select(billing_events.c.payload_hash).where(billing_events.c.stripe_event_id == event_id)
        ).scalar()
        if stored_hash and stored_hash != raw_hash:
            logger.warning(
                "billing.webhook.payload_mismatch",
                extra={"event_id": event_id, "event_type": event_type},
            )
    return claimed


def mark_processed(
    session: Session,
    event_id: str,
    workspace_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> None:
    session.execute(
        update(billing_events)
        .where(billing_events.c.stripe_event_id == event_id)
        .values(
            processed=True,
            processed_at=now or datetime.now(timezone.utc),
            workspace_id=workspace_id,
            error=None,
        )
    )


def record_failure(event_id: str, event_type: str, raw_hash: str, error: str) -> None:
    """
    Record a failed processing attempt in its own transaction.

    The row stays unprocessed, so a redelivery is claimed and retried.
    """
    message = (error or "")[:MAX_ERROR_LENGTH]
    try:
        with get_db_session() as session:
            stmt = dialect_insert(session, billing_events).values(
                stripe_event_id=event_id,
                event_type=event_type,
                payload_hash=raw_hash,
                processed=False,
                attempts=1,
                error=message,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[billing_events.c.stripe_event_id],
                set_={
                    "attempts": billing_events.c.attempts + 1,
                    "error": message,
                },
                where=billing_events.c.processed == false(),
            )
            session.execute(stmt)
    except Exception:
        # The original failure is what the caller reports
        logger.error(
            "billing.webhook.failure_not_recorded",
            exc_info=True,
            extra={"event_id": event_id, "event_type": event_type},
        )


def get_event(event_id: str):
    with get_db_session() as session:
        return session.execute(
            select(billing_events).where(billing_events.c.stripe_event_id == event_id)
        ).fetchone()


def purge_expired_events(ttl_days: int, now: Optional[datetime] = None) -> int:
    """
    Delete event rows older than ttl_days.

    Returns:
        Number of rows deleted
    """
    if ttl_days <= 0:
        raise ValueError("ttl_days must be positive")
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=ttl_days)

    with get_db_session() as session:
        result = session.execute(
            delete(billing_events).where(billing_events.c.created_at < cutoff)
        )
        deleted = result.rowcount or 0

    logger.info(
        "billing.events.purged",
        extra={"deleted": deleted, "ttl_days": ttl_days, "cutoff": cutoff.isoformat()},
    )
    return deleted
