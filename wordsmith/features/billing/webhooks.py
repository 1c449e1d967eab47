"""
Stripe webhook intake.

verify_event authenticates the raw request body before anything else reads
it. process_webhook then claims the event id, dispatches it and marks it
processed in a single transaction.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import stripe
from sqlalchemy.exc import SQLAlchemyError

from wordsmith.core.config import settings
from wordsmith.core.database import get_db_session
from wordsmith.core.errors import AuthenticationError, PersistenceError
from wordsmith.core.logging import log_event
from wordsmith.core.metrics import webhook_events_total
from wordsmith.features.billing.dispatcher import dispatch
from wordsmith.features.billing.event_log import claim_event, mark_processed, payload_hash, record_failure
from wordsmith.features.billing.provider import BillingProvider
from wordsmith.features.plans.catalog import PlanCatalog
from wordsmith.models.webhook_event import WebhookEvent


logger = logging.getLogger("wordsmith")

INVALID_SIGNATURE_MESSAGE = "Invalid webhook signature"

DUPLICATE = "duplicate"
FAILED = "failed"


def verify_event(raw_payload: bytes, signature_header: Optional[str], shared_secret: Optional[str]) -> WebhookEvent:
    """
    Authenticate a webhook body and parse it into a WebhookEvent.

    Args:
        raw_payload: Exact request body bytes
        signature_header: Stripe-Signature header value
        shared_secret: Webhook signing secret

    Raises:
        AuthenticationError: Missing secret or header, bad or expired
            signature, or a body that is not a Stripe event
    """
    if not shared_secret:
        logger.error("billing.webhook.secret_missing", extra={"error_code": AuthenticationError.code})
        raise AuthenticationError(INVALID_SIGNATURE_MESSAGE)
    if not signature_header:
        logger.warning("billing.webhook.signature_missing", extra={"error_code": AuthenticationError.code})
        raise AuthenticationError(INVALID_SIGNATURE_MESSAGE)

    try:
        stripe.Webhook.construct_event(raw_payload, signature_header, shared_secret)
        payload = json.loads(raw_payload)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(
            "billing.webhook.signature_invalid",
            extra={"error_code": AuthenticationError.code, "reason": type(e).__name__},
        )
        raise AuthenticationError(INVALID_SIGNATURE_MESSAGE) from e

    try:
        return WebhookEvent(
            id=payload["id"],
            type=payload["type"],
            created=datetime.fromtimestamp(int(payload["created"]), tz=timezone.utc),
            data=payload["data"]["object"],
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(
            "billing.webhook.malformed",
            extra={"error_code": AuthenticationError.code, "reason": type(e).__name__},
        )
        raise AuthenticationError(INVALID_SIGNATURE_MESSAGE) from e


def process_webhook(
    raw_payload: bytes,
    signature_header: Optional[str],
    catalog: PlanCatalog,
    provider: Optional[BillingProvider] = None,
    shared_secret: Optional[str] = None,
) -> str:
    """
    Authenticate and apply one webhook delivery.

    Returns:
        Outcome: applied, stale, ignored, dropped or duplicate

    Raises:
        AuthenticationError: Signature verification failed (nothing was written)
        PersistenceError: Processing failed; the delivery may be retried
    """
    event = verify_event(raw_payload, signature_header, shared_secret or settings.STRIPE_WEBHOOK_SECRET)
    raw_hash = payload_hash(raw_payload)

    try:
        with get_db_session() as session:
            if not claim_event(session, event.id, event.type, raw_hash):
                outcome = DUPLICATE
                workspace_id = None
            else:
                result = dispatch(event, catalog, session=session, provider=provider)
                mark_processed(session, event.id, result.workspace_id)
                outcome = result.outcome
                workspace_id = result.workspace_id
    except SQLAlchemyError as e:
        _record_failure(event, raw_hash, e)
        raise PersistenceError("Failed to process webhook event") from e
    except Exception as e:
        _record_failure(event, raw_hash, e)
        raise

    webhook_events_total.inc({"event_type": event.type, "outcome": outcome})
    log_event(
        "info",
        f"billing.webhook.{outcome}",
        workspace_id=workspace_id,
        event_id=event.id,
        event_type=event.type,
    )
    return outcome


def _record_failure(event: WebhookEvent, raw_hash: str, error: Exception) -> None:
    webhook_events_total.inc({"event_type": event.type, "outcome": FAILED})
    logger.error(
        "billing.webhook.failed",
        extra={"event_id": event.id, "event_type": event.type, "error_code": getattr(error, "code", "internal_error")},
    )
    record_failure(event.id, event.type, raw_hash, f"{type(error).__name__}: {error}")
