"""
Billing API routes.

Surface:
- GET  /api/billing/plans: Plan catalog
- GET  /api/billing/subscription: Caller workspace subscription + usage
- POST /api/billing/subscribe: Create checkout session
- POST /api/billing/cancel: Cancel at period end
- POST /api/billing/webhook: Handle Stripe webhooks
"""
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Header, Request
from pydantic import BaseModel

from wordsmith.core.auth import get_current_workspace_id
from wordsmith.features.billing.service import (
    cancel_subscription,
    get_provider,
    get_subscription_info,
    list_plans,
    start_checkout,
)
from wordsmith.features.billing.webhooks import process_webhook
from wordsmith.features.plans.catalog import PlanCatalog


router = APIRouter(prefix="/billing", tags=["billing"])


def get_plan_catalog(request: Request) -> PlanCatalog:
    """The process-wide plan catalog built at startup."""
    return request.app.state.plan_catalog


class PlanResponse(BaseModel):
    """Purchasable plan."""
    id: str
    name: str
    price_cents: int
    price_display: str
    monthly_quota: int | str
    features: List[str]
    purchasable: bool


class SubscriptionResponse(BaseModel):
    """Workspace subscription and usage counters."""
    id: Optional[str]
    plan_id: str
    status: str
    period_start: Optional[datetime]
    period_end: Optional[datetime]
    usage_count: int
    usage_limit: int


class SubscribeRequest(BaseModel):
    """Request to create checkout session."""
    plan_id: str
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class SubscribeResponse(BaseModel):
    """Checkout session to redirect the browser to."""
    session_id: str
    redirect_url: str


class CancelResponse(BaseModel):
    message: str
    plan_id: str
    status: str
    period_end: Optional[datetime]


@router.get("/plans", response_model=List[PlanResponse])
async def get_plans(catalog: PlanCatalog = Depends(get_plan_catalog)):
    """List plans in tier order."""
    return [
        PlanResponse(
            id=plan.id.value,
            name=plan.name,
            price_cents=plan.price_cents,
            price_display=plan.price_display,
            monthly_quota=plan.monthly_quota,
            features=list(plan.features),
            purchasable=not plan.is_free and bool(plan.external_price_ref),
        )
        for plan in list_plans(catalog)
    ]


@router.get("/subscription", response_model=SubscriptionResponse)
def get_subscription(workspace_id: str = Depends(get_current_workspace_id)):
    """
    Get the caller workspace's subscription.

    Workspaces that never checked out report free/active.

    Errors:
        401: No caller context
        404: Workspace not found
    """
    return get_subscription_info(workspace_id)


@router.post("/subscribe", response_model=SubscribeResponse)
def subscribe(
    request: SubscribeRequest,
    workspace_id: str = Depends(get_current_workspace_id),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    """
    Create Stripe checkout session.

    Returns:
        {"session_id": "cs_...", "redirect_url": "https://checkout.stripe.com/..."}

    Errors:
        400: Unknown plan, free plan, or plan without a Stripe price
        404: Workspace not found
        502: Stripe API error
        503: Billing disabled (STRIPE_SECRET_KEY not set)
    """
    session = start_checkout(
        workspace_id=workspace_id,
        plan_id=request.plan_id,
        catalog=catalog,
        success_url=request.success_url,
        cancel_url=request.cancel_url,
    )
    return SubscribeResponse(session_id=session.session_id, redirect_url=session.redirect_url)


@router.post("/cancel", response_model=CancelResponse)
def cancel(
    workspace_id: str = Depends(get_current_workspace_id),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    """
    Cancel the subscription at the end of the billing period.

    Errors:
        404: No externally billed subscription
        502: Stripe API error
        503: Billing disabled
    """
    result = cancel_subscription(workspace_id, catalog)
    subscription = result["subscription"]
    return CancelResponse(
        message=result["message"],
        plan_id=subscription.plan_id.value,
        status=subscription.status.value,
        period_end=subscription.period_end,
    )


@router.post("/webhook")
async def handle_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    """
    Handle Stripe webhook events.

    Verifies the signature over the raw body, then processes the event
    idempotently. Unsupported, duplicate, stale and uncorrelated events are
    acknowledged too, so Stripe stops retrying them.

    Returns:
        {"received": true}

    Errors:
        400: Invalid signature or payload
        500: Processing failed (Stripe will retry)
    """
    # Read raw body (required for signature verification)
    body = await request.body()
    process_webhook(body, stripe_signature, catalog, provider=get_provider())
    return {"received": True}
