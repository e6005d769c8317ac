"""Subscription checkout and the Stripe webhook that materializes teams."""
from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from trackroster.database import get_db
from trackroster.dependencies import get_current_user
from trackroster.models.user import User
from trackroster.schemas.billing import CheckoutRequest, CheckoutResponse
from trackroster.services.checkout import build_checkout_session
from trackroster.services.provisioning import construct_event, handle_event

router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/build-checkout", response_model=CheckoutResponse)
def build_checkout(
    data: CheckoutRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    origin: str | None = Header(default=None),
):
    """Return a Stripe Checkout URL. Nothing is created until Stripe confirms payment."""
    url = build_checkout_session(db, current_user, data, origin=origin)
    return CheckoutResponse(url=url)


@router.post("/stripe-webhook")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
):
    # Signature is computed over the raw body
    payload = await request.body()
    event = construct_event(payload, stripe_signature)
    outcome = await run_in_threadpool(handle_event, db, event)
    return {"received": True, "status": outcome}
