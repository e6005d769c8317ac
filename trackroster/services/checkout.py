"""Stripe Checkout sessions for team subscriptions.

Building a session never writes to the database. A new team is described entirely by the
session metadata and is created by the webhook once Stripe reports the checkout complete.
"""
import logging
import re

import stripe
from sqlalchemy.orm import Session

from trackroster.config import get_settings
from trackroster.exceptions import Forbidden, NotFound, SlugTaken, UpstreamPaymentError, ValidationError
from trackroster.models.provisioning_event import ProvisioningMode
from trackroster.models.team import Team, TeamMember
from trackroster.models.user import User
from trackroster.schemas.billing import CheckoutRequest

log = logging.getLogger("uvicorn.error")


def slugify(text: str | None) -> str:
    s = (text or "").lower()
    s = re.sub(r"[^a-z0-9\s-]", "", s)
    s = re.sub(r"\s+", "-", s)
    s = re.sub(r"-+", "-", s)
    return s.strip("-")


def slug_in_use(db: Session, slug: str) -> bool:
    return db.query(Team.id).filter(Team.slug == slug).first() is not None


def _require_coach_team(db: Session, user: User, team_id: int) -> Team:
    settings = get_settings()
    membership = (
        db.query(TeamMember)
        .filter(TeamMember.team_id == team_id, TeamMember.user_id == user.id)
        .first()
    )
    if not membership or membership.role.value not in settings.coach_roles:
        raise Forbidden("Not authorized for this team")
    team = db.get(Team, team_id)
    if not team:
        raise NotFound("Team not found")
    return team


def _new_team_metadata(db: Session, data: CheckoutRequest) -> dict[str, str]:
    settings = get_settings()
    team_name = (data.team_name or "").strip()
    school_name = (data.school_name or "").strip()
    raw_slug = (data.slug or "").strip()
    if not team_name or not school_name or not raw_slug:
        raise ValidationError("Team name, school name, and slug are required")
    slug = slugify(raw_slug)
    if not slug:
        raise ValidationError("Slug must contain letters or numbers")
    # Pre-check only; the webhook enforces uniqueness again when it inserts the team
    if slug_in_use(db, slug):
        raise SlugTaken(f'The slug "{slug}" is already taken. Please choose a different one.')
    return {
        "team_name": team_name,
        "school_name": school_name,
        "slug": slug,
        "primary_color": (data.primary_color or "").strip() or settings.default_primary_color,
        "secondary_color": (data.secondary_color or "").strip() or settings.default_secondary_color,
        "logo_url": (data.logo_url or "").strip(),
    }


def build_session_params(
    user: User,
    mode: ProvisioningMode,
    metadata: dict[str, str],
    *,
    trial: bool,
    origin: str,
    team: Team | None = None,
) -> dict:
    """Stripe Checkout parameters. Metadata alone must be enough to materialize the team later."""
    settings = get_settings()
    origin = origin.rstrip("/")
    metadata = {"mode": mode.value, "user_id": str(user.id), "trial": "true" if trial else "false", **metadata}

    if mode == ProvisioningMode.existing_tenant:
        team_path = f"{origin}/t/{team.slug or team.id}"
        success_url = f"{team_path}?payment=success"
        cancel_url = f"{team_path}?payment=cancelled"
        client_reference_id = str(team.id)
        subscription_metadata = {"mode": mode.value, "team_id": str(team.id)}
    else:
        # The team does not exist yet: both outcomes land back in onboarding
        success_url = f"{origin}/onboarding?payment=success&session_id={{CHECKOUT_SESSION_ID}}"
        cancel_url = f"{origin}/onboarding?payment=cancelled"
        client_reference_id = str(user.id)
        subscription_metadata = {"mode": mode.value, "slug": metadata["slug"]}

    subscription_data: dict = {"metadata": subscription_metadata}
    if trial:
        subscription_data["trial_period_days"] = settings.trial_days

    return {
        "payment_method_types": ["card"],
        "mode": "subscription",
        "line_items": [{"price": settings.stripe_price_id, "quantity": 1}],
        "client_reference_id": client_reference_id,
        "customer_email": user.email,
        "metadata": metadata,
        "subscription_data": subscription_data,
        "success_url": success_url,
        "cancel_url": cancel_url,
    }


def _create_stripe_session(params: dict) -> str:
    settings = get_settings()
    if not settings.stripe_secret_key or not settings.stripe_price_id:
        raise UpstreamPaymentError("Payments are not configured. Set STRIPE_SECRET_KEY and STRIPE_PRICE_ID.")
    stripe.api_key = settings.stripe_secret_key
    try:
        session = stripe.checkout.Session.create(**params)
    except stripe.StripeError as e:
        log.warning("[Checkout] Stripe error: %s: %s", type(e).__name__, e)
        raise UpstreamPaymentError(f"Stripe error: {getattr(e, 'user_message', None) or str(e)}") from e
    url = getattr(session, "url", None)
    if not url:
        raise UpstreamPaymentError("Stripe did not return a checkout URL.")
    log.info("[Checkout] Session created: id=%s mode=%s", getattr(session, "id", None), params["metadata"]["mode"])
    return str(url)


def build_checkout_session(db: Session, user: User, data: CheckoutRequest, origin: str | None = None) -> str:
    """Validate the request and return the Stripe Checkout URL."""
    origin = (origin or "").strip() or get_settings().frontend_base_url
    mode = data.mode
    if mode == ProvisioningMode.existing_tenant:
        team = _require_coach_team(db, user, data.team_id)
        metadata = {"team_id": str(team.id), "team_name": team.name, "school_name": team.school_name}
        params = build_session_params(user, mode, metadata, trial=data.trial, origin=origin, team=team)
    else:
        metadata = _new_team_metadata(db, data)
        params = build_session_params(user, mode, metadata, trial=data.trial, origin=origin)
    return _create_stripe_session(params)
