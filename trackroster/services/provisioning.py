"""Stripe webhook consumer: materializes teams once payment is confirmed.

checkout.session.completed is applied at most once per checkout session (provisioning_events
is the ledger). For new teams the slug is re-checked by the unique constraint at insert time;
a checkout that loses a slug race is recorded for operator reconciliation, never dropped.
"""
import logging
from datetime import datetime, timezone

import stripe
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trackroster.config import get_settings
from trackroster.exceptions import UpstreamPaymentError, ValidationError
from trackroster.models.provisioning_event import ProvisioningEvent, ProvisioningMode, ProvisioningStatus
from trackroster.models.team import Team, TeamMember, TeamRole
from trackroster.services.audit_log import create_log, log_reconciliation_case, CATEGORY_BILLING

log = logging.getLogger("uvicorn.error")

OUTCOME_PROVISIONED = "provisioned"
OUTCOME_DUPLICATE = "duplicate"
OUTCOME_RECONCILE = "needs_reconciliation"
OUTCOME_UPDATED = "updated"
OUTCOME_IGNORED = "ignored"

LAPSED_SUBSCRIPTION_STATUSES = ("past_due", "unpaid")


def _field(obj, key: str, default=None):
    """Read a key from a StripeObject or a plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    try:
        return obj[key]
    except (KeyError, TypeError):
        return getattr(obj, key, default)


def _object_id(value) -> str | None:
    """Stripe references are ids, or full objects when expanded."""
    if value is None or isinstance(value, str):
        return value
    return _field(value, "id")


def construct_event(payload: bytes, sig_header: str | None):
    settings = get_settings()
    if not sig_header:
        raise ValidationError("Missing signature")
    if not settings.stripe_webhook_secret:
        raise UpstreamPaymentError("Webhook secret is not configured. Set STRIPE_WEBHOOK_SECRET.")
    try:
        return stripe.Webhook.construct_event(payload, sig_header, settings.stripe_webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        log.warning("[Stripe Webhook] signature verification failed: %s", e)
        raise ValidationError(f"Webhook Error: {e}") from e


def _subscription_trial_end(subscription_id: str | None) -> datetime | None:
    if not subscription_id:
        return None
    stripe.api_key = get_settings().stripe_secret_key
    try:
        sub = stripe.Subscription.retrieve(subscription_id)
    except stripe.StripeError as e:
        # No ledger row is written, so Stripe's redelivery retries the whole event
        raise UpstreamPaymentError(f"Stripe error: {e}") from e
    trial_end = _field(sub, "trial_end")
    if not trial_end:
        return None
    return datetime.fromtimestamp(int(trial_end), tz=timezone.utc)


def _ledger_exists(db: Session, session_id: str) -> bool:
    return (
        db.query(ProvisioningEvent.id).filter(ProvisioningEvent.checkout_session_id == session_id).first()
        is not None
    )


def _record_reconciliation(
    db: Session,
    session_id: str,
    event_id: str | None,
    mode: str,
    reason: str,
    metadata: dict,
    team_id: int | None = None,
) -> str:
    db.add(
        ProvisioningEvent(
            checkout_session_id=session_id,
            stripe_event_id=event_id,
            mode=mode,
            status=ProvisioningStatus.needs_reconciliation,
            team_id=team_id,
            detail=reason,
        )
    )
    log_reconciliation_case(
        db, session_id, reason, stripe_event_id=event_id, checkout_metadata=metadata, team_id=team_id
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return OUTCOME_DUPLICATE
    log.warning("[Stripe Webhook] checkout %s needs reconciliation: %s", session_id, reason)
    return OUTCOME_RECONCILE


def _activate_existing_team(
    db: Session,
    session,
    event_id: str | None,
    metadata: dict,
    trial_end: datetime | None,
) -> str:
    session_id = _field(session, "id")
    raw_team_id = metadata.get("team_id") or _field(session, "client_reference_id")
    try:
        team = db.get(Team, int(raw_team_id))
    except (TypeError, ValueError):
        team = None
    if team is None:
        return _record_reconciliation(
            db, session_id, event_id, ProvisioningMode.existing_tenant.value, f"team {raw_team_id!r} not found", metadata
        )

    subscription_id = _object_id(_field(session, "subscription"))
    payment_intent = _object_id(_field(session, "payment_intent"))
    team.stripe_subscription_id = subscription_id or payment_intent or f"paid_{session_id}"
    team.trial_expires_at = trial_end
    team.active = True
    db.add(
        ProvisioningEvent(
            checkout_session_id=session_id,
            stripe_event_id=event_id,
            mode=ProvisioningMode.existing_tenant.value,
            status=ProvisioningStatus.provisioned,
            team_id=team.id,
        )
    )
    create_log(
        db,
        CATEGORY_BILLING,
        "Subscription activated",
        f"Team {team.name} ({team.slug}) subscription activated"
        + (f" with trial until {trial_end.isoformat()}." if trial_end else "."),
        team_id=team.id,
        meta={"checkout_session_id": session_id, "subscription_id": team.stripe_subscription_id},
    )
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return OUTCOME_DUPLICATE
    log.info("[Stripe Webhook] team %s activated (trial_end=%s)", team.id, trial_end)
    return OUTCOME_PROVISIONED


def _create_new_team(
    db: Session,
    session,
    event_id: str | None,
    metadata: dict,
    trial_end: datetime | None,
) -> str:
    settings = get_settings()
    session_id = _field(session, "id")
    mode = ProvisioningMode.new_tenant.value
    slug = (metadata.get("slug") or "").strip()
    name = (metadata.get("team_name") or "").strip()
    school_name = (metadata.get("school_name") or "").strip()
    try:
        user_id = int(metadata.get("user_id"))
    except (TypeError, ValueError):
        user_id = None
    if not slug or not name or not school_name or user_id is None:
        return _record_reconciliation(db, session_id, event_id, mode, "incomplete checkout metadata", metadata)

    subscription_id = _object_id(_field(session, "subscription"))
    payment_intent = _object_id(_field(session, "payment_intent"))
    team = Team(
        name=name,
        school_name=school_name,
        slug=slug,
        primary_color=metadata.get("primary_color") or settings.default_primary_color,
        secondary_color=metadata.get("secondary_color") or settings.default_secondary_color,
        logo_url=metadata.get("logo_url") or None,
        active=True,
        stripe_subscription_id=subscription_id or payment_intent or f"paid_{session_id}",
        stripe_checkout_session_id=session_id,
        trial_expires_at=trial_end,
        created_by=user_id,
    )
    try:
        db.add(team)
        db.flush()
        db.add(TeamMember(team_id=team.id, user_id=user_id, role=TeamRole.coach))
        db.add(
            ProvisioningEvent(
                checkout_session_id=session_id,
                stripe_event_id=event_id,
                mode=mode,
                status=ProvisioningStatus.provisioned,
                team_id=team.id,
            )
        )
        create_log(
            db,
            CATEGORY_BILLING,
            "Team created",
            f"Team {name} ({slug}) created after checkout {session_id}.",
            team_id=team.id,
            actor_user_id=user_id,
            meta={"checkout_session_id": session_id, "subscription_id": team.stripe_subscription_id},
        )
        db.commit()
    except IntegrityError as e:
        db.rollback()
        if _ledger_exists(db, session_id):
            return OUTCOME_DUPLICATE
        if db.query(Team.id).filter(Team.stripe_checkout_session_id == session_id).first() is not None:
            return OUTCOME_DUPLICATE
        if db.query(Team.id).filter(Team.slug == slug).first() is not None:
            return _record_reconciliation(db, session_id, event_id, mode, f'slug "{slug}" already taken', metadata)
        # e.g. the buyer was deleted between checkout and payment
        return _record_reconciliation(db, session_id, event_id, mode, f"team could not be created: {e.orig}", metadata)
    log.info("[Stripe Webhook] team %s (%s) created for user %s", team.id, slug, user_id)
    return OUTCOME_PROVISIONED


def materialize_checkout(db: Session, session, event_id: str | None = None) -> str:
    """Apply a completed checkout session exactly once. Returns the outcome."""
    session_id = _field(session, "id")
    if not session_id:
        raise ValidationError("Checkout session has no id")
    if _ledger_exists(db, session_id):
        log.info("[Stripe Webhook] checkout %s already processed", session_id)
        return OUTCOME_DUPLICATE

    raw_metadata = _field(session, "metadata") or {}
    metadata = {k: _field(raw_metadata, k) for k in raw_metadata.keys()} if raw_metadata else {}
    try:
        mode = ProvisioningMode(metadata.get("mode") or ProvisioningMode.existing_tenant.value)
    except ValueError:
        return _record_reconciliation(
            db, session_id, event_id, str(metadata.get("mode"))[:32], "unknown provisioning mode", metadata
        )

    trial_end = _subscription_trial_end(_object_id(_field(session, "subscription")))
    if mode == ProvisioningMode.existing_tenant:
        return _activate_existing_team(db, session, event_id, metadata, trial_end)
    return _create_new_team(db, session, event_id, metadata, trial_end)


def _teams_for_subscription(db: Session, subscription_id: str | None) -> list[Team]:
    if not subscription_id:
        return []
    return db.query(Team).filter(Team.stripe_subscription_id == subscription_id).all()


def _handle_invoice_paid(db: Session, invoice) -> str:
    # Trial converted to paid, or a renewal
    teams = _teams_for_subscription(db, _object_id(_field(invoice, "subscription")))
    for team in teams:
        team.trial_expires_at = None
        team.active = True
    db.commit()
    return OUTCOME_UPDATED if teams else OUTCOME_IGNORED


def _clear_subscription(db: Session, subscription, reason: str) -> str:
    # Data is preserved; the team becomes view-only
    teams = _teams_for_subscription(db, _field(subscription, "id"))
    for team in teams:
        team.stripe_subscription_id = None
        create_log(
            db,
            CATEGORY_BILLING,
            "Subscription ended",
            f"Team {team.name} ({team.slug}) subscription removed: {reason}.",
            team_id=team.id,
            meta={"subscription_id": _field(subscription, "id"), "reason": reason},
        )
    db.commit()
    return OUTCOME_UPDATED if teams else OUTCOME_IGNORED


def handle_event(db: Session, event) -> str:
    event_type = _field(event, "type")
    obj = _field(_field(event, "data"), "object")
    log.info("[Stripe Webhook] received %s (%s)", event_type, _field(event, "id"))

    if event_type == "checkout.session.completed":
        return materialize_checkout(db, obj, _field(event, "id"))
    if event_type == "invoice.paid":
        return _handle_invoice_paid(db, obj)
    if event_type == "customer.subscription.deleted":
        return _clear_subscription(db, obj, "cancelled")
    if event_type == "customer.subscription.updated":
        status = _field(obj, "status")
        if status in LAPSED_SUBSCRIPTION_STATUSES:
            return _clear_subscription(db, obj, status)
        return OUTCOME_IGNORED
    log.info("[Stripe Webhook] unhandled event type: %s", event_type)
    return OUTCOME_IGNORED
