"""Idempotency ledger for checkout completion. One row per Stripe checkout session."""
import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.sql import func

from trackroster.database import Base


class ProvisioningMode(str, enum.Enum):
    existing_tenant = "existing_tenant"
    new_tenant = "new_tenant"


class ProvisioningStatus(str, enum.Enum):
    provisioned = "provisioned"
    # Payment succeeded but the team could not be materialized (e.g. slug lost a race).
    # Operators resolve these with scripts/list_reconciliation_events.py.
    needs_reconciliation = "needs_reconciliation"


class ProvisioningEvent(Base):
    __tablename__ = "provisioning_events"

    id = Column(Integer, primary_key=True, index=True)
    checkout_session_id = Column(String(255), unique=True, nullable=False, index=True)
    stripe_event_id = Column(String(255), nullable=True)
    mode = Column(String(32), nullable=False)
    status = Column(SQLEnum(ProvisioningStatus), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True)
    detail = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
