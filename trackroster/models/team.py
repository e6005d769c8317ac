"""Teams (tenants) and memberships. Team rows are only ever created by the payment webhook."""
import enum

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from trackroster.database import Base


class TeamRole(str, enum.Enum):
    coach = "coach"
    athlete = "athlete"
    parent = "parent"


class Team(Base):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    school_name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, index=True, nullable=False)

    primary_color = Column(String(20), nullable=False)
    secondary_color = Column(String(20), nullable=False)
    logo_url = Column(String(1000), nullable=True)

    active = Column(Boolean, default=True, nullable=False)

    # Billing state (mirrors Stripe). Null subscription = unpaid / view-only after trial.
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    stripe_checkout_session_id = Column(String(255), unique=True, nullable=True)
    trial_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")


class TeamMember(Base):
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),)

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(SQLEnum(TeamRole), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    team = relationship("Team", back_populates="members")
