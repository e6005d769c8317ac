"""
All SQLAlchemy models. Schema is the source of truth for new DBs.
Base.metadata.create_all() creates every table; no migration scripts needed for fresh installs.
"""
from trackroster.models.user import User
from trackroster.models.verification_code import VerificationCode
from trackroster.models.team import Team, TeamMember, TeamRole
from trackroster.models.provisioning_event import ProvisioningEvent, ProvisioningMode, ProvisioningStatus
from trackroster.models.audit_log import AuditLog

__all__ = [
    "User",
    "VerificationCode",
    "Team",
    "TeamMember",
    "TeamRole",
    "ProvisioningEvent",
    "ProvisioningMode",
    "ProvisioningStatus",
    "AuditLog",
]
