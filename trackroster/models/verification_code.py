"""One live verification challenge per email. Reissuing replaces the row in place."""
from sqlalchemy import Column, Integer, String, DateTime

from trackroster.database import Base


class VerificationCode(Base):
    __tablename__ = "verification_codes"

    email = Column(String(255), primary_key=True)
    code = Column(String(6), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    attempts = Column(Integer, nullable=False, default=0, server_default="0")
