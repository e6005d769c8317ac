"""Email verification endpoints: issue a code, redeem it."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from trackroster.database import get_db
from trackroster.dependencies import get_current_user, get_request_meta
from trackroster.models.user import User
from trackroster.schemas.auth import (
    IssueVerificationRequest,
    IssueVerificationResponse,
    RedeemVerificationRequest,
    RedeemVerificationResponse,
    UserResponse,
)
from trackroster.services.verification import issue_verification_code, redeem_verification_code

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/issue-verification", response_model=IssueVerificationResponse)
def issue_verification(data: IssueVerificationRequest, db: Session = Depends(get_db)):
    """Create (or refresh) the unconfirmed account and email it a new 6-digit code."""
    issue_verification_code(db, data.email, data.password, full_name=data.full_name)
    return IssueVerificationResponse(success=True)


@router.post("/redeem-verification", response_model=RedeemVerificationResponse)
def redeem_verification(
    data: RedeemVerificationRequest,
    db: Session = Depends(get_db),
    request_meta: dict = Depends(get_request_meta),
):
    """Confirm the email with its code. With a password, also signs the user in."""
    result = redeem_verification_code(db, data.email, data.code, data.password, request_meta=request_meta)
    return RedeemVerificationResponse(**result)


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return UserResponse(
        id=current_user.id,
        email=current_user.email,
        full_name=current_user.full_name,
        email_verified=current_user.email_verified,
    )
