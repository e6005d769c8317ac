from trackroster.schemas.auth import (
    IssueVerificationRequest,
    IssueVerificationResponse,
    RedeemVerificationRequest,
    RedeemVerificationResponse,
    SessionResponse,
    UserResponse,
)
from trackroster.schemas.billing import CheckoutRequest, CheckoutResponse
