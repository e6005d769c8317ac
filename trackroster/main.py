"""TrackRoster API – account verification and team subscription checkout."""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError

from trackroster.config import get_settings
from trackroster.database import Base, engine
# Import models so Base.metadata has all tables before create_all (schema source of truth)
from trackroster.models import (  # noqa: F401
    User, VerificationCode, Team, TeamMember, ProvisioningEvent, AuditLog,
)
from trackroster.exceptions import ErrorCode, ServiceError
from trackroster.routers import auth, billing

log = logging.getLogger("uvicorn.error")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, stripe-signature",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

settings = get_settings()
app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=CORS_HEADERS)


def _validation_message(errors: list) -> str:
    missing = [str(e["loc"][-1]) for e in errors if e.get("type") == "missing" and e.get("loc")]
    if missing:
        return f"Missing required field(s): {', '.join(missing)}"
    if not errors:
        return "Invalid request data"
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ())[1:])
    return f"Invalid {field}: {first.get('msg')}" if field else str(first.get("msg") or "Invalid request data")


@app.exception_handler(RequestValidationError)
async def validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": _validation_message(exc.errors()), "code": ErrorCode.VALIDATION_ERROR.value},
        headers=CORS_HEADERS,
    )


@app.exception_handler(SQLAlchemyError)
async def sa_error_handler(request: Request, exc: SQLAlchemyError):
    log.exception("Database error on %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Database error", "code": ErrorCode.STORAGE_ERROR.value},
        headers=CORS_HEADERS,
    )


app.include_router(auth.router)
app.include_router(billing.router)


@app.on_event("startup")
def startup():
    if not (settings.mailgun_api_key and settings.mailgun_domain) and not settings.resend_api_key and not settings.sendgrid_api_key:
        log.warning("[Email] No transport configured - verification emails will fail; set MAILGUN_*, RESEND_API_KEY or SENDGRID_API_KEY in .env")
    if not settings.stripe_secret_key or not settings.stripe_price_id:
        log.warning("[Checkout] STRIPE_SECRET_KEY / STRIPE_PRICE_ID not set - checkout is disabled")
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        log.warning("Database startup failed (tables skipped). Check DATABASE_URL and network. Error: %s", e)


@app.get("/")
def root():
    return {"app": settings.app_name, "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.options("/{rest_of_path:path}", include_in_schema=False)
def preflight(rest_of_path: str):
    """Plain OPTIONS (without CORS preflight headers) still succeeds on every path."""
    return PlainTextResponse("ok", headers=CORS_HEADERS)
