"""
Main FastAPI application for the Prospera backend.

This module exposes the HTTP handlers of the personal finance app:

* Generating prioritized alerts from a user's bills and employees.
* Receiving signed payment lifecycle webhooks from Stripe.
* Sending and verifying one-time SMS codes for phone verification.
* E-mailing a single alert and draining the scheduled e-mail queue.
* Creating, verifying and accepting family-plan invites.

Every handler follows the same shape: parse, validate, authenticate where
required, call the record store and the service layer, and shape a JSON
response. Errors raised anywhere below are turned into ``{"error": message}``
with the matching status by the exception handlers registered here.

The application can run on AWS Lambda (via Mangum) or directly with Uvicorn
for local development.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi_clerk_auth import ClerkConfig, ClerkHTTPBearer
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..alerts import AlertService
from ..clock import Clock, utcnow
from ..config import Settings
from ..database import (
    AcceptInviteRequest,
    DataAPIClient,
    Database,
    GenerateAlertsRequest,
    PhoneVerificationRequest,
    SendAlertEmailRequest,
    SendInviteRequest,
    VerifyInviteRequest,
)
from ..errors import AppError, AuthError, RequestError
from ..invites import InviteService
from ..notifications import AlertEmailService, EmailQueueProcessor, EmailSender, SmsSender
from ..payments import PaymentWebhookService, StripeGateway
from ..verification import PhoneVerificationService

logger = logging.getLogger(__name__)

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "*",
}

# =========================
# Correlation Context
# =========================

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_ctx: ContextVar[str | None] = ContextVar("user_id", default=None)


def _log_event(event: str, **fields: Any) -> None:
    payload: Dict[str, Any] = {
        "event": event,
        "timestamp": datetime.now().isoformat(),
        "request_id": request_id_ctx.get(),
        "user_id": user_id_ctx.get(),
        **fields,
    }
    logger.info(json.dumps(payload, default=str))


# =========================
# Infrastructure & Services
# =========================


@dataclass
class Services:
    """External collaborators shared by every handler for the process lifetime."""

    db: Database
    email: EmailSender
    sms: SmsSender
    payments: StripeGateway
    clock: Clock = utcnow


def build_services(settings: Settings) -> Services:
    client = DataAPIClient(
        cluster_arn=settings.aurora_cluster_arn,
        secret_arn=settings.aurora_secret_arn,
        database=settings.aurora_database,
        region=settings.aws_region,
    )
    return Services(
        db=Database(client),
        email=EmailSender(settings.email_sender, region=settings.aws_region),
        sms=SmsSender(region=settings.aws_region),
        payments=StripeGateway(settings.stripe_secret_key, settings.stripe_webhook_secret),
    )


def get_services(request: Request) -> Services:
    """
    Lazily build the service container.

    Construction is deferred to the first request that needs it so a missing
    credential does not break import (or `/health`); it surfaces as a 500.
    """
    app_state = request.app.state
    if app_state.services is None:
        app_state.services = build_services(app_state.settings)
    return app_state.services


# =========================
# Clerk Authentication
# =========================


def _get_clerk_guard(request: Request) -> Any:
    app_state = request.app.state
    if app_state.clerk_guard is None:
        clerk_config = ClerkConfig(jwks_url=app_state.settings.clerk_jwks_url)
        # auto_error=False: a missing or invalid token yields None so the
        # handler answers with our own error body.
        app_state.clerk_guard = ClerkHTTPBearer(clerk_config, auto_error=False)
    return app_state.clerk_guard


async def get_current_user_id(request: Request) -> str:
    """
    Validate the bearer token and return the Clerk user id (`sub` claim).

    Raises
    ------
    AuthError
        401 when the token is missing or fails validation.
    """
    creds = await _get_clerk_guard(request)(request)
    if creds is None or not creds.decoded or not creds.decoded.get("sub"):
        raise AuthError("Failed to authenticate user")

    user_id: str = creds.decoded["sub"]
    user_id_ctx.set(user_id)
    logger.info("Authenticated user: %s", user_id)
    return user_id


def _require_profile(services: Services, user_id: str) -> Dict[str, Any]:
    profile = services.db.profiles.find_by_user_id(user_id)
    if not profile:
        raise AuthError("User not found", status_code=404)
    return profile


# =========================
# FastAPI Application Setup
# =========================


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Parameters
    ----------
    settings : Settings, optional
        Configuration snapshot; read from the environment when omitted.
    services : Services, optional
        Pre-built collaborators (tests pass fakes here). Built from
        `settings` on first use when omitted.
    """
    settings = settings or Settings.from_env()

    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

    app = FastAPI(
        title="Prospera API",
        description="Backend handlers for the PROSPERA.AI personal finance app",
        version="1.0.0",
    )
    app.state.settings = settings
    app.state.services = services
    app.state.clerk_guard = None

    _register_middleware(app)
    _register_exception_handlers(app)
    _register_routes(app)
    return app


def _register_middleware(app: FastAPI) -> None:
    # Registered first so it runs innermost; CORS wraps it.
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        # Prefer an upstream request id if provided; otherwise generate one.
        incoming = request.headers.get("x-request-id") or request.headers.get("x-amzn-trace-id")
        request_id = incoming.strip() if incoming else str(uuid.uuid4())

        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
            user_id_ctx.set(None)

        response.headers["x-request-id"] = request_id
        return response

    @app.middleware("http")
    async def cors(request: Request, call_next):
        # Preflight for every path: 204, CORS headers, no body.
        if request.method == "OPTIONS":
            return Response(status_code=status.HTTP_204_NO_CONTENT, headers=CORS_HEADERS)

        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc.message, exc_info=exc.__cause__ is not None)
        else:
            logger.warning("%s (%s): %s", type(exc).__name__, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Return a simplified error payload instead of raw Pydantic internals
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request body"},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        messages: Dict[int, str] = {
            status.HTTP_404_NOT_FOUND: "Not found",
            status.HTTP_405_METHOD_NOT_ALLOWED: "Method not allowed",
        }
        message = messages.get(exc.status_code, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": message})

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        # Log the full exception with stack trace for diagnostics
        logger.error("Unexpected error: %s", exc, exc_info=True)
        # ServerErrorMiddleware sits outside our middleware, so stamp CORS here
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "An unexpected error occurred"},
            headers=CORS_HEADERS,
        )


# =========================
# API Routes
# =========================


def _register_routes(app: FastAPI) -> None:
    settings: Settings = app.state.settings

    @app.get("/health")
    async def health_check() -> Dict[str, str]:
        """Liveness probe; touches no external dependency."""
        return {"status": "healthy", "timestamp": datetime.now().isoformat()}

    @app.post("/generate-alerts")
    async def generate_alerts(body: GenerateAlertsRequest, request: Request) -> List[Dict[str, Any]]:
        """
        Evaluate the alert rules for `userId` as of today.

        Returns the alerts sorted by priority then date, in camelCase.
        """
        if not body.user_id:
            raise RequestError("Missing required parameter: userId")

        services = get_services(request)
        today = services.clock().date()
        alerts = AlertService(services.db).generate_for_user(body.user_id, today)

        _log_event("alerts_generated", target_user_id=body.user_id, count=len(alerts))
        return [a.model_dump(by_alias=True, exclude_none=True, mode="json") for a in alerts]

    @app.post("/payment-webhook")
    async def payment_webhook(request: Request) -> Dict[str, bool]:
        """
        Receive a Stripe event.

        The raw body is read as bytes: signature verification needs the
        payload exactly as sent.
        """
        payload = await request.body()
        signature = request.headers.get("stripe-signature")

        services = get_services(request)
        webhook = PaymentWebhookService(
            services.db,
            services.payments,
            family_price_id=settings.stripe_family_price_id,
            clock=services.clock,
        )
        return webhook.process(payload, signature)

    @app.post("/phone-verification")
    async def phone_verification(body: PhoneVerificationRequest, request: Request) -> Dict[str, Any]:
        if not body.action or not body.user_id:
            raise RequestError("Missing required parameters")
        if body.action not in ("send", "verify"):
            raise RequestError('Invalid action. Must be "send" or "verify"')

        user_id = await get_current_user_id(request)
        services = get_services(request)
        _require_profile(services, user_id)
        if user_id != body.user_id:
            raise AuthError("Unauthorized", status_code=403)

        verification = PhoneVerificationService(services.db, services.sms, clock=services.clock)

        if body.action == "send":
            if not body.phone:
                raise RequestError("Phone number is required")
            verification.send_code(user_id, body.phone)
            _log_event("phone_code_sent")
            return {"success": True, "message": "Verification code sent"}

        if not body.code:
            raise RequestError("Verification code is required")
        verification.verify_code(user_id, body.code)
        _log_event("phone_verified")
        return {"success": True, "message": "Phone verified successfully"}

    @app.post("/send-alert-email")
    async def send_alert_email(body: SendAlertEmailRequest, request: Request) -> Dict[str, Any]:
        if not body.alert_id and not body.test_mode:
            raise RequestError("Missing required parameter: alertId")

        user_id = await get_current_user_id(request)
        services = get_services(request)
        profile = _require_profile(services, user_id)

        mailer = AlertEmailService(
            services.db, services.email, settings.app_base_url, clock=services.clock
        )
        result = mailer.send(
            user_id,
            profile.get("email"),
            alert_id=body.alert_id,
            test_mode=body.test_mode,
        )
        _log_event("alert_email", alert_id=body.alert_id, test_mode=body.test_mode, success=result["success"])
        return result

    @app.post("/send-invite")
    async def send_invite(body: SendInviteRequest, request: Request) -> Dict[str, Any]:
        if not body.email or not body.role:
            raise RequestError("Missing required parameters")

        user_id = await get_current_user_id(request)
        services = get_services(request)
        invites = InviteService(services.db, services.email, settings.app_base_url, clock=services.clock)
        invite_id = invites.create_invite(user_id, body.email, body.role)

        _log_event("invite_created", invite_id=invite_id, role=body.role)
        return {"success": True, "message": "Invite sent successfully", "inviteId": invite_id}

    @app.post("/verify-invite")
    async def verify_invite(body: VerifyInviteRequest, request: Request) -> Dict[str, Any]:
        if not body.token:
            raise RequestError("Missing required parameters")

        services = get_services(request)
        invites = InviteService(services.db, services.email, settings.app_base_url, clock=services.clock)
        return invites.verify_invite(body.token)

    @app.post("/accept-invite")
    async def accept_invite(body: AcceptInviteRequest, request: Request) -> Dict[str, Any]:
        if not body.token or not body.user_id:
            raise RequestError("Missing required parameters")

        user_id = await get_current_user_id(request)
        if user_id != body.user_id:
            raise AuthError("Unauthorized", status_code=403)

        services = get_services(request)
        invites = InviteService(services.db, services.email, settings.app_base_url, clock=services.clock)
        result = invites.accept_invite(body.token, user_id)

        _log_event("invite_accepted", owner_user_id=result["accessGranted"]["ownerUserId"])
        return result

    @app.post("/process-email-queue")
    async def process_email_queue(request: Request) -> Dict[str, Any]:
        """
        Drain the scheduled e-mail queue and build due digests.

        Called hourly by the scheduler Lambda with the shared admin key.
        """
        admin_key = request.headers.get("x-admin-key")
        if not admin_key or not settings.cron_job_key or admin_key != settings.cron_job_key:
            raise AuthError("Unauthorized")

        services = get_services(request)
        processor = EmailQueueProcessor(
            services.db, services.email, settings.app_base_url, clock=services.clock
        )
        results = processor.run()

        _log_event("email_queue_processed", **results)
        return {"success": True, "results": results}


# =========================
# Application instance
# =========================

# Served by uvicorn locally and wrapped by Mangum in `lambda_handler`
app = create_app()

# Entrypoint for running the app locally with Uvicorn (development only)
if __name__ == "__main__":
    import uvicorn

    # Start Uvicorn HTTP server on all interfaces for local testing
    uvicorn.run(app, host="0.0.0.0", port=8000)
