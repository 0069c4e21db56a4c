# SPDX-License-Identifier: MPL-2.0
"""FastAPI application for the Receipt Ledger API.

Verification endpoints always answer 200 with a verdict, even for invalid
receipts. Only unrecognisable receipts or missing request fields are
rejected.
"""

import logging
import time
from typing import Any, Optional

from fastapi import FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse, Response
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from prometheus_client import make_asgi_app
from pydantic import BaseModel
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from receipt_ledger import __version__
from receipt_ledger.core.config import Settings
from receipt_ledger.core.crypto import KeyManager
from receipt_ledger.core.exceptions import (
    EventNotFoundError,
    KeyManagerError,
    MalformedReceiptError,
    SigningUnavailableError,
    ValidationError,
)
from receipt_ledger.metrics import (
    CHAIN_AUDITS,
    RECEIPTS_BUILT,
    RECEIPTS_VERIFIED,
    VERIFY_LATENCY,
    outcome,
)
from receipt_ledger.services.event_store import EventStore
from receipt_ledger.services.ledger import LedgerService

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

tracer = trace.get_tracer("receipt_ledger.api")

PUBLIC_KEY_CACHE_SECONDS = 86400


class VerifyReceiptRequest(BaseModel):
    """Request body for standalone receipt verification."""

    receipt: Optional[dict[str, Any]] = None


class DemoReceiptRequest(BaseModel):
    """Request body for demo receipt generation."""

    session_id: Optional[str] = None
    user_id: Optional[str] = None
    prompt: Optional[str] = None
    response: Optional[str] = None
    compliance_score: Optional[float] = None
    prev_hash: Optional[str] = None
    policy_id: Optional[str] = None


def _error(status_code: int, message: str, details: Optional[dict[str, Any]] = None) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": message}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def create_app(
    settings: Optional[Settings] = None,
    key_manager: Optional[KeyManager] = None,
    event_store: Optional[EventStore] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Runtime settings; read from the environment when omitted.
        key_manager: Signing key owner; built from ``settings`` when omitted.
        event_store: Store consulted for event and session verification.
    """
    settings = settings or Settings.from_env()
    logging.getLogger("receipt_ledger").setLevel(settings.log_level)
    if key_manager is None:
        key_manager = KeyManager.from_settings(settings)
    service = LedgerService(key_manager=key_manager, event_store=event_store, settings=settings)

    limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])

    app = FastAPI(
        title="Receipt Ledger API",
        description="Tamper-evident receipts and session chain verification",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )
    app.state.service = service
    app.state.settings = settings

    # Add rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):  # type: ignore[no-untyped-def]
        """Add security headers to all responses."""
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=600,
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_hosts)

    # Error handlers
    @app.exception_handler(MalformedReceiptError)
    async def handle_malformed(request: Request, exc: MalformedReceiptError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc.message, exc.details)

    @app.exception_handler(ValidationError)
    async def handle_validation(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc.message, exc.details)

    @app.exception_handler(EventNotFoundError)
    async def handle_not_found(request: Request, exc: EventNotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, "Event not found", exc.details)

    @app.exception_handler(KeyManagerError)
    async def handle_key_error(request: Request, exc: KeyManagerError) -> JSONResponse:
        logger.error(f"Receipt key problem: {exc.message}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)

    @app.exception_handler(SigningUnavailableError)
    async def handle_signing_unavailable(
        request: Request, exc: SigningUnavailableError
    ) -> JSONResponse:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)

    @app.exception_handler(Exception)
    async def handle_exception(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.exception("Unhandled exception")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    @app.get("/", summary="API Root", tags=["General"])
    @limiter.limit("200/minute")
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint providing API information."""
        return {
            "message": "Receipt Ledger API",
            "version": __version__,
            "documentation": "/api/docs",
        }

    @app.get("/health", summary="Health Check", tags=["Health"])
    @limiter.limit("500/minute")
    async def health_check(request: Request) -> dict[str, str]:
        """Health check endpoint for monitoring and load balancers."""
        return {"status": "healthy", "service": "receipt-ledger-api"}

    @app.get(
        "/api/receipts/public-key",
        summary="Export public key",
        description="Raw base64url verification key. No authentication required.",
        tags=["Receipts"],
    )
    @limiter.limit("200/minute")
    async def get_public_key(request: Request) -> Response:
        try:
            public_key = service.key_manager.public_key_b64u if service.key_manager else None
        except KeyManagerError as exc:
            logger.error(f"Public key unavailable: {exc.message}")
            public_key = None
        if not public_key:
            return _error(status.HTTP_404_NOT_FOUND, "Public key not configured")

        return Response(
            content=public_key,
            media_type="application/octet-stream",
            headers={"Cache-Control": f"public, max-age={PUBLIC_KEY_CACHE_SECONDS}"},
        )

    @app.post("/api/receipts/verify", summary="Verify a standalone receipt", tags=["Receipts"])
    @limiter.limit("100/minute")
    async def verify_receipt(request: Request, body: VerifyReceiptRequest) -> Any:
        if not body.receipt:
            return _error(status.HTTP_400_BAD_REQUEST, "Receipt object is required")

        t0 = time.perf_counter()
        with tracer.start_as_current_span("verify_receipt") as span:
            try:
                result = service.verify_receipt(body.receipt)
            except MalformedReceiptError as e:
                span.set_status(Status(StatusCode.ERROR, e.message))
                raise

            span.set_attributes(
                {
                    "receipt.type": result.receipt_type.value,
                    "receipt.valid": result.valid,
                }
            )
            VERIFY_LATENCY.observe((time.perf_counter() - t0) * 1000)
            RECEIPTS_VERIFIED.labels(result.receipt_type.value, outcome(result.valid)).inc()
            return {"success": True, "data": result.to_dict()}

    @app.get(
        "/api/receipts/verify-session",
        summary="Verify a session hash chain",
        tags=["Receipts"],
    )
    @limiter.limit("60/minute")
    async def verify_session(
        request: Request, session_id: Optional[str] = Query(None)
    ) -> Any:
        if not session_id:
            return _error(status.HTTP_400_BAD_REQUEST, "session_id is required")

        with tracer.start_as_current_span("verify_session") as span:
            result = service.verify_session(session_id)
            span.set_attributes(
                {
                    "session.id": session_id,
                    "chain.valid": result.valid,
                    "chain.count": result.total,
                }
            )
            CHAIN_AUDITS.labels(outcome(result.valid)).inc()

            data = result.to_dict()
            if result.total == 0:
                data["message"] = "No events found in session"
            return {"success": True, "data": data}

    @app.get(
        "/api/receipts/verify/{event_id}",
        summary="Verify a stored event by id",
        tags=["Receipts"],
    )
    @limiter.limit("100/minute")
    async def verify_event(request: Request, event_id: str) -> Any:
        with tracer.start_as_current_span("verify_event") as span:
            span.set_attribute("event.id", event_id)
            verification = service.verify_event(event_id)
            RECEIPTS_VERIFIED.labels(
                verification.result.receipt_type.value, outcome(verification.valid)
            ).inc()
            return {"success": True, "data": verification.to_dict()}

    @app.post(
        "/api/demo-receipts/generate",
        summary="Generate a demo receipt",
        tags=["Demo"],
    )
    @limiter.limit("30/minute")
    async def generate_demo_receipt(request: Request, body: DemoReceiptRequest) -> Any:
        with tracer.start_as_current_span("generate_demo_receipt"):
            receipt = service.generate_demo_receipt(
                session_id=body.session_id,
                user_id=body.user_id,
                prompt=body.prompt,
                response=body.response,
                compliance_score=body.compliance_score,
                prev_hash=body.prev_hash,
                policy_id=body.policy_id,
            )
            RECEIPTS_BUILT.labels(receipt.receipt_type.value).inc()
            return {
                "success": True,
                "data": {
                    "receipt": receipt.to_dict(),
                    "meta": {
                        "demo": True,
                        "purpose": "trust_receipt_verification_demo",
                    },
                },
            }

    @app.get("/api/demo-receipts/status", summary="Receipt service status", tags=["Demo"])
    @limiter.limit("100/minute")
    async def demo_status(request: Request) -> Any:
        return {
            "success": True,
            "data": {
                "service": service.status(),
                "endpoints": {
                    "generate": "POST /api/demo-receipts/generate",
                    "verify": "POST /api/receipts/verify",
                    "public_key": "GET /api/receipts/public-key",
                },
            },
        }

    app.mount("/metrics", make_asgi_app())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "receipt_ledger.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
