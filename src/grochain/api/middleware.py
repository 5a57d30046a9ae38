"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware — injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware — catches domain exceptions -> structured JSON errors
    3. CORSMiddleware — browser clients of the marketplace front end

Request-schema failures never reach the middleware (FastAPI answers them
itself), so they get a dedicated exception handler that returns the same
error body with status 400.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from grochain.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    GroChainError,
    InvalidStateTransitionError,
    NotFoundError,
    PaymentProviderError,
    ValidationError,
    WebhookSignatureError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)


def error_response(status_code: int, code: str, message: str, details: list | None = None) -> JSONResponse:
    content: dict = {"error": code, "message": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except ValidationError as exc:
            logger.info("request.invalid", code=exc.code, error=exc.message)
            return error_response(400, exc.code, exc.message)
        except (AuthenticationError, WebhookSignatureError) as exc:
            logger.warning("request.unauthenticated", code=exc.code, path=request.url.path)
            return error_response(401, exc.code, exc.message)
        except AuthorizationError as exc:
            logger.warning("request.forbidden", error=exc.message, path=request.url.path)
            return error_response(403, exc.code, exc.message)
        except NotFoundError as exc:
            logger.info("request.not_found", code=exc.code, error=exc.message)
            return error_response(404, exc.code, exc.message)
        except InvalidStateTransitionError as exc:
            logger.warning(
                "state_machine.invalid_transition",
                current=exc.current_state,
                attempted=exc.attempted_state,
            )
            return error_response(409, exc.code, exc.message)
        except ConflictError as exc:
            logger.warning("request.conflict", code=exc.code, error=exc.message)
            return error_response(409, exc.code, exc.message)
        except PaymentProviderError as exc:
            logger.error("payment.provider_error", error=exc.message, reference=exc.reference)
            return error_response(502, exc.code, exc.message)
        except GroChainError as exc:
            logger.error("domain.error", error=exc.message, code=exc.code)
            return error_response(400, exc.code, exc.message)
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer schema violations with 400 and the standard error body."""
    details = [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    message = "; ".join(
        f"{'.'.join(d['loc'][1:]) or 'body'}: {d['msg']}" for d in details
    ) or "Invalid request"
    logger.info("request.schema_invalid", path=request.url.path, errors=len(details))
    return error_response(400, "VALIDATION_ERROR", message, details)


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters — middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # CORS (runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Tighten in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handling (runs second)
    app.add_middleware(ErrorHandlerMiddleware)

    # Request ID (runs last = outermost)
    app.add_middleware(RequestIDMiddleware)
