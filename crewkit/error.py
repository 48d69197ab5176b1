import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

logger = structlog.get_logger(__name__)


class AppError(Exception):
    """Base error translated to ``{"error": ..., "code": ...}`` at the request boundary."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None, headers: dict | None = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        self.headers = headers
        super().__init__(message)


class Unauthorized(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ValidationFailed(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class Conflict(AppError):
    status_code = 409
    code = "CONFLICT"


class InsufficientInventory(AppError):
    status_code = 400
    code = "INSUFFICIENT_INVENTORY"

    def __init__(self, equipment_name: str, available: int, requested: int) -> None:
        self.equipment_name = equipment_name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient inventory for {equipment_name}: {available} available, {requested} requested"
        )


class ExternalServiceError(AppError):
    status_code = 502
    code = "EXTERNAL_SERVICE_ERROR"


def _auth_401(code: str, message: str) -> Unauthorized:
    return Unauthorized(message, code=code, headers={"WWW-Authenticate": "Bearer"})


def _format_validation_errors(errors) -> str:
    parts = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        parts.append(f"{'.'.join(loc)}: {err.get('msg')}" if loc else str(err.get("msg")))
    return ", ".join(parts)


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code},
        headers=exc.headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    return JSONResponse(
        status_code=400,
        content={
            "error": _format_validation_errors(errors),
            "code": "VALIDATION_ERROR",
            "details": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors],
        },
    )


# called synchronously by SlowAPIMiddleware
def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("rate_limited", path=request.url.path, limit=str(exc.detail))
    response = JSONResponse(
        status_code=429,
        content={"error": f"Rate limit exceeded: {exc.detail}", "code": "RATE_LIMITED"},
    )
    limiter = getattr(request.app.state, "limiter", None)
    if limiter is not None and getattr(request.state, "view_rate_limit", None):
        response = limiter._inject_headers(response, request.state.view_rate_limit)
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(status_code=500, content={"error": "Internal server error", "code": "INTERNAL_ERROR"})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
