from typing import Any, Dict, Optional
import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = structlog.get_logger(__name__)


class AppException(Exception):
    """Base class for errors surfaced by the connector and its HTTP API."""

    status_code = 400
    code = "APP_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details or {}


class ConfigurationError(AppException):
    status_code = 500
    code = "CONFIG_ERROR"


class UnresolvableSubjectError(AppException):
    """A subject cannot be mapped to a principal, e.g. a namespace-less ServiceAccount."""

    status_code = 422
    code = "UNRESOLVABLE_SUBJECT"


class UnsupportedSubjectKindError(UnresolvableSubjectError):
    code = "UNSUPPORTED_SUBJECT_KIND"


class MalformedResourceIdError(AppException):
    status_code = 400
    code = "MALFORMED_RESOURCE_ID"


class InvalidPageTokenError(AppException):
    status_code = 400
    code = "INVALID_PAGE_TOKEN"


class UnknownResourceTypeError(AppException):
    status_code = 404
    code = "UNKNOWN_RESOURCE_TYPE"


class UpstreamFetchError(AppException):
    """A Kubernetes API call failed; ``upstream_status`` is the API's HTTP status when known."""

    status_code = 502
    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, *, upstream_status: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.upstream_status = upstream_status
        if upstream_status is not None:
            self.details.setdefault("upstream_status", upstream_status)


def _build_error_payload(
    *,
    message: str,
    status_code: int,
    code: str = "APP_ERROR",
    details: Optional[Dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    rid = request_id or str(uuid.uuid4())
    payload: Dict[str, Any] = {
        "success": False,
        "error": {
            "message": message,
            "code": code,
            **({"details": details} if details else {}),
        },
        "request_id": rid,
        "status_code": status_code,
    }
    return payload


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as the uniform JSON payload."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        req_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        payload = _build_error_payload(
            message=message,
            status_code=exc.status_code,
            code="HTTP_ERROR",
            request_id=req_id,
        )
        logger.warning("api.http_error", status=exc.status_code, path=request.url.path, request_id=req_id)
        return JSONResponse(status_code=exc.status_code, content=payload, headers={"X-Request-ID": req_id})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        req_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
        errors = exc.errors()
        payload = _build_error_payload(
            message="Request validation failed",
            status_code=422,
            code="VALIDATION_ERROR",
            details={"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
            request_id=req_id,
        )
        logger.info("api.validation_error", path=request.url.path, errors=len(errors), request_id=req_id)
        return JSONResponse(status_code=422, content=payload, headers={"X-Request-ID": req_id})

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException):  # type: ignore[override]
        req_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
        payload = _build_error_payload(
            message=exc.message,
            status_code=exc.status_code,
            code=exc.code,
            details=exc.details,
            request_id=req_id,
        )
        logger.warning(
            "api.app_error",
            status=exc.status_code,
            code=exc.code,
            path=request.url.path,
            request_id=req_id,
        )
        return JSONResponse(status_code=exc.status_code, content=payload, headers={"X-Request-ID": req_id})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):  # type: ignore[override]
        req_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
        logger.exception("api.unhandled_error", path=request.url.path, request_id=req_id)
        payload = _build_error_payload(
            message="Internal server error",
            status_code=500,
            code="INTERNAL_SERVER_ERROR",
            request_id=req_id,
        )
        return JSONResponse(status_code=500, content=payload, headers={"X-Request-ID": req_id})
