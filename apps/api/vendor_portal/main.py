from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vendor_portal.config import (
    get_cors_allow_origins,
    get_log_json,
    get_log_level,
    is_upload_token_pepper_configured,
)
from vendor_portal.errors import (
    AccessDenied,
    NotFound,
    ServerError,
    UploadConflict,
    UploadPortalError,
    UploadValidationError,
)
from vendor_portal.logging import configure_logging, get_logger, redact_token_in_url
from vendor_portal.middleware import RequestLoggingMiddleware
from vendor_portal.routers import upload_requests_router, vendor_upload_router

configure_logging(level=get_log_level(), json_output=get_log_json())
logger = get_logger(__name__)

_INTERNAL_ERROR_MESSAGE = "Internal server error."


def warn_on_insecure_defaults() -> None:
    if not is_upload_token_pepper_configured():
        logger.warning(
            "config.insecure_default",
            setting="UPLOAD_TOKEN_PEPPER",
            detail="using the development pepper; set UPLOAD_TOKEN_PEPPER before serving real vendors",
        )


warn_on_insecure_defaults()

app = FastAPI(
    title="Vendor Upload Portal API",
    description="Token-scoped vendor document uploads → signed storage URLs → work order documents",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_allow_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(vendor_upload_router)
app.include_router(upload_requests_router)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _status_for(exc: UploadPortalError) -> int:
    if isinstance(exc, AccessDenied):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, UploadValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NotFound):
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(UploadPortalError)
async def upload_portal_error_handler(request: Request, exc: UploadPortalError) -> JSONResponse:
    status_code = _status_for(exc)
    log_fields = {
        "error_code": exc.code.value,
        "reason": exc.reason,
        "path": request.url.path,
    }
    if isinstance(exc, UploadConflict):
        logger.info("request.upload_conflict", **log_fields)
    elif isinstance(exc, ServerError) or status_code >= 500:
        logger.error("request.server_error", url=redact_token_in_url(str(request.url)), **log_fields)
        return _error_response(status_code, _INTERNAL_ERROR_MESSAGE)
    else:
        logger.info("request.rejected", status_code=status_code, **log_fields)
    return _error_response(status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    del request
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    logger.info(
        "request.invalid",
        path=request.url.path,
        errors=[{"loc": error.get("loc"), "type": error.get("type")} for error in errors],
    )
    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        f"{location}: {message}" if location else message,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "request.unhandled_error",
        url=redact_token_in_url(str(request.url)),
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, _INTERNAL_ERROR_MESSAGE)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "vendor-portal-api"}
