"""
    Centralized exception handling for the FastAPI application.

    Every domain error carries a stable ``code`` and a client-safe ``detail``.
    Underlying driver errors are logged and chained, never rendered.
"""
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
import logging

log = logging.getLogger(__name__)

# Validation codes
NO_FILE = "NO_FILE"
INVALID_FORM = "INVALID_FORM"
GROUPS_REQUIRED = "GROUPS_REQUIRED"
INVALID_TYPE = "INVALID_TYPE"
TOO_LARGE = "TOO_LARGE"
EMPTY_FILE = "EMPTY_FILE"
PROCESSING_ERROR = "PROCESSING_ERROR"

class APIException(Exception):
    """Base class for API exceptions."""
    code = "INTERNAL_ERROR"

    def __init__(self, status_code: int, detail: str, code: str = None):
        self.status_code = status_code
        self.detail = detail
        if code:
            self.code = code
        super().__init__(self.detail)

class ValidationError(APIException):
    """Malformed upload or update request. Never retried."""
    def __init__(self, code: str, detail: str):
        super().__init__(status_code=400, detail=detail, code=code)

class NotFoundError(APIException):
    code = "NOT_FOUND"

    def __init__(self, detail: str):
        super().__init__(status_code=404, detail=detail)

class ImageNotFoundException(NotFoundError):
    """Exception for when an image record is not found."""
    def __init__(self, image_id: str):
        self.image_id = image_id
        super().__init__(detail=f"Image with ID '{image_id}' not found.")

class ObjectNotFoundError(NotFoundError):
    """An artifact is absent from the object store."""
    code = "FILE_NOT_FOUND"

    def __init__(self, key: str):
        self.key = key
        super().__init__(detail="Image file not found in storage.")

class StorageError(APIException):
    """Object store transport or auth failure."""
    code = "STORAGE_ERROR"

    def __init__(self, detail: str = "Object storage is unavailable. Please try again later."):
        super().__init__(status_code=500, detail=detail)

class MetadataStoreError(APIException):
    """Metadata store failure."""
    code = "METADATA_ERROR"

    def __init__(self, detail: str = "Image metadata is unavailable. Please try again later."):
        super().__init__(status_code=500, detail=detail)

class ConcurrentUpdateError(APIException):
    """The record changed since the caller read it."""
    code = "VERSION_CONFLICT"

    def __init__(self, image_id: str):
        self.image_id = image_id
        super().__init__(
            status_code=409,
            detail=f"Image with ID '{image_id}' was modified concurrently. Reload and retry.",
        )

class InvariantViolation(APIException):
    """A stored record breaks a data invariant. Never auto-repaired."""
    code = "INVARIANT_VIOLATION"

    def __init__(self, detail: str):
        log.critical("Invariant violation: %s", detail)
        super().__init__(status_code=500, detail="An internal server error occurred.")

class PartialCleanupWarning(UserWarning):
    """Category for artifact deletes that failed but were tolerated."""

async def api_exception_handler(request: Request, exc: APIException):
    """Handles API exceptions."""
    if exc.status_code >= 500:
        log.error("API Exception %s: %s", exc.code, exc.detail, exc_info=exc)
    else:
        log.info("API Exception %s: %s", exc.code, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "detail": exc.detail},
    )

async def http_exception_handler(request: Request, exc: HTTPException):
    """Handles FastAPI HTTP exceptions."""
    log.error(f"HTTP Exception: {exc.detail}", exc_info=exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": "HTTP_ERROR", "detail": exc.detail},
    )

async def generic_exception_handler(request: Request, exc: Exception):
    """Handles all other exceptions."""
    log.error(f"Unhandled Exception: {str(exc)}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"code": "INTERNAL_ERROR", "detail": "An unexpected error occurred."},
    )

def add_exception_handlers(app):
    """Adds exception handlers to the FastAPI app."""
    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
