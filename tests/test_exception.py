import pytest
import json
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from photo_service import exceptions


@pytest.mark.asyncio
async def test_api_exception_handler():
    exc = exceptions.ImageNotFoundException("123")
    request = Request(scope={"type": "http"})
    response: JSONResponse = await exceptions.api_exception_handler(request, exc)

    assert response.status_code == 404
    # JSONResponse body is bytes, need to decode and parse
    body = json.loads(response.body.decode())
    assert body == {"code": "NOT_FOUND", "detail": "Image with ID '123' not found."}


@pytest.mark.asyncio
async def test_validation_error_renders_code():
    exc = exceptions.ValidationError(exceptions.TOO_LARGE, "File too large. Maximum size is 10MB.")
    response = await exceptions.api_exception_handler(Request(scope={"type": "http"}), exc)
    assert response.status_code == 400
    assert json.loads(response.body.decode())["code"] == "TOO_LARGE"


@pytest.mark.asyncio
async def test_storage_error_hides_cause():
    try:
        try:
            raise ConnectionError("secret-host:9000 refused")
        except ConnectionError as e:
            raise exceptions.StorageError() from e
    except exceptions.StorageError as exc:
        response = await exceptions.api_exception_handler(Request(scope={"type": "http"}), exc)

    body = json.loads(response.body.decode())
    assert response.status_code == 500
    assert body["code"] == "STORAGE_ERROR"
    assert "secret-host" not in body["detail"]


@pytest.mark.asyncio
async def test_http_exception_handler():
    exc = HTTPException(status_code=403, detail="Forbidden")
    request = Request(scope={"type": "http"})
    response: JSONResponse = await exceptions.http_exception_handler(request, exc)

    assert response.status_code == 403
    body = json.loads(response.body.decode())
    assert body == {"code": "HTTP_ERROR", "detail": "Forbidden"}


@pytest.mark.asyncio
async def test_generic_exception_handler():
    exc = ValueError("Something went wrong")
    request = Request(scope={"type": "http"})
    response: JSONResponse = await exceptions.generic_exception_handler(request, exc)

    assert response.status_code == 500
    body = json.loads(response.body.decode())
    assert body == {"code": "INTERNAL_ERROR", "detail": "An unexpected error occurred."}


def test_custom_exceptions_inherit_api_exception():
    exc = exceptions.ValidationError(exceptions.INVALID_TYPE, "Bad format")
    assert isinstance(exc, exceptions.APIException)
    assert exc.status_code == 400
    assert "Bad format" in str(exc)


@pytest.mark.parametrize(
    "exc,status,code",
    [
        (exceptions.ObjectNotFoundError("k"), 404, "FILE_NOT_FOUND"),
        (exceptions.MetadataStoreError(), 500, "METADATA_ERROR"),
        (exceptions.ConcurrentUpdateError("1"), 409, "VERSION_CONFLICT"),
        (exceptions.InvariantViolation("empty groups"), 500, "INVARIANT_VIOLATION"),
    ],
)
def test_taxonomy(exc, status, code):
    assert exc.status_code == status
    assert exc.code == code


def test_invariant_violation_is_logged_critical(caplog):
    with caplog.at_level("CRITICAL"):
        exc = exceptions.InvariantViolation("image 9 has no groups")
    assert "image 9 has no groups" in caplog.text
    assert "image 9" not in exc.detail
