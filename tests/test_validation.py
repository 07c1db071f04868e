import pytest

from photo_service.image_service.models import UploadRequest
from photo_service.image_service.validation import (
    decode_upload,
    validate_upload,
    validate_group_ids,
    clean_filename,
)
from photo_service.exceptions import ValidationError

MAX = 10 * 1024 * 1024


def make_request(**overrides):
    fields = dict(data=b"x" * 10, content_type="image/png", filename="a.png", group_ids=["g1"])
    fields.update(overrides)
    return UploadRequest(**fields)


# ------------------------------
# validate_upload
# ------------------------------

def test_valid_request_passes():
    request = make_request()
    assert validate_upload(request, MAX) is request


def test_empty_groups_rejected_before_size():
    request = make_request(group_ids=[], data=b"x" * (MAX + 1))
    with pytest.raises(ValidationError) as exc:
        validate_upload(request, MAX)
    assert exc.value.code == "GROUPS_REQUIRED"
    assert exc.value.status_code == 400


def test_empty_groups_rejected_before_type():
    request = make_request(group_ids=[], content_type="application/pdf")
    with pytest.raises(ValidationError) as exc:
        validate_upload(request, MAX)
    assert exc.value.code == "GROUPS_REQUIRED"


def test_type_rejected_before_size():
    request = make_request(content_type="image/svg+xml", data=b"x" * (MAX + 1))
    with pytest.raises(ValidationError) as exc:
        validate_upload(request, MAX)
    assert exc.value.code == "INVALID_TYPE"


def test_oversized_rejected():
    with pytest.raises(ValidationError) as exc:
        validate_upload(make_request(data=b"x" * (MAX + 1)), MAX)
    assert exc.value.code == "TOO_LARGE"


def test_exact_limit_allowed():
    validate_upload(make_request(data=b"x" * MAX), MAX)


def test_empty_file_rejected():
    with pytest.raises(ValidationError) as exc:
        validate_upload(make_request(data=b""), MAX)
    assert exc.value.code == "EMPTY_FILE"


@pytest.mark.parametrize("content_type", ["image/jpeg", "image/png", "image/gif", "image/webp"])
def test_allowed_types(content_type):
    validate_upload(make_request(content_type=content_type), MAX)


# ------------------------------
# decode_upload
# ------------------------------

def test_decode_missing_file():
    with pytest.raises(ValidationError) as exc:
        decode_upload(data=None, filename=None, content_type=None, group_ids=["g1"])
    assert exc.value.code == "NO_FILE"


def test_decode_repeated_fields():
    request = decode_upload(
        data=b"abc",
        filename="photo.JPG",
        content_type="image/jpg",
        title="  ",
        tags=["t1", "t2", "t1"],
        group_ids=["g1"],
    )
    assert request.content_type == "image/jpeg"
    assert request.title is None
    assert request.tag_ids == ["t1", "t2"]
    assert request.group_ids == ["g1"]


def test_decode_json_array_fields():
    request = decode_upload(
        data=b"abc",
        filename="a.png",
        content_type="image/png",
        tags=['["t1", "t2"]'],
        group_ids=['["g1"]'],
    )
    assert request.tag_ids == ["t1", "t2"]
    assert request.group_ids == ["g1"]


@pytest.mark.parametrize("raw", ['["g1"', '[1, 2]', '[{"id": "g1"}]'])
def test_decode_rejects_malformed_arrays(raw):
    with pytest.raises(ValidationError) as exc:
        decode_upload(data=b"abc", filename="a.png", content_type="image/png", group_ids=[raw])
    assert exc.value.code == "INVALID_FORM"


def test_decoded_request_is_immutable():
    request = decode_upload(data=b"abc", filename="a.png", content_type="image/png", group_ids=["g1"])
    with pytest.raises(Exception):
        request.group_ids = []


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("photo.png", "photo.png"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\me\\pic.jpg", "pic.jpg"),
        ("", "upload"),
        (None, "upload"),
    ],
)
def test_clean_filename(raw, expected):
    assert clean_filename(raw) == expected


def test_validate_group_ids_on_update():
    validate_group_ids(None)
    validate_group_ids(["g1"])
    with pytest.raises(ValidationError):
        validate_group_ids([])
    with pytest.raises(ValidationError):
        validate_group_ids(["  "])
