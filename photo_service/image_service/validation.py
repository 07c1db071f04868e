"""
    Upload validation gate.

    ``decode_upload`` is the single place where raw multipart fields become an
    UploadRequest. ``validate_upload`` then runs the ordered checks; nothing in
    here touches storage.
"""
from typing import List, Optional
from pathlib import PurePosixPath
import json

from photo_service.image_service.models import UploadRequest
from photo_service.exceptions import (
    ValidationError,
    NO_FILE,
    INVALID_FORM,
    GROUPS_REQUIRED,
    INVALID_TYPE,
    TOO_LARGE,
    EMPTY_FILE,
)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
}

CONTENT_TYPE_ALIASES = {"image/jpg": "image/jpeg"}

DEFAULT_FILENAME = "upload"

def _decode_id_list(field: str, values: Optional[List[str]]) -> List[str]:
    """Accepts repeated form fields or a single JSON array string."""
    if not values:
        return []
    if len(values) == 1 and values[0].lstrip().startswith("["):
        try:
            values = json.loads(values[0])
        except ValueError:
            raise ValidationError(INVALID_FORM, f"'{field}' is not a valid JSON array.")
        if not isinstance(values, list):
            raise ValidationError(INVALID_FORM, f"'{field}' must be an array of ids.")
    ids = []
    for value in values:
        if not isinstance(value, str):
            raise ValidationError(INVALID_FORM, f"'{field}' must contain only string ids.")
        value = value.strip()
        if value and value not in ids:
            ids.append(value)
    return ids

def clean_filename(filename: Optional[str]) -> str:
    """Reduces a client supplied filename to a bare name usable in a key."""
    name = PurePosixPath((filename or "").replace("\\", "/")).name.strip()
    return name or DEFAULT_FILENAME

def decode_upload(
    data: Optional[bytes],
    filename: Optional[str],
    content_type: Optional[str],
    title: Optional[str] = None,
    tags: Optional[List[str]] = None,
    group_ids: Optional[List[str]] = None,
) -> UploadRequest:
    if data is None:
        raise ValidationError(NO_FILE, "No file uploaded. Please provide an image file.")
    declared = (content_type or "").split(";")[0].strip().lower()
    return UploadRequest(
        data=data,
        content_type=CONTENT_TYPE_ALIASES.get(declared, declared),
        filename=clean_filename(filename),
        title=title.strip() if title and title.strip() else None,
        tag_ids=_decode_id_list("tags", tags),
        group_ids=_decode_id_list("group_ids", group_ids),
    )

def validate_upload(request: UploadRequest, max_bytes: int) -> UploadRequest:
    """Checks groups, then type, then size. The first failure wins."""
    if not request.group_ids:
        raise ValidationError(GROUPS_REQUIRED, "At least one group must be associated with the image.")
    if request.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(INVALID_TYPE, "Invalid file type. Only JPEG, PNG, GIF, and WebP images are allowed.")
    if request.size > max_bytes:
        raise ValidationError(TOO_LARGE, f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")
    if request.size == 0:
        raise ValidationError(EMPTY_FILE, "Uploaded file is empty.")
    return request

def validate_group_ids(group_ids: Optional[List[str]]):
    """Rejects an explicit empty group set on update."""
    if group_ids is not None and not [g for g in group_ids if g and g.strip()]:
        raise ValidationError(GROUPS_REQUIRED, "Image must belong to at least one group.")
