from datetime import datetime, timezone
from typing import List, Dict, Any, Optional
import logging
from boto3.dynamodb.conditions import Attr

from photo_service.storage.dynamodb import DynamoDBService
from photo_service.storage.s3 import S3Service
from photo_service.image_service.models import ImageRecord, ImageUpdate
from photo_service.image_service.validation import validate_group_ids
from photo_service.exceptions import ImageNotFoundException, InvariantViolation

log = logging.getLogger(__name__)

def item_to_record(item: Dict[str, Any]) -> ImageRecord:
    """Loads a DynamoDB item, refusing records that lost all their groups."""
    if not item.get("group_ids"):
        raise InvariantViolation(f"Image {item.get('image_id')} has an empty group set")
    return ImageRecord(
        image_id=item["image_id"],
        title=item.get("title"),
        filename=item["filename"],
        tag_ids=list(item.get("tag_ids", [])),
        group_ids=list(item["group_ids"]),
        original_key=item["original_key"],
        thumbnail_key=item.get("thumbnail_key"),
        created_at=datetime.fromisoformat(item["created_at"]),
        updated_at=datetime.fromisoformat(item["updated_at"]),
        version=int(item.get("version", 1)),
    )

def get_image_record(db: DynamoDBService, image_id: str) -> ImageRecord:
    """Gets an image record from DynamoDB."""
    item = db.get_metadata(image_id)
    if not item:
        raise ImageNotFoundException(image_id)
    return item_to_record(item)

def update_image(db: DynamoDBService, image_id: str, update: ImageUpdate) -> ImageRecord:
    """
        Changes title, tags and groups. Keys are preserved. Without an explicit
        version the currently stored one is used, which still guards the gap
        between our read and our write.
    """
    validate_group_ids(update.group_ids)
    current = get_image_record(db, image_id)
    expected = update.version if update.version is not None else current.version

    fields = update.model_fields_set
    changes: Dict[str, Any] = {"updated_at": datetime.now(timezone.utc).isoformat()}
    if "title" in fields:
        changes["title"] = update.title or None
    if "tags" in fields:
        changes["tag_ids"] = _unique(update.tags or [])
    if "group_ids" in fields and update.group_ids is not None:
        changes["group_ids"] = _unique(update.group_ids)

    item = db.update_metadata(image_id, changes, expected_version=expected)
    log.info("Updated image %s to version %s", image_id, item.get("version"))
    return item_to_record(item)

def _unique(ids: List[str]) -> List[str]:
    seen = []
    for i in ids:
        i = i.strip()
        if i and i not in seen:
            seen.append(i)
    return seen

def fetch_images_by_group(db: DynamoDBService, group_id: str) -> List[ImageRecord]:
    items = db.scan_metadata(Attr("group_ids").contains(group_id))
    return _sorted([item_to_record(it) for it in items], "desc")

def fetch_images_by_tag(db: DynamoDBService, tag_id: str) -> List[ImageRecord]:
    items = db.scan_metadata(Attr("tag_ids").contains(tag_id))
    return _sorted([item_to_record(it) for it in items], "desc")

def fetch_images_for_user(
    db: DynamoDBService,
    user_id: str,
    tags: Optional[List[str]] = None,
    limit: int = 50,
    offset: int = 0,
    order: str = "desc",
) -> List[ImageRecord]:
    """Images in any group the user belongs to, optionally matching any of tags."""
    group_ids = db.get_user_group_ids(user_id)
    if not group_ids:
        return []
    filters = None
    for group_id in group_ids:
        cond = Attr("group_ids").contains(group_id)
        filters = cond if filters is None else filters | cond
    if tags:
        tag_filter = None
        for tag in tags:
            cond = Attr("tag_ids").contains(tag)
            tag_filter = cond if tag_filter is None else tag_filter | cond
        filters = filters & tag_filter
    records = _sorted([item_to_record(it) for it in db.scan_metadata(filters)], order)
    return records[offset:offset + limit]

def _sorted(records: List[ImageRecord], order: str) -> List[ImageRecord]:
    return sorted(records, key=lambda r: (r.created_at, r.image_id), reverse=order == "desc")

def find_orphaned_keys(db: DynamoDBService, s3: S3Service, namespaces: List[str]) -> List[str]:
    """Keys stored under namespaces that no record references."""
    referenced = set()
    for item in db.scan_metadata():
        referenced.add(item.get("original_key"))
        referenced.add(item.get("thumbnail_key"))
    stored = []
    for namespace in namespaces:
        stored.extend(s3.list_keys(f"{namespace}/"))
    return sorted(k for k in stored if k not in referenced)
