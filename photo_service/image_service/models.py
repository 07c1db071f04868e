from typing import List, Dict, Optional, Any
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from uuid import uuid4

def new_image_id() -> str:
    """Generates a new unique image ID."""
    return str(uuid4())

class UploadRequest(BaseModel):
    """A decoded upload, fixed for the rest of the pipeline run."""
    model_config = ConfigDict(frozen=True)

    data: bytes = Field(repr=False)
    content_type: str
    filename: str
    title: Optional[str] = None
    tag_ids: List[str] = []
    group_ids: List[str] = []

    @property
    def size(self) -> int:
        return len(self.data)

class ImageRecord(BaseModel):
    image_id: str = Field(default_factory=new_image_id)
    title: Optional[str] = None
    filename: str
    tag_ids: List[str] = []
    group_ids: List[str]
    original_key: str
    thumbnail_key: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int = 1

class ImageUpdate(BaseModel):
    """Fields a client may change. Keys and filename are never editable."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    tags: Optional[List[str]] = None
    group_ids: Optional[List[str]] = None
    version: Optional[int] = None

class ImageItem(BaseModel):
    """Client view of a record: keys replaced by public URLs."""
    image_id: str
    title: Optional[str]
    filename: str
    tags: List[str]
    group_ids: List[str]
    original_url: str
    thumbnail_url: Optional[str]
    created_at: datetime
    updated_at: datetime
    version: int

class ListImagesResponse(BaseModel):
    images: List[ImageItem]

class ArtifactInfo(BaseModel):
    size: int
    last_modified: Optional[datetime]
    content_type: str
    metadata: Dict[str, str] = {}
    signed_url: str

class SignedUrlResponse(BaseModel):
    image_id: str
    original_url: str
    thumbnail_url: Optional[str]
    expires_in: int

class DeletionReport(BaseModel):
    image_id: str
    removed_keys: List[str] = []
    failed_keys: List[str] = []

class GroupPurgeResponse(BaseModel):
    deleted: List[str] = []
    detached: List[str] = []

class OrphanReport(BaseModel):
    keys: List[str]

def record_to_item(record: ImageRecord) -> Dict[str, Any]:
    """Serializes a record for DynamoDB."""
    item = record.model_dump()
    # Dynamo needs timestamps as ISO strings
    item["created_at"] = record.created_at.isoformat()
    item["updated_at"] = record.updated_at.isoformat()
    return item
