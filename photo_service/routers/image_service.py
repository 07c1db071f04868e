from fastapi import APIRouter, Depends, UploadFile, File, Form, Query, Response
from typing import List, Optional
from urllib.parse import quote
import logging

from photo_service.settings import Settings
from photo_service.storage.dynamodb import DynamoDBService
from photo_service.storage.s3 import S3Service
from photo_service.dependencies.dependencies import (
    get_settings,
    get_s3_service,
    get_dynamodb_service,
    get_upload_orchestrator,
    get_deletion_orchestrator,
    get_url_issuer,
)
from photo_service.image_service.service import (
    get_image_record,
    update_image,
    fetch_images_by_group,
    fetch_images_by_tag,
    fetch_images_for_user,
    find_orphaned_keys,
)
from photo_service.image_service.models import (
    ImageItem,
    ImageUpdate,
    ListImagesResponse,
    ArtifactInfo,
    SignedUrlResponse,
    GroupPurgeResponse,
    OrphanReport,
)
from photo_service.image_service.upload import UploadOrchestrator
from photo_service.image_service.deletion import DeletionOrchestrator
from photo_service.image_service.urls import AccessUrlIssuer
from photo_service.image_service.validation import decode_upload

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/images",
    tags=["photo-service"]
)

def content_disposition(filename: str) -> str:
    """attachment header safe for latin-1 transport, with an RFC 5987 form for non-ASCII names."""
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "'").replace("?", "_")
    header = f'attachment; filename="{fallback}"'
    if fallback != filename:
        header += f"; filename*=UTF-8''{quote(filename)}"
    return header

@router.post("", response_model=ImageItem, status_code=201)
async def upload_image(
    response: Response,
    file: Optional[UploadFile] = File(None),
    title: Optional[str] = Form(None),
    tags: Optional[List[str]] = Form(None),
    group_ids: Optional[List[str]] = Form(None),
    orchestrator: UploadOrchestrator = Depends(get_upload_orchestrator),
    urls: AccessUrlIssuer = Depends(get_url_issuer),
    config: Settings = Depends(get_settings),
):
    """Uploads an image, derives its thumbnail and records its metadata."""
    response.headers["X-Content-Type-Options"] = "nosniff"

    # One byte past the limit is enough for the size check to reject the upload
    contents = await file.read(config.max_upload_bytes + 1) if file is not None else None
    request = decode_upload(
        data=contents,
        filename=file.filename if file is not None else None,
        content_type=file.content_type if file is not None else None,
        title=title,
        tags=tags,
        group_ids=group_ids,
    )
    record = await orchestrator.upload(request)
    return urls.to_item(record)

@router.get("", response_model=ListImagesResponse)
def list_images_for_user(
    user_id: str = Query(...),
    tags: Optional[List[str]] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    db: DynamoDBService = Depends(get_dynamodb_service),
    urls: AccessUrlIssuer = Depends(get_url_issuer),
):
    """Lists images visible to a user through their groups."""
    records = fetch_images_for_user(db, user_id, tags=tags, limit=limit, offset=offset, order=order)
    return ListImagesResponse(images=[urls.to_item(r) for r in records])

@router.get("/orphans", response_model=OrphanReport)
def list_orphaned_artifacts(
    db: DynamoDBService = Depends(get_dynamodb_service),
    s3: S3Service = Depends(get_s3_service),
    config: Settings = Depends(get_settings),
):
    """Keys in the bucket that no image record references."""
    keys = find_orphaned_keys(db, s3, [config.original_namespace, config.thumbnail_namespace])
    return OrphanReport(keys=keys)

@router.get("/groups/{group_id}", response_model=ListImagesResponse)
def list_images_by_group(
    group_id: str,
    db: DynamoDBService = Depends(get_dynamodb_service),
    urls: AccessUrlIssuer = Depends(get_url_issuer),
):
    records = fetch_images_by_group(db, group_id)
    return ListImagesResponse(images=[urls.to_item(r) for r in records])

@router.delete("/groups/{group_id}", response_model=GroupPurgeResponse)
async def purge_group_images(
    group_id: str,
    orchestrator: DeletionOrchestrator = Depends(get_deletion_orchestrator),
):
    """Deletes images held only by the group and detaches it from shared ones."""
    return await orchestrator.purge_group(group_id)

@router.get("/tags/{tag_id}", response_model=ListImagesResponse)
def list_images_by_tag(
    tag_id: str,
    db: DynamoDBService = Depends(get_dynamodb_service),
    urls: AccessUrlIssuer = Depends(get_url_issuer),
):
    records = fetch_images_by_tag(db, tag_id)
    return ListImagesResponse(images=[urls.to_item(r) for r in records])

@router.get("/{image_id}", response_model=ImageItem)
def get_image(
    image_id: str,
    db: DynamoDBService = Depends(get_dynamodb_service),
    urls: AccessUrlIssuer = Depends(get_url_issuer),
):
    """Gets image metadata."""
    return urls.to_item(get_image_record(db, image_id))

@router.get("/{image_id}/download")
def download_image(
    image_id: str,
    db: DynamoDBService = Depends(get_dynamodb_service),
    s3: S3Service = Depends(get_s3_service),
):
    """Streams the original artifact back as an attachment."""
    record = get_image_record(db, image_id)
    data = s3.get(record.original_key)
    return Response(
        content=data,
        media_type="application/octet-stream",
        headers={"Content-Disposition": content_disposition(record.filename)},
    )

@router.get("/{image_id}/signed-url", response_model=SignedUrlResponse)
def get_signed_urls(
    image_id: str,
    expires_in: Optional[int] = Query(None, ge=60, le=86400, description="Expiration time in seconds (60-86400)"),
    db: DynamoDBService = Depends(get_dynamodb_service),
    urls: AccessUrlIssuer = Depends(get_url_issuer),
):
    """
    Generates time-limited URLs for the original and thumbnail.

    The URLs are valid for a limited time (default 1 hour, max 24 hours) and are
    never stored.
    """
    record = get_image_record(db, image_id)
    return urls.signed_urls(record, expires_in)

@router.get("/{image_id}/info", response_model=ArtifactInfo)
def get_artifact_info(
    image_id: str,
    db: DynamoDBService = Depends(get_dynamodb_service),
    s3: S3Service = Depends(get_s3_service),
):
    """Object store details of the original artifact."""
    record = get_image_record(db, image_id)
    return s3.head_info(record.original_key)

@router.put("/{image_id}", response_model=ImageItem)
def update_image_handler(
    image_id: str,
    update: ImageUpdate,
    db: DynamoDBService = Depends(get_dynamodb_service),
    urls: AccessUrlIssuer = Depends(get_url_issuer),
):
    """Updates title, tags and groups. Stored artifacts are untouched."""
    return urls.to_item(update_image(db, image_id, update))

@router.delete("/{image_id}", status_code=204)
async def delete_image(
    image_id: str,
    orchestrator: DeletionOrchestrator = Depends(get_deletion_orchestrator),
):
    """Deletes an image's artifacts and its metadata."""
    await orchestrator.delete(image_id)
    return Response(status_code=204)
