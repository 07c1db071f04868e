from typing import Optional

from photo_service.storage.s3 import S3Service
from photo_service.image_service.models import ImageRecord, ImageItem, SignedUrlResponse

class AccessUrlIssuer:
    """Turns record keys into client-facing URLs. Raw keys never leave here."""

    def __init__(self, s3: S3Service):
        self.s3 = s3

    def to_item(self, record: ImageRecord) -> ImageItem:
        return ImageItem(
            image_id=record.image_id,
            title=record.title,
            filename=record.filename,
            tags=record.tag_ids,
            group_ids=record.group_ids,
            original_url=self.s3.public_url(record.original_key),
            thumbnail_url=self.s3.public_url(record.thumbnail_key) if record.thumbnail_key else None,
            created_at=record.created_at,
            updated_at=record.updated_at,
            version=record.version,
        )

    def signed_urls(self, record: ImageRecord, expires_in: Optional[int] = None) -> SignedUrlResponse:
        """Issues fresh time-boxed URLs. Callers must not store them."""
        expires = self.s3.default_expiry if expires_in is None else expires_in
        return SignedUrlResponse(
            image_id=record.image_id,
            original_url=self.s3.signed_url(record.original_key, expires),
            thumbnail_url=self.s3.signed_url(record.thumbnail_key, expires) if record.thumbnail_key else None,
            expires_in=expires,
        )
