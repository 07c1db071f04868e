"""
    Upload orchestration.

    An upload is a saga: validate, derive the thumbnail, store the original,
    store the thumbnail, create the record. Every step that leaves something
    behind appends its undo action to the run log. When any later step fails,
    or the request is cancelled, the log is replayed newest first so no artifact
    outlives a failed run.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, List, Optional
from urllib.parse import quote
import logging

import anyio
from fastapi.concurrency import run_in_threadpool

from photo_service.settings import Settings
from photo_service.storage.dynamodb import DynamoDBService
from photo_service.storage.s3 import S3Service
from photo_service.storage.keys import create_key, new_entity_id
from photo_service.image_service.models import ImageRecord, UploadRequest, new_image_id, record_to_item
from photo_service.image_service.validation import validate_upload
from photo_service.image_service.thumbnails import derive_thumbnail, thumbnail_filename, THUMBNAIL_CONTENT_TYPE
from photo_service.exceptions import PartialCleanupWarning

log = logging.getLogger(__name__)

class UploadState(str, Enum):
    RECEIVED = "RECEIVED"
    VALIDATED = "VALIDATED"
    THUMBNAILED = "THUMBNAILED"
    ORIGINAL_STORED = "ORIGINAL_STORED"
    THUMBNAIL_STORED = "THUMBNAIL_STORED"
    RECORD_CREATED = "RECORD_CREATED"
    FAILED = "FAILED"

# Legal forward moves; FAILED is reachable from every non-terminal state.
TRANSITIONS = {
    UploadState.RECEIVED: UploadState.VALIDATED,
    UploadState.VALIDATED: UploadState.THUMBNAILED,
    UploadState.THUMBNAILED: UploadState.ORIGINAL_STORED,
    UploadState.ORIGINAL_STORED: UploadState.THUMBNAIL_STORED,
    UploadState.THUMBNAIL_STORED: UploadState.RECORD_CREATED,
}

@dataclass
class Compensation:
    """Undo action for one completed step."""
    state: UploadState
    description: str
    action: Callable[[], Awaitable[None]]

@dataclass
class UploadRun:
    image_id: str
    state: UploadState = UploadState.RECEIVED
    history: List[UploadState] = field(default_factory=lambda: [UploadState.RECEIVED])
    compensations: List[Compensation] = field(default_factory=list)
    failed_compensations: List[str] = field(default_factory=list)

    def advance(self, state: UploadState):
        if TRANSITIONS.get(self.state) != state:
            raise RuntimeError(f"Illegal upload transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        log.debug("Upload %s -> %s", self.image_id, state.value)

    def fail(self):
        if self.state not in (UploadState.FAILED, UploadState.RECORD_CREATED):
            self.state = UploadState.FAILED
            self.history.append(UploadState.FAILED)

class UploadOrchestrator:
    def __init__(self, s3: S3Service, db: DynamoDBService, config: Settings):
        self.s3 = s3
        self.db = db
        self.config = config

    async def upload(self, request: UploadRequest, run: Optional[UploadRun] = None) -> ImageRecord:
        """Runs the full pipeline and returns the created record."""
        run = run or UploadRun(image_id=new_image_id())
        try:
            return await self._execute(request, run)
        except BaseException:
            # Includes cancellation; the shield keeps cleanup from being cancelled too.
            run.fail()
            with anyio.CancelScope(shield=True):
                await self._compensate(run)
            raise

    async def _execute(self, request: UploadRequest, run: UploadRun) -> ImageRecord:
        validate_upload(request, self.config.max_upload_bytes)
        run.advance(UploadState.VALIDATED)

        thumbnail = await run_in_threadpool(
            derive_thumbnail, request.data, self.config.thumbnail_size, self.config.thumbnail_quality
        )
        run.advance(UploadState.THUMBNAILED)

        original_key = create_key(self.config.original_namespace, new_entity_id(), request.filename)
        thumbnail_key = create_key(
            self.config.thumbnail_namespace, new_entity_id(), thumbnail_filename(request.filename)
        )
        now = datetime.now(timezone.utc)
        metadata = {
            "original-name": quote(request.filename),
            "uploaded-at": now.isoformat(),
            "image-id": run.image_id,
        }

        # Undo actions are registered before each write: a put that errored or was
        # cancelled may still have landed, and deleting an absent key is a no-op.
        run.compensations.append(self._delete_artifact(UploadState.ORIGINAL_STORED, original_key))
        await run_in_threadpool(self.s3.put, original_key, request.data, thumbnail.source_content_type, metadata)
        run.advance(UploadState.ORIGINAL_STORED)

        run.compensations.append(self._delete_artifact(UploadState.THUMBNAIL_STORED, thumbnail_key))
        await run_in_threadpool(self.s3.put, thumbnail_key, thumbnail.data, THUMBNAIL_CONTENT_TYPE, metadata)
        run.advance(UploadState.THUMBNAIL_STORED)

        record = ImageRecord(
            image_id=run.image_id,
            title=request.title,
            filename=request.filename,
            tag_ids=list(request.tag_ids),
            group_ids=list(request.group_ids),
            original_key=original_key,
            thumbnail_key=thumbnail_key,
            created_at=now,
            updated_at=now,
        )
        # Popped first on failure, so the record goes before the artifacts it references
        run.compensations.append(self._delete_record(run.image_id))
        await run_in_threadpool(self.db.put_metadata, record_to_item(record))
        run.advance(UploadState.RECORD_CREATED)
        run.compensations.clear()

        log.info("Saved image %s (%d bytes, groups=%s)", record.image_id, request.size, record.group_ids)
        return record

    def _delete_artifact(self, state: UploadState, key: str) -> Compensation:
        async def undo():
            await run_in_threadpool(self.s3.delete, key)
        return Compensation(state=state, description=f"delete artifact {key}", action=undo)

    def _delete_record(self, image_id: str) -> Compensation:
        async def undo():
            await run_in_threadpool(self.db.delete_metadata, image_id)
        return Compensation(state=UploadState.RECORD_CREATED, description=f"delete record {image_id}", action=undo)

    async def _compensate(self, run: UploadRun):
        while run.compensations:
            step = run.compensations.pop()
            try:
                await step.action()
                log.warning("Upload %s rolled back: %s", run.image_id, step.description)
            except Exception as e:
                run.failed_compensations.append(step.description)
                log.error(
                    "Upload %s could not %s, artifact is orphaned (%s): %s",
                    run.image_id, step.description, PartialCleanupWarning.__name__, e,
                )
