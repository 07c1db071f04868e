"""
    Deletion orchestration.

    Artifact removal is best effort: a failed delete is logged and leaves an
    orphan behind. Removing the record is authoritative and its failure
    propagates.
"""
from typing import List, Optional
import logging

from fastapi.concurrency import run_in_threadpool

from photo_service.storage.dynamodb import DynamoDBService
from photo_service.storage.s3 import S3Service
from photo_service.image_service.models import DeletionReport, GroupPurgeResponse, ImageRecord, ImageUpdate
from photo_service.image_service.service import get_image_record, fetch_images_by_group, update_image
from photo_service.exceptions import ConcurrentUpdateError, ImageNotFoundException, PartialCleanupWarning

log = logging.getLogger(__name__)

class DeletionOrchestrator:
    def __init__(self, s3: S3Service, db: DynamoDBService):
        self.s3 = s3
        self.db = db

    async def delete(self, image_id: str) -> DeletionReport:
        record = await run_in_threadpool(get_image_record, self.db, image_id)
        return await self._delete_record(record)

    async def _delete_record(self, record: ImageRecord) -> DeletionReport:
        report = DeletionReport(image_id=record.image_id)
        for key in (record.original_key, record.thumbnail_key):
            if not key:
                continue
            try:
                await run_in_threadpool(self.s3.delete, key)
                report.removed_keys.append(key)
            except Exception as e:
                report.failed_keys.append(key)
                log.warning(
                    "%s: could not delete artifact of image %s, continuing: %s",
                    PartialCleanupWarning.__name__, record.image_id, e,
                )

        await run_in_threadpool(self.db.delete_metadata, record.image_id)
        log.info("Deleted image %s (%d artifact deletes failed)", record.image_id, len(report.failed_keys))
        return report

    async def purge_group(self, group_id: str) -> GroupPurgeResponse:
        """
            Prepares a group for removal: images held only by this group are
            deleted, images shared with other groups just lose this group.
            Images removed or moved out of the group while the purge runs are skipped.
        """
        result = GroupPurgeResponse()
        records: List[ImageRecord] = await run_in_threadpool(fetch_images_by_group, self.db, group_id)
        for record in records:
            try:
                outcome = await self._remove_group(record, group_id)
            except ImageNotFoundException:
                log.info("Image %s disappeared while purging group %s, skipping", record.image_id, group_id)
                continue
            if outcome is not None:
                getattr(result, outcome).append(record.image_id)
        log.info("Purged group %s: %d deleted, %d detached", group_id, len(result.deleted), len(result.detached))
        return result

    async def _remove_group(self, record: ImageRecord, group_id: str) -> Optional[str]:
        """Returns "deleted", "detached", or None if the record no longer holds the group."""
        for attempt in range(2):
            if group_id not in record.group_ids:
                return None
            remaining = [g for g in record.group_ids if g != group_id]
            if not remaining:
                await self._delete_record(record)
                return "deleted"
            try:
                await run_in_threadpool(
                    update_image, self.db, record.image_id,
                    ImageUpdate(group_ids=remaining, version=record.version),
                )
                return "detached"
            except ConcurrentUpdateError:
                if attempt:
                    raise
                # Reload once; the groups may have changed under us
                record = await run_in_threadpool(get_image_record, self.db, record.image_id)
