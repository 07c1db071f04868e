import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from typing import Optional, Dict, List
from urllib.parse import quote
import logging

from photo_service.settings import Settings
from photo_service.image_service.models import ArtifactInfo
from photo_service.exceptions import StorageError, ObjectNotFoundError

log = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}

def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", "Unknown"))

# -------------------------
# S3 Service
# -------------------------
class S3Service:
    """
        Object store client bound to one bucket.

        Transport and auth failures surface as StorageError, missing objects as
        ObjectNotFoundError. Every call is bounded by the configured timeouts.
    """
    def __init__(self, config: Settings):
        self.bucket = config.s3_bucket
        self.region = config.aws_region
        self.endpoint_url = config.aws_endpoint_url
        self.default_expiry = config.presign_expire_seconds

        session = boto3.session.Session(region_name=config.aws_region)
        client_config = Config(
            signature_version="s3v4",
            connect_timeout=config.storage_timeout_seconds,
            read_timeout=config.storage_timeout_seconds,
            retries={"max_attempts": config.storage_max_attempts, "mode": "standard"},
            s3={"addressing_style": "path" if config.aws_endpoint_url else "auto"},
        )
        kwargs = {
            "aws_access_key_id": config.aws_access_key_id,
            "aws_secret_access_key": config.aws_secret_access_key,
            "config": client_config,
        }
        if config.aws_endpoint_url:
            kwargs["endpoint_url"] = config.aws_endpoint_url

        # boto3 clients are thread-safe, one instance serves every worker thread
        self.client = session.client("s3", **kwargs)
        log.info("Initialized S3 client for bucket %s", self.bucket)

        # Ensure bucket exists at initialization
        self.ensure_bucket()

    def ensure_bucket(self):
        try:
            self.client.head_bucket(Bucket=self.bucket)
            log.debug("Bucket %s already exists", self.bucket)
        except ClientError as e:
            if _error_code(e) in ("404", "NoSuchBucket"):
                kwargs = {"Bucket": self.bucket}
                if self.region != "us-east-1":
                    kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
                self.client.create_bucket(**kwargs)
                log.info("Created bucket %s", self.bucket)
            else:
                log.error("Failed to check/create bucket: %s", e)
                raise

    def _fail(self, operation: str, key: str, error: Exception) -> StorageError:
        log.error("S3 %s failed for s3://%s/%s: %s", operation, self.bucket, key, error)
        return StorageError()

    def put(self, key: str, data: bytes, content_type: str, metadata: Optional[Dict[str, str]] = None):
        """Stores bytes under key, overwriting any existing object."""
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata or {},
            )
        except (BotoCoreError, ClientError) as e:
            raise self._fail("put", key, e) from e
        log.debug("Uploaded %d bytes to s3://%s/%s", len(data), self.bucket, key)

    def get(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                raise ObjectNotFoundError(key) from e
            raise self._fail("get", key, e) from e
        except BotoCoreError as e:
            raise self._fail("get", key, e) from e

    def delete(self, key: str):
        """Deletes key. Deleting an absent key succeeds."""
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                log.debug("s3://%s/%s already absent", self.bucket, key)
                return
            raise self._fail("delete", key, e) from e
        except BotoCoreError as e:
            raise self._fail("delete", key, e) from e
        log.debug("Deleted s3://%s/%s", self.bucket, key)

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return False
            raise self._fail("head", key, e) from e
        except BotoCoreError as e:
            raise self._fail("head", key, e) from e

    def head_info(self, key: str) -> ArtifactInfo:
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                raise ObjectNotFoundError(key) from e
            raise self._fail("head", key, e) from e
        except BotoCoreError as e:
            raise self._fail("head", key, e) from e
        return ArtifactInfo(
            size=response.get("ContentLength", 0),
            last_modified=response.get("LastModified"),
            content_type=response.get("ContentType", "application/octet-stream"),
            metadata=response.get("Metadata", {}),
            signed_url=self.signed_url(key),
        )

    def list_keys(self, prefix: str = "") -> List[str]:
        keys = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except (BotoCoreError, ClientError) as e:
            raise self._fail("list", prefix, e) from e
        return keys

    def public_url(self, key: str) -> str:
        """Formats the permanent URL of key. Assumes the bucket allows public reads."""
        path = quote(key, safe="/")
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{path}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{path}"

    def signed_url(self, key: str, expires_in: Optional[int] = None) -> str:
        expires = self.default_expiry if expires_in is None else expires_in
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires,
            )
        except (BotoCoreError, ClientError) as e:
            raise self._fail("presign", key, e) from e

    def close(self):
        self.client.close()
        log.info("Closed S3 client")
