from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional

class Settings(BaseSettings):
    aws_region: str = Field("us-east-1", env="AWS_REGION")
    s3_bucket: str = Field("photo-service-bucket", env="S3_BUCKET")
    dynamodb_table: str = Field("Images", env="DYNAMODB_TABLE")
    membership_table: str = Field("GroupMembers", env="MEMBERSHIP_TABLE")
    # Setting an endpoint switches S3 to path-style addressing (MinIO, LocalStack)
    aws_endpoint_url: Optional[str] = Field(None, env="AWS_ENDPOINT_URL")
    presign_expire_seconds: int = Field(3600, env="PRESIGN_EXPIRE_SECONDS")

    aws_access_key_id: str = Field("test", env="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: str = Field("test", env="AWS_SECRET_ACCESS_KEY")

    storage_timeout_seconds: float = Field(30.0, env="STORAGE_TIMEOUT_SECONDS")
    storage_max_attempts: int = Field(3, env="STORAGE_MAX_ATTEMPTS")

    max_upload_bytes: int = Field(10 * 1024 * 1024, env="MAX_UPLOAD_BYTES")
    thumbnail_size: int = Field(400, env="THUMBNAIL_SIZE")
    thumbnail_quality: int = Field(85, env="THUMBNAIL_QUALITY")

    original_namespace: str = Field("originals", env="ORIGINAL_NAMESPACE")
    thumbnail_namespace: str = Field("thumbnails", env="THUMBNAIL_NAMESPACE")

    app_title: str = Field("Photo Service", env="APP_TITLE")

    class Config:
        env_file = ".env"
        extra = "allow"

settings = Settings()
