import io
import os
import struct
import pytest
from moto import mock_aws
from fastapi.testclient import TestClient
from PIL import Image

# Dummy AWS credentials for moto, set BEFORE importing app modules
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_REGION"] = "us-east-1"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
# Clear the AWS_ENDPOINT_URL so moto mocks are used instead of localstack
os.environ.pop("AWS_ENDPOINT_URL", None)

from photo_service.main import app
from photo_service.settings import Settings
from photo_service.storage.s3 import S3Service
from photo_service.storage.dynamodb import DynamoDBService
from photo_service.image_service.upload import UploadOrchestrator
from photo_service.image_service.deletion import DeletionOrchestrator


def make_image_bytes(size=(10, 10), fmt="PNG", mode="RGB", color="red"):
    """Generate a simple valid image in-memory."""
    img = Image.new(mode, size, color=color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def png_with_broken_chunk():
    """A PNG whose first IDAT is cut short and followed by a chunk with an invalid type."""
    data = make_image_bytes(size=(64, 64), fmt="PNG")
    start = data.index(b"IDAT") - 4
    idat = data[start + 8:]
    return (
        data[:start]
        + struct.pack(">I", 2) + b"IDAT" + idat[:2] + b"\x00" * 4
        + struct.pack(">I", 16) + b"\x10\xc00\xc0" + b"\x00" * 32
    )


@pytest.fixture(scope="function")
def test_settings():
    return Settings(
        aws_region="us-east-1",
        s3_bucket="photo-service-test-bucket",
        dynamodb_table="ImagesTest",
        membership_table="GroupMembersTest",
        aws_endpoint_url=None,
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture(scope="function")
def aws():
    with mock_aws():
        yield


@pytest.fixture(scope="function")
def s3_service(aws, test_settings):
    return S3Service(test_settings)


@pytest.fixture(scope="function")
def db_service(aws, test_settings):
    return DynamoDBService(test_settings)


@pytest.fixture(scope="function")
def uploader(s3_service, db_service, test_settings):
    return UploadOrchestrator(s3=s3_service, db=db_service, config=test_settings)


@pytest.fixture(scope="function")
def deleter(s3_service, db_service):
    return DeletionOrchestrator(s3=s3_service, db=db_service)


@pytest.fixture(scope="function")
def add_membership(db_service):
    """Seeds the externally owned user -> groups table."""
    def _add(user_id, group_ids):
        db_service.resource.Table(db_service.membership_table_name).put_item(
            Item={"user_id": user_id, "group_ids": group_ids}
        )
    return _add


@pytest.fixture(scope="function")
def test_client(test_settings):
    with mock_aws():
        # The lifespan builds S3Service and DynamoDBService from these settings
        app.state.settings = test_settings
        with TestClient(app) as client:
            yield client
        del app.state.settings
