import boto3
from boto3.dynamodb.conditions import Attr
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from typing import Optional, Dict, Any, List
import threading
import logging

from photo_service.settings import Settings
from photo_service.exceptions import MetadataStoreError, ConcurrentUpdateError, ImageNotFoundException

log = logging.getLogger(__name__)

# -------------------------
# DynamoDB Service
# -------------------------
class DynamoDBService:
    """
        Metadata store for image records and the user -> groups lookup.

        boto3 resources are not thread-safe, so each worker thread gets its own.
    """
    def __init__(self, config: Settings):
        self.table_name = config.dynamodb_table
        self.membership_table_name = config.membership_table
        self._config = config
        self._local = threading.local()
        self._lock = threading.Lock()
        log.info("Initialized DynamoDB service for table %s", self.table_name)

        # Ensure tables exist at initialization
        self.ensure_table()

    @property
    def resource(self):
        resource = getattr(self._local, "resource", None)
        if resource is None:
            # Session construction is not thread-safe either
            with self._lock:
                session = boto3.session.Session(region_name=self._config.aws_region)
                kwargs = {
                    "aws_access_key_id": self._config.aws_access_key_id,
                    "aws_secret_access_key": self._config.aws_secret_access_key,
                    "config": Config(
                        connect_timeout=self._config.storage_timeout_seconds,
                        read_timeout=self._config.storage_timeout_seconds,
                        retries={"max_attempts": self._config.storage_max_attempts, "mode": "standard"},
                    ),
                }
                if self._config.aws_endpoint_url:
                    kwargs["endpoint_url"] = self._config.aws_endpoint_url
                resource = session.resource("dynamodb", **kwargs)
            self._local.resource = resource
        return resource

    def _table(self):
        return self.resource.Table(self.table_name)

    # Refer here: https://boto3.amazonaws.com/v1/documentation/api/latest/reference/services/dynamodb/client/create_table.html
    def ensure_table(self):
        self._ensure(self.table_name, "image_id")
        self._ensure(self.membership_table_name, "user_id")

    def _ensure(self, name: str, hash_key: str):
        try:
            self.resource.Table(name).load()
        except ClientError:
            table = self.resource.create_table(
                TableName=name,
                KeySchema=[{"AttributeName": hash_key, "KeyType": "HASH"}],
                AttributeDefinitions=[{"AttributeName": hash_key, "AttributeType": "S"}],
                BillingMode="PAY_PER_REQUEST",
            )
            table.wait_until_exists()
            log.info("Created table %s", name)

    def put_metadata(self, item: Dict[str, Any]):
        """Inserts a new record. Refuses to overwrite an existing image_id."""
        try:
            self._table().put_item(
                Item=item,
                ConditionExpression=Attr("image_id").not_exists(),
            )
        except (BotoCoreError, ClientError) as e:
            log.error("DynamoDB put_metadata failed for %s: %s", item.get("image_id"), e)
            raise MetadataStoreError() from e
        log.debug("Inserted metadata %s", item.get("image_id"))

    def get_metadata(self, image_id: str) -> Optional[Dict[str, Any]]:
        try:
            resp = self._table().get_item(Key={"image_id": image_id}, ConsistentRead=True)
        except (BotoCoreError, ClientError) as e:
            log.error("DynamoDB get_metadata failed for %s: %s", image_id, e)
            raise MetadataStoreError() from e
        return resp.get("Item")

    def update_metadata(self, image_id: str, changes: Dict[str, Any], expected_version: int) -> Dict[str, Any]:
        """
            Applies changes if the stored version still equals expected_version,
            bumping the version. Returns the updated item.
        """
        names = {"#version": "version"}
        values = {":expected": expected_version, ":next": expected_version + 1}
        assignments = ["#version = :next"]
        for i, (field, value) in enumerate(sorted(changes.items())):
            names[f"#f{i}"] = field
            values[f":v{i}"] = value
            assignments.append(f"#f{i} = :v{i}")
        try:
            resp = self._table().update_item(
                Key={"image_id": image_id},
                UpdateExpression="SET " + ", ".join(assignments),
                ConditionExpression="attribute_exists(image_id) AND #version = :expected",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                if self.get_metadata(image_id) is None:
                    raise ImageNotFoundException(image_id) from e
                raise ConcurrentUpdateError(image_id) from e
            log.error("DynamoDB update_metadata failed for %s: %s", image_id, e)
            raise MetadataStoreError() from e
        except BotoCoreError as e:
            log.error("DynamoDB update_metadata failed for %s: %s", image_id, e)
            raise MetadataStoreError() from e
        log.debug("Updated metadata %s to version %d", image_id, expected_version + 1)
        return resp["Attributes"]

    def delete_metadata(self, image_id: str):
        try:
            self._table().delete_item(Key={"image_id": image_id})
        except (BotoCoreError, ClientError) as e:
            log.error("DynamoDB delete_metadata failed for %s: %s", image_id, e)
            raise MetadataStoreError() from e
        log.debug("Deleted metadata %s", image_id)

    def scan_metadata(self, filter_expression=None) -> List[Dict[str, Any]]:
        """Returns every item matching filter_expression, following scan pages."""
        table = self._table()
        scan_kwargs = {}
        if filter_expression is not None:
            scan_kwargs["FilterExpression"] = filter_expression
        items = []
        try:
            while True:
                resp = table.scan(**scan_kwargs)
                items.extend(resp.get("Items", []))
                last_key = resp.get("LastEvaluatedKey")
                if not last_key:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_key
        except (BotoCoreError, ClientError) as e:
            log.error("DynamoDB scan_metadata failed: %s", e)
            raise MetadataStoreError() from e
        return items

    def get_user_group_ids(self, user_id: str) -> List[str]:
        try:
            resp = self.resource.Table(self.membership_table_name).get_item(Key={"user_id": user_id})
        except (BotoCoreError, ClientError) as e:
            log.error("DynamoDB membership lookup failed for %s: %s", user_id, e)
            raise MetadataStoreError() from e
        return list(resp.get("Item", {}).get("group_ids", []))

    def close(self):
        log.info("Closed DynamoDB resource")
