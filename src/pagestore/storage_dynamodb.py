"""DynamoDB table binding."""

from __future__ import annotations

import json
import logging
import time
from decimal import Decimal
from typing import Any, Sequence

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from pagestore.batch import DeleteItem, Mutation, PutItem
from pagestore.config import PageStoreConfig
from pagestore.errors import StorageBackendError
from pagestore.keys import Keys
from pagestore.storage import check_batch

logger = logging.getLogger(__name__)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _to_dynamo(item: dict[str, Any]) -> dict[str, Any]:
    # DynamoDB rejects floats; route numbers through Decimal.
    plain = json.loads(json.dumps(item), parse_float=Decimal)
    return {k: _serializer.serialize(v) for k, v in plain.items()}


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, set)):
        return [_plain(v) for v in value]
    return value


def _from_dynamo(item: dict[str, Any]) -> dict[str, Any]:
    return {k: _plain(_deserializer.deserialize(v)) for k, v in item.items()}


def _error_detail(err: Exception) -> str:
    if isinstance(err, ClientError):
        error = err.response.get("Error", {})
        return f"{error.get('Code', 'ClientError')}: {error.get('Message', str(err))}"
    return str(err)


class DynamoDBTable:
    """DynamoDB-backed page table (``PK``/``SK`` plus the ``GSI1`` path index)."""

    def __init__(
        self,
        *,
        table_name: str | None = None,
        config: PageStoreConfig | None = None,
        client: Any = None,
    ) -> None:
        self._config = config or PageStoreConfig()
        self.table_name = table_name or self._config.table_name
        self.index_name = self._config.index_name
        self.max_batch_items = self._config.max_batch_items

        if client is None:
            session = boto3.Session(region_name=self._config.dynamodb_region)
            client = session.client(
                "dynamodb",
                region_name=self._config.dynamodb_region,
                endpoint_url=self._config.dynamodb_endpoint_url,
                config=BotoConfig(
                    connect_timeout=self._config.request_timeout_s,
                    read_timeout=self._config.request_timeout_s,
                    retries={"max_attempts": 5, "mode": "standard"},
                ),
            )
        self._client = client

    # --- Bootstrap ---

    def initialize(self) -> None:
        """Create the table and its path index if they do not exist yet."""
        try:
            self._client.describe_table(TableName=self.table_name)
            return
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") != "ResourceNotFoundException":
                raise StorageBackendError("initialize", _error_detail(e)) from e
        except BotoCoreError as e:
            raise StorageBackendError("initialize", _error_detail(e)) from e

        try:
            self._client.create_table(
                TableName=self.table_name,
                BillingMode="PAY_PER_REQUEST",
                AttributeDefinitions=[
                    {"AttributeName": name, "AttributeType": "S"}
                    for name in ("PK", "SK", "GSI1_PK", "GSI1_SK")
                ],
                KeySchema=[
                    {"AttributeName": "PK", "KeyType": "HASH"},
                    {"AttributeName": "SK", "KeyType": "RANGE"},
                ],
                GlobalSecondaryIndexes=[
                    {
                        "IndexName": self.index_name,
                        "KeySchema": [
                            {"AttributeName": "GSI1_PK", "KeyType": "HASH"},
                            {"AttributeName": "GSI1_SK", "KeyType": "RANGE"},
                        ],
                        "Projection": {"ProjectionType": "ALL"},
                    }
                ],
            )
            self._client.get_waiter("table_exists").wait(TableName=self.table_name)
        except (BotoCoreError, ClientError) as e:
            raise StorageBackendError("initialize", _error_detail(e)) from e

    def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            close()

    def storage_info(self) -> dict[str, Any]:
        return {
            "backend": "dynamodb",
            "table_name": self.table_name,
            "index_name": self.index_name,
            "max_batch_items": self.max_batch_items,
            "region": self._config.dynamodb_region,
            "endpoint_url": self._config.dynamodb_endpoint_url,
        }

    # --- Reads ---

    def get_item(self, keys: Keys) -> dict[str, Any] | None:
        try:
            resp = self._client.get_item(
                TableName=self.table_name,
                Key=_to_dynamo(keys.as_dict()),
                ConsistentRead=True,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageBackendError("get_item", _error_detail(e)) from e
        item = resp.get("Item")
        return _from_dynamo(item) if item else None

    def query(
        self,
        partition_key: str,
        *,
        index: str | None = None,
        eq: str | None = None,
        lt: str | None = None,
        lte: str | None = None,
        gt: str | None = None,
        gte: str | None = None,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        if index is None:
            pk_name, sk_name = "PK", "SK"
        elif index == self.index_name:
            pk_name, sk_name = "GSI1_PK", "GSI1_SK"
        else:
            raise StorageBackendError("query", f"Unknown index '{index}'")

        expression = "#pk = :pk"
        names = {"#pk": pk_name}
        values: dict[str, Any] = {":pk": partition_key}
        bounds = [(op, v) for op, v in (("=", eq), ("<", lt), ("<=", lte), (">", gt), (">=", gte))]
        bounds = [(op, v) for op, v in bounds if v is not None]
        if len(bounds) > 1:
            raise StorageBackendError("query", "Only one sort key condition is supported")
        if bounds:
            op, value = bounds[0]
            expression += f" AND #sk {op} :sk"
            names["#sk"] = sk_name
            values[":sk"] = value

        kwargs: dict[str, Any] = {
            "TableName": self.table_name,
            "KeyConditionExpression": expression,
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": _to_dynamo(values),
            "ScanIndexForward": not reverse,
        }
        if index is not None:
            kwargs["IndexName"] = index
        else:
            kwargs["ConsistentRead"] = True

        items: list[dict[str, Any]] = []
        try:
            while True:
                if limit is not None:
                    kwargs["Limit"] = limit - len(items)
                resp = self._client.query(**kwargs)
                items.extend(_from_dynamo(i) for i in resp.get("Items", []))
                last_key = resp.get("LastEvaluatedKey")
                if not last_key or (limit is not None and len(items) >= limit):
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except (BotoCoreError, ClientError) as e:
            raise StorageBackendError("query", _error_detail(e)) from e
        return items

    # --- Writes ---

    def _request(self, item: Mutation) -> dict[str, Any]:
        if isinstance(item, PutItem):
            return {"PutRequest": {"Item": _to_dynamo(item.item)}}
        if isinstance(item, DeleteItem):
            return {"DeleteRequest": {"Key": _to_dynamo(item.keys.as_dict())}}
        raise StorageBackendError("batch_write", f"Unsupported mutation {type(item).__name__}")

    def batch_write(self, items: Sequence[Mutation]) -> None:
        check_batch(items, self.max_batch_items)
        if not items:
            return
        pending = {self.table_name: [self._request(i) for i in items]}
        attempts = 0
        while pending:
            try:
                resp = self._client.batch_write_item(RequestItems=pending)
            except (BotoCoreError, ClientError) as e:
                raise StorageBackendError("batch_write", _error_detail(e)) from e
            pending = resp.get("UnprocessedItems") or {}
            if not pending:
                return
            attempts += 1
            remaining = sum(len(v) for v in pending.values())
            if attempts > self._config.unprocessed_retry_attempts:
                raise StorageBackendError(
                    "batch_write",
                    f"{remaining} items left unprocessed after {attempts} attempts",
                )
            logger.warning(
                "Resubmitting %d unprocessed items to %s (attempt %d)",
                remaining,
                self.table_name,
                attempts,
            )
            time.sleep(self._config.unprocessed_backoff_s * (2 ** (attempts - 1)))
