"""Unit tests for the DynamoDB table binding that do not require a live endpoint."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest
from botocore.exceptions import ClientError

from pagestore.batch import DeleteItem, PutItem
from pagestore.config import PageStoreConfig
from pagestore.errors import StorageBackendError
from pagestore.keys import Keys
from pagestore.storage_dynamodb import DynamoDBTable, _from_dynamo, _to_dynamo


def _client_error(code: str, operation: str = "Op") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} happened"}}, operation)


class _Waiter:
    def __init__(self, client: StubClient) -> None:
        self._client = client

    def wait(self, **kwargs: Any) -> None:
        self._client.calls.append(("wait", kwargs))


class StubClient:
    """Records calls and replays queued responses per operation."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.responses: dict[str, list[Any]] = {}

    def queue(self, operation: str, *responses: Any) -> None:
        self.responses.setdefault(operation, []).extend(responses)

    def _respond(self, operation: str, kwargs: dict[str, Any]) -> Any:
        self.calls.append((operation, kwargs))
        queued = self.responses.get(operation)
        resp = queued.pop(0) if queued else {}
        if isinstance(resp, Exception):
            raise resp
        return resp

    def describe_table(self, **kwargs):
        return self._respond("describe_table", kwargs)

    def create_table(self, **kwargs):
        return self._respond("create_table", kwargs)

    def get_waiter(self, name):
        return _Waiter(self)

    def get_item(self, **kwargs):
        return self._respond("get_item", kwargs)

    def query(self, **kwargs):
        return self._respond("query", kwargs)

    def batch_write_item(self, **kwargs):
        return self._respond("batch_write_item", kwargs)


@pytest.fixture
def client():
    return StubClient()


@pytest.fixture
def dynamo(client):
    config = PageStoreConfig(unprocessed_backoff_s=0.0, unprocessed_retry_attempts=2)
    return DynamoDBTable(table_name="pages", config=config, client=client)


class TestSerialization:
    def test_floats_become_decimals(self):
        assert _to_dynamo({"n": 1.5}) == {"n": {"N": "1.5"}}

    def test_round_trip_numbers(self):
        item = {"version": 3, "ratio": 0.25, "tags": ["a"], "nested": {"x": 1}, "none": None}
        assert _from_dynamo(_to_dynamo(item)) == item

    def test_integral_decimals_become_ints(self):
        assert _from_dynamo({"v": {"N": "7"}}) == {"v": 7}
        assert isinstance(_from_dynamo({"v": {"N": "7"}})["v"], int)


class TestInitialize:
    def test_existing_table_is_left_alone(self, dynamo, client):
        client.queue("describe_table", {"Table": {"TableName": "pages"}})
        dynamo.initialize()
        assert [c[0] for c in client.calls] == ["describe_table"]

    def test_missing_table_is_created_with_index(self, dynamo, client):
        client.queue("describe_table", _client_error("ResourceNotFoundException"))
        dynamo.initialize()
        ops = [c[0] for c in client.calls]
        assert ops == ["describe_table", "create_table", "wait"]
        create_kwargs = client.calls[1][1]
        assert create_kwargs["BillingMode"] == "PAY_PER_REQUEST"
        assert create_kwargs["GlobalSecondaryIndexes"][0]["IndexName"] == "GSI1"

    def test_other_errors_propagate(self, dynamo, client):
        client.queue("describe_table", _client_error("AccessDeniedException"))
        with pytest.raises(StorageBackendError) as exc_info:
            dynamo.initialize()
        assert "AccessDeniedException" in exc_info.value.detail


class TestReads:
    def test_get_item(self, dynamo, client):
        client.queue("get_item", {"Item": {"PK": {"S": "a"}, "SK": {"S": "b"}, "v": {"N": "2"}}})
        assert dynamo.get_item(Keys("a", "b")) == {"PK": "a", "SK": "b", "v": 2}
        kwargs = client.calls[0][1]
        assert kwargs["Key"] == {"PK": {"S": "a"}, "SK": {"S": "b"}}
        assert kwargs["ConsistentRead"] is True

    def test_get_missing_item(self, dynamo, client):
        client.queue("get_item", {})
        assert dynamo.get_item(Keys("a", "b")) is None

    def test_query_with_sort_condition(self, dynamo, client):
        client.queue("query", {"Items": [{"SK": {"S": "REV#0001"}}]})
        items = dynamo.query("pk", lt="REV#0002", reverse=True, limit=1)
        assert items == [{"SK": "REV#0001"}]
        kwargs = client.calls[0][1]
        assert kwargs["KeyConditionExpression"] == "#pk = :pk AND #sk < :sk"
        assert kwargs["ExpressionAttributeNames"] == {"#pk": "PK", "#sk": "SK"}
        assert kwargs["ScanIndexForward"] is False
        assert kwargs["Limit"] == 1

    def test_query_index(self, dynamo, client):
        dynamo.query("PATH", index="GSI1", eq="/home")
        kwargs = client.calls[0][1]
        assert kwargs["IndexName"] == "GSI1"
        assert kwargs["ExpressionAttributeNames"] == {"#pk": "GSI1_PK", "#sk": "GSI1_SK"}
        assert "ConsistentRead" not in kwargs

    def test_query_follows_pagination(self, dynamo, client):
        client.queue(
            "query",
            {"Items": [{"SK": {"S": "1"}}], "LastEvaluatedKey": {"PK": {"S": "pk"}}},
            {"Items": [{"SK": {"S": "2"}}]},
        )
        assert [i["SK"] for i in dynamo.query("pk")] == ["1", "2"]
        assert client.calls[1][1]["ExclusiveStartKey"] == {"PK": {"S": "pk"}}

    def test_query_rejects_two_bounds(self, dynamo):
        with pytest.raises(StorageBackendError):
            dynamo.query("pk", gt="a", lt="z")

    def test_query_error_is_wrapped(self, dynamo, client):
        client.queue("query", _client_error("ProvisionedThroughputExceededException"))
        with pytest.raises(StorageBackendError) as exc_info:
            dynamo.query("pk")
        assert exc_info.value.operation == "query"


class TestBatchWrite:
    def test_put_and_delete_requests(self, dynamo, client):
        dynamo.batch_write([PutItem({"PK": "a", "SK": "1"}), DeleteItem(Keys("a", "2"))])
        requests = client.calls[0][1]["RequestItems"]["pages"]
        assert "PutRequest" in requests[0]
        assert requests[1] == {"DeleteRequest": {"Key": {"PK": {"S": "a"}, "SK": {"S": "2"}}}}

    def test_unprocessed_items_are_resubmitted(self, dynamo, client):
        leftover = {"pages": [{"DeleteRequest": {"Key": {"PK": {"S": "a"}, "SK": {"S": "2"}}}}]}
        client.queue("batch_write_item", {"UnprocessedItems": leftover}, {"UnprocessedItems": {}})
        dynamo.batch_write([PutItem({"PK": "a", "SK": "1"}), DeleteItem(Keys("a", "2"))])
        assert len(client.calls) == 2
        assert client.calls[1][1]["RequestItems"] == leftover

    def test_unprocessed_items_give_up(self, dynamo, client):
        leftover = {"pages": [{"DeleteRequest": {"Key": {"PK": {"S": "a"}, "SK": {"S": "2"}}}}]}
        client.queue("batch_write_item", *[{"UnprocessedItems": leftover}] * 5)
        with pytest.raises(StorageBackendError) as exc_info:
            dynamo.batch_write([DeleteItem(Keys("a", "2"))])
        assert "unprocessed" in exc_info.value.detail
        assert len(client.calls) == 3

    def test_oversized_batch_rejected_before_call(self, dynamo, client):
        items = [DeleteItem(Keys("a", str(i))) for i in range(26)]
        with pytest.raises(StorageBackendError):
            dynamo.batch_write(items)
        assert client.calls == []

    def test_empty_batch(self, dynamo, client):
        dynamo.batch_write([])
        assert client.calls == []

    def test_storage_info(self, dynamo):
        info = dynamo.storage_info()
        assert info["backend"] == "dynamodb"
        assert info["table_name"] == "pages"


def test_decimal_values_are_plain_after_read():
    assert _from_dynamo({"r": {"N": str(Decimal("0.5"))}}) == {"r": 0.5}
