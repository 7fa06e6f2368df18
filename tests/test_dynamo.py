from decimal import Decimal

import pytest
from botocore.exceptions import ClientError

from app.db import dynamo
from app.utils.ingestion import transaction_row


class InMemoryTable:
    """Keeps items by (user_id, transaction_id) and applies SET updates like DynamoDB."""

    def __init__(self):
        self.items = {}

    def update_item(self, Key, UpdateExpression, ExpressionAttributeNames, ExpressionAttributeValues,
                    ConditionExpression=None, ReturnValues=None):
        key = (Key["user_id"], Key["transaction_id"])
        if ConditionExpression and key not in self.items:
            raise ClientError(
                {"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}},
                "UpdateItem",
            )

        item = self.items.setdefault(key, dict(Key))
        for assignment in UpdateExpression[len("SET "):].split(", "):
            name, value = assignment.split(" = ")
            item[ExpressionAttributeNames[name]] = ExpressionAttributeValues[value]
        return {"Attributes": dict(item)} if ReturnValues == "ALL_NEW" else {}


plaid_transaction = {
    "transaction_id": "tx-1",
    "account_id": "plaid-acc-1",
    "amount": 42.5,
    "date": "2024-06-01",
    "name": "DELTA AIR 0062",
    "category": ["Travel", "Airlines"],
    "pending": True,
}


@pytest.fixture
def table(monkeypatch):
    fake = InMemoryTable()
    monkeypatch.setattr(dynamo, "transactions_table", fake)
    return fake


def test_set_expression_uses_placeholders():
    expression, names, values = dynamo._set_expression({"notes": "trip", "amount": 1.5})
    assert expression == "SET #f0 = :v0, #f1 = :v1"
    assert names == {"#f0": "notes", "#f1": "amount"}
    assert values == {":v0": "trip", ":v1": Decimal("1.5")}


def test_resync_keeps_user_edits(table):
    row = transaction_row("user-1", "local-acc-1", plaid_transaction)
    assert dynamo.upsert_transactions([row]) == 1

    edited = dynamo.update_transaction(
        "user-1", "tx-1", {"user_category_name": "Travel", "notes": "trip", "tags": ["vacation"]}
    )
    assert edited["notes"] == "trip"

    # the posted version of the same transaction arrives on the next sync
    resynced = transaction_row("user-1", "local-acc-1", {**plaid_transaction, "pending": False, "amount": 45.0})
    assert dynamo.upsert_transactions([resynced]) == 1

    stored = dynamo._from_dynamo(table.items[("user-1", "tx-1")])
    assert stored["user_category_name"] == "Travel"
    assert stored["notes"] == "trip"
    assert stored["tags"] == ["vacation"]
    assert stored["pending"] is False
    assert stored["amount"] == 45


def test_update_missing_transaction_returns_none(table):
    assert dynamo.update_transaction("user-1", "nope", {"notes": "x"}) is None
    assert table.items == {}


def test_empty_upsert():
    assert dynamo.upsert_transactions([]) == 0
