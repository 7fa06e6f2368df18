import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from app.core.config import settings

logger = logging.getLogger(__name__)

# Initialize DynamoDB resource
dynamodb = boto3.resource("dynamodb", region_name=settings.DYNAMO_REGION)

# Get table references
plaid_items_table = dynamodb.Table(settings.DYNAMO_PLAID_ITEMS_TABLE)
accounts_table = dynamodb.Table(settings.DYNAMO_ACCOUNTS_TABLE)
transactions_table = dynamodb.Table(settings.DYNAMO_TRANSACTIONS_TABLE)
recurring_table = dynamodb.Table(settings.DYNAMO_RECURRING_TABLE)

# GSI on (user_id, date) for date range queries. You must create this GSI manually
TRANSACTIONS_DATE_INDEX = "user-date-index"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_message(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Message", str(e))


def account_key(plaid_item_id: str, account_id: str) -> str:
    return f"{plaid_item_id}#{account_id}"


def recurring_key(account_id: Optional[str], name: str) -> str:
    return f"{account_id or 'none'}#{name}"


def _query_all(table, **kwargs) -> List[Dict[str, Any]]:
    """Run a query, following LastEvaluatedKey until every page is read."""
    items: List[Dict[str, Any]] = []
    while True:
        response = table.query(**kwargs)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return [_from_dynamo(item) for item in items]
        kwargs["ExclusiveStartKey"] = last_key


def _scan_all(table) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    kwargs: Dict[str, Any] = {}
    while True:
        response = table.scan(**kwargs)
        items.extend(response.get("Items", []))
        last_key = response.get("LastEvaluatedKey")
        if not last_key:
            return [_from_dynamo(item) for item in items]
        kwargs["ExclusiveStartKey"] = last_key


def _batch_put(table, items: Iterable[Dict[str, Any]]) -> int:
    count = 0
    with table.batch_writer() as batch:
        for item in items:
            batch.put_item(Item=_convert_for_dynamo(item))
            count += 1
    return count


def _batch_delete(table, keys: Iterable[Dict[str, Any]]) -> int:
    count = 0
    with table.batch_writer() as batch:
        for key in keys:
            batch.delete_item(Key=key)
            count += 1
    return count


# Plaid items


def put_plaid_item(item: dict):
    """Insert or replace a linked Plaid item for a user."""
    now = _now_iso()
    record = {"created_at": now, "updated_at": now, **item}
    try:
        plaid_items_table.put_item(Item=_convert_for_dynamo(record))
        return record
    except ClientError as e:
        logger.error(f"put_plaid_item failed: {_error_message(e)}")
        return None


def get_plaid_items_for_user(user_id: str) -> List[Dict[str, Any]]:
    try:
        return _query_all(plaid_items_table, KeyConditionExpression=Key("user_id").eq(user_id))
    except ClientError as e:
        logger.error(f"get_plaid_items_for_user failed: {_error_message(e)}")
        return []


def get_all_plaid_items() -> List[Dict[str, Any]]:
    """Every linked item across users, used by the background sync job."""
    try:
        return _scan_all(plaid_items_table)
    except ClientError as e:
        logger.error(f"get_all_plaid_items failed: {_error_message(e)}")
        return []


def touch_plaid_item(user_id: str, item_id: str, synced_at: Optional[str] = None) -> bool:
    """Record the last successful sync time on a Plaid item."""
    try:
        plaid_items_table.update_item(
            Key={"user_id": user_id, "item_id": item_id},
            UpdateExpression="SET updated_at = :ts",
            ExpressionAttributeValues={":ts": synced_at or _now_iso()},
        )
        return True
    except ClientError as e:
        logger.error(f"touch_plaid_item failed: {_error_message(e)}")
        return False


# Accounts


def upsert_accounts(accounts: List[dict]) -> bool:
    """Insert or update accounts keyed on (plaid_item_id, account_id)."""
    if not accounts:
        return True
    try:
        now = _now_iso()
        rows = [
            {"created_at": now, **row, "id": account_key(row["plaid_item_id"], row["account_id"]), "updated_at": now}
            for row in accounts
        ]
        _batch_put(accounts_table, rows)
        return True
    except ClientError as e:
        logger.error(f"upsert_accounts failed: {_error_message(e)}")
        return False


def get_accounts_for_user(user_id: str) -> List[Dict[str, Any]]:
    try:
        return _query_all(accounts_table, KeyConditionExpression=Key("user_id").eq(user_id))
    except ClientError as e:
        logger.error(f"get_accounts_for_user failed: {_error_message(e)}")
        return []


def delete_accounts(user_id: str, account_ids: List[str]) -> int:
    try:
        return _batch_delete(accounts_table, ({"user_id": user_id, "id": aid} for aid in account_ids))
    except ClientError as e:
        logger.error(f"delete_accounts failed: {_error_message(e)}")
        return 0


def _set_expression(updates: dict):
    """Build a SET update expression with placeholder names and values."""
    update_expression_parts = []
    expression_attribute_values = {}
    expression_attribute_names = {}

    for idx, (key, value) in enumerate(updates.items()):
        placeholder = f"#f{idx}"
        value_placeholder = f":v{idx}"
        update_expression_parts.append(f"{placeholder} = {value_placeholder}")
        expression_attribute_names[placeholder] = key
        expression_attribute_values[value_placeholder] = value

    update_expression = "SET " + ", ".join(update_expression_parts)
    return update_expression, expression_attribute_names, _convert_for_dynamo(expression_attribute_values)


# Transactions

TRANSACTION_KEY_FIELDS = ("user_id", "transaction_id")


def upsert_transactions(transactions: List[dict]) -> int:
    """
    Insert or update transactions keyed on (user_id, transaction_id).

    Only the attributes present on each row are written, so user edits
    (category, notes, tags, budget exclusion) survive a resync.
    """
    stored = 0
    try:
        for row in transactions:
            fields = {k: v for k, v in row.items() if k not in TRANSACTION_KEY_FIELDS}
            if not fields:
                continue
            update_expression, names, values = _set_expression(fields)
            transactions_table.update_item(
                Key={"user_id": row["user_id"], "transaction_id": row["transaction_id"]},
                UpdateExpression=update_expression,
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
            stored += 1
    except ClientError as e:
        logger.error(f"upsert_transactions failed: {_error_message(e)}")
    return stored


def get_transactions_for_user(
    user_id: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Transactions for a user, newest first. With a date range the date GSI is
    queried, otherwise the whole partition is read.
    """
    try:
        if start_date or end_date:
            condition = Key("user_id").eq(user_id)
            if start_date and end_date:
                condition = condition & Key("date").between(start_date, end_date)
            elif start_date:
                condition = condition & Key("date").gte(start_date)
            else:
                condition = condition & Key("date").lte(end_date)
            items = _query_all(
                transactions_table,
                IndexName=TRANSACTIONS_DATE_INDEX,
                KeyConditionExpression=condition,
            )
        else:
            items = _query_all(transactions_table, KeyConditionExpression=Key("user_id").eq(user_id))
        return sorted(items, key=lambda tx: tx.get("date") or "", reverse=True)
    except ClientError as e:
        logger.error(f"get_transactions_for_user failed: {_error_message(e)}")
        return []


def update_transaction(user_id: str, transaction_id: str, updates: dict):
    """
    Apply partial updates to a transaction. Returns the updated item or None.
    """
    if not updates:
        return None

    update_expression, names, values = _set_expression(updates)

    try:
        response = transactions_table.update_item(
            Key={"user_id": user_id, "transaction_id": transaction_id},
            UpdateExpression=update_expression,
            ConditionExpression="attribute_exists(transaction_id)",
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ReturnValues="ALL_NEW",
        )
        attributes = response.get("Attributes")
        return _from_dynamo(attributes) if attributes else None
    except ClientError as e:
        logger.error(f"update_transaction failed: {_error_message(e)}")
        return None


def delete_transaction(user_id: str, transaction_id: str) -> bool:
    """Delete a specific transaction item."""
    try:
        response = transactions_table.delete_item(
            Key={"user_id": user_id, "transaction_id": transaction_id},
            ReturnValues="ALL_OLD",
        )
        return "Attributes" in response
    except ClientError as e:
        logger.error(f"delete_transaction failed: {_error_message(e)}")
        return False


# Recurring transactions


def upsert_recurring(rows: List[dict]) -> int:
    """Insert or update recurring charges keyed on (user_id, name, account_id)."""
    if not rows:
        return 0
    try:
        keyed = [{**row, "recurring_id": recurring_key(row.get("account_id"), row["name"])} for row in rows]
        return _batch_put(recurring_table, keyed)
    except ClientError as e:
        logger.error(f"upsert_recurring failed: {_error_message(e)}")
        return 0


def get_recurring_for_user(user_id: str) -> List[Dict[str, Any]]:
    try:
        return _query_all(recurring_table, KeyConditionExpression=Key("user_id").eq(user_id))
    except ClientError as e:
        logger.error(f"get_recurring_for_user failed: {_error_message(e)}")
        return []


# Account removal


def delete_user_data(user_id: str) -> Dict[str, int]:
    """
    Remove every stored row for a user: transactions, recurring charges,
    accounts and Plaid items, in that order. Returns per-table counts.
    """
    counts = {"transactions": 0, "recurring": 0, "accounts": 0, "plaid_items": 0}
    plan = (
        ("transactions", transactions_table, "transaction_id"),
        ("recurring", recurring_table, "recurring_id"),
        ("accounts", accounts_table, "id"),
        ("plaid_items", plaid_items_table, "item_id"),
    )
    for name, table, sort_key in plan:
        try:
            items = _query_all(table, KeyConditionExpression=Key("user_id").eq(user_id))
            counts[name] = _batch_delete(
                table, ({"user_id": user_id, sort_key: item[sort_key]} for item in items)
            )
        except ClientError as e:
            logger.error(f"delete_user_data failed on {name}: {_error_message(e)}")
    return counts


def _convert_for_dynamo(obj: Any):
    """
    Recursively convert floats to Decimal for DynamoDB compatibility.
    """
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: _convert_for_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_convert_for_dynamo(v) for v in obj]
    return obj


def _from_dynamo(obj: Any):
    """
    Recursively convert Decimal instances back to native Python numeric types.
    """
    if isinstance(obj, list):
        return [_from_dynamo(item) for item in obj]
    if isinstance(obj, dict):
        return {k: _from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, Decimal):
        if obj % 1 == 0:
            return int(obj)
        return float(obj)
    return obj
