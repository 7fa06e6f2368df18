"""
Per-item sync of Plaid data into DynamoDB.

Used by the manual sync endpoints, the post-link auto sync and the background
scheduler. A failing item is logged and skipped so one broken link never
blocks the others.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from plaid.exceptions import ApiException

from app.core.config import settings
from app.core.encryption import EncryptionError, decrypt, encrypt, is_encrypted
from app.db import dynamo
from app.utils import plaid_client
from app.utils.ingestion import recurring_rows_from_streams, transaction_rows
from app.utils.recurring import detect_recurring_patterns

logger = logging.getLogger(__name__)

# Transactions considered by the pattern detector fallback
DETECTION_HISTORY_LIMIT = 500


def seal_access_token(access_token: str) -> str:
    if not settings.ENCRYPTION_KEY:
        logger.warning("ENCRYPTION_KEY not set, storing Plaid access token in plaintext")
        return access_token
    return encrypt(access_token, settings.ENCRYPTION_KEY)


def open_access_token(item: Mapping[str, Any]) -> Optional[str]:
    """Decrypt a stored access token; None when it cannot be decrypted."""
    token = item.get("access_token") or ""
    if settings.ENCRYPTION_KEY and is_encrypted(token):
        try:
            return decrypt(token, settings.ENCRYPTION_KEY)
        except EncryptionError as e:
            logger.error(f"Error decrypting access token for item {item.get('item_id')}: {str(e)}")
            return None
    return token


def account_map_for_item(user_id: str, item_id: str) -> Dict[str, str]:
    """Plaid account_id -> stored account id, for accounts of one item."""
    return {
        account["account_id"]: account["id"]
        for account in dynamo.get_accounts_for_user(user_id)
        if account.get("plaid_item_id") == item_id
    }


def sync_item_transactions(
    user_id: str,
    item: Mapping[str, Any],
    access_token: str,
    days: Optional[int] = None,
) -> int:
    """Fetch recent transactions for one item and upsert them. Returns rows stored."""
    days = days or settings.TRANSACTION_SYNC_DAYS
    end_date = date.today()
    start_date = end_date - timedelta(days=days)

    transactions = plaid_client.get_transactions(access_token, start_date, end_date)
    logger.info(f"Fetched {len(transactions)} transactions from {item.get('institution_name')}")

    rows = transaction_rows(user_id, account_map_for_item(user_id, item["item_id"]), transactions)
    stored = dynamo.upsert_transactions(rows)
    if stored:
        logger.info(f"Stored {stored} transactions for item {item['item_id']}")
    return stored


def sync_item_recurring(
    user_id: str,
    item: Mapping[str, Any],
    access_token: str,
    detect_fallback: bool = True,
) -> int:
    """
    Store Plaid's recurring streams for one item. When Plaid returns none and
    ``detect_fallback`` is set, run the local pattern detector over stored
    transactions of the item's accounts instead.
    """
    account_map = account_map_for_item(user_id, item["item_id"])
    streams = plaid_client.get_recurring_streams(access_token, list(account_map.keys()))
    logger.info(
        f"Found {len(streams['inflow_streams'])} recurring inflows and "
        f"{len(streams['outflow_streams'])} recurring outflows for {item.get('institution_name')}"
    )

    rows = recurring_rows_from_streams(
        user_id, account_map, streams["outflow_streams"], streams["inflow_streams"]
    )
    if rows:
        return dynamo.upsert_recurring(rows)

    if not detect_fallback:
        return 0

    logger.info("No recurring streams from Plaid, using pattern detection")
    local_account_ids = set(account_map.values())
    history = [
        tx for tx in dynamo.get_transactions_for_user(user_id)
        if tx.get("account_id") in local_account_ids
    ][:DETECTION_HISTORY_LIMIT]

    detected = [candidate.to_dict() for candidate in detect_recurring_patterns(history)]
    if not detected:
        return 0
    stored = dynamo.upsert_recurring(detected)
    logger.info(f"Detected and stored {stored} recurring patterns for {item.get('institution_name')}")
    return stored


def sync_user_items(
    user_id: str,
    items: List[Mapping[str, Any]],
    include_transactions: bool = True,
) -> Dict[str, int]:
    """Sync every item of a user; per-item failures are logged and skipped."""
    totals = {"transactions": 0, "recurring": 0}
    synced_at = datetime.now(timezone.utc).isoformat()

    for item in items:
        access_token = open_access_token(item)
        if not access_token:
            continue
        try:
            if include_transactions:
                totals["transactions"] += sync_item_transactions(user_id, item, access_token)
                dynamo.touch_plaid_item(user_id, item["item_id"], synced_at)
        except ApiException as e:
            if plaid_client.plaid_error_code(e) == "PRODUCT_NOT_READY":
                logger.warning(f"Transactions not ready yet for item {item['item_id']}, will retry on next sync")
            else:
                logger.error(f"Error fetching transactions for item {item['item_id']}: {e}")
            continue

        try:
            totals["recurring"] += sync_item_recurring(user_id, item, access_token)
        except ApiException as e:
            logger.error(f"Failed to fetch recurring streams for {item.get('institution_name')}: {e}")
    return totals
