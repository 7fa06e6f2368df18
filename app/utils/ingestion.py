"""
Reshaping of Plaid payloads into datastore rows.

Everything here works on the plain dicts returned by ``plaid_client`` and has
no I/O, so the sync paths and the tests share the same mapping.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

from app.utils.due_dates import next_due_date

SUBSCRIPTION_CATEGORY_HINTS = ("subscription", "software", "streaming")

SUBSCRIPTION_MERCHANTS = (
    "cursor", "openai", "apple", "squarespace", "workspace", "worksp", "spotify", "netflix",
    "disney", "hulu", "amazon prime", "youtube premium", "adobe", "microsoft",
    "google", "dropbox", "slack", "zoom", "notion", "figma", "canva", "github",
    "gitlab", "atlassian", "jira", "confluence", "salesforce", "hubspot", "zendesk",
    "intercom", "mailchimp", "sendgrid", "twilio", "stripe", "paypal", "shopify",
    "wix", "wordpress", "webflow", "framer", "linear", "vercel", "netlify",
    "cloudflare", "aws", "azure", "gcp", "digitalocean", "heroku", "mongodb",
    "redis", "elastic", "datadog", "sentry", "new relic", "loggly", "papertrail",
)


def _iso(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    return str(value)[:10]


def _amount(value: Optional[Mapping[str, Any]]) -> float:
    if not value:
        return 0.0
    return float(value.get("amount") or 0)


def account_row(
    user_id: str,
    plaid_item_id: str,
    account: Mapping[str, Any],
    institution_name: str,
) -> Dict[str, Any]:
    balances = account.get("balances") or {}
    return {
        "user_id": user_id,
        "plaid_item_id": plaid_item_id,
        "account_id": account["account_id"],
        "name": account.get("name"),
        "type": account.get("type"),
        "subtype": account.get("subtype"),
        "mask": account.get("mask"),
        "balance_current": balances.get("current") or 0,
        "balance_available": balances.get("available"),
        "currency_code": balances.get("iso_currency_code") or "USD",
        "institution_name": institution_name,
    }


def transaction_row(user_id: str, account_id: str, tx: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Map a Plaid transaction to a stored row.

    Plaid amounts are positive for money leaving the account, so a positive
    amount is an expense, a negative one income and zero a transfer.
    """
    amount = float(tx.get("amount") or 0)
    categories = list(tx.get("category") or [])
    location = tx.get("location") or {}

    return {
        "user_id": user_id,
        "account_id": account_id,
        "transaction_id": tx["transaction_id"],
        "amount": amount,
        "date": _iso(tx.get("date")),
        "authorized_date": _iso(tx.get("authorized_date")),
        "posted_date": _iso(tx.get("date")),
        "name": tx.get("name"),
        "plaid_category": categories,
        "plaid_primary_category": categories[0] if categories else None,
        "plaid_detailed_category": " > ".join(categories) if categories else None,
        "merchant_name": tx.get("merchant_name") or None,
        "location_city": location.get("city") or None,
        "location_state": location.get("region") or None,
        "location_country": location.get("country") or None,
        "location_address": location.get("address") or None,
        "location_lat": location.get("lat") or None,
        "location_lon": location.get("lon") or None,
        "transaction_type": "expense" if amount > 0 else "income",
        "payment_channel": tx.get("payment_channel") or None,
        "check_number": tx.get("check_number") or None,
        "pending": bool(tx.get("pending")),
        "is_transfer": amount == 0,
    }


def transaction_rows(
    user_id: str,
    account_map: Mapping[str, str],
    transactions: List[Mapping[str, Any]],
) -> List[Dict[str, Any]]:
    """Rows for every transaction whose Plaid account is known locally."""
    rows = []
    for tx in transactions:
        account_id = account_map.get(tx.get("account_id"))
        if account_id:
            rows.append(transaction_row(user_id, account_id, tx))
    return rows


def is_subscription_stream(stream: Mapping[str, Any]) -> bool:
    merchant = (stream.get("merchant_name") or stream.get("description") or "").lower()
    categories = [c.lower() for c in stream.get("category") or []]
    category_match = any(hint in c for c in categories for hint in SUBSCRIPTION_CATEGORY_HINTS)
    merchant_match = any(keyword in merchant for keyword in SUBSCRIPTION_MERCHANTS)
    return category_match or merchant_match


def _stream_is_active(stream: Mapping[str, Any]) -> bool:
    is_active = stream.get("is_active")
    if isinstance(is_active, bool):
        return is_active
    return str(stream.get("status") or "").upper() == "MATURE"


def _stream_row(
    user_id: str,
    account_id: str,
    stream: Mapping[str, Any],
    transaction_type: str,
    today: Optional[date],
) -> Dict[str, Any]:
    frequency = str(stream.get("frequency") or "UNKNOWN")
    last_amount = _amount(stream.get("last_amount")) or _amount(stream.get("average_amount"))
    average_amount = _amount(stream.get("average_amount"))
    if transaction_type == "income":
        last_amount, average_amount = abs(last_amount), abs(average_amount)
    due = next_due_date(stream.get("last_date"), frequency, today=today)
    categories = stream.get("category") or []

    return {
        "user_id": user_id,
        "account_id": account_id,
        "name": stream.get("merchant_name") or stream.get("description") or "Unknown",
        "merchant_name": stream.get("merchant_name") or None,
        "expected_amount": last_amount,
        "average_amount": average_amount,
        "frequency": frequency.lower(),
        "start_date": _iso(stream.get("first_date")) or (today or date.today()).isoformat(),
        "last_transaction_date": _iso(stream.get("last_date")),
        "next_due_date": due.isoformat() if due else None,
        "transaction_type": transaction_type,
        "is_subscription": transaction_type == "expense" and is_subscription_stream(stream),
        "is_active": _stream_is_active(stream),
        "total_occurrences": len(stream.get("transaction_ids") or []),
        "notes": ", ".join(categories) if categories else None,
    }


def recurring_rows_from_streams(
    user_id: str,
    account_map: Mapping[str, str],
    outflow_streams: List[Mapping[str, Any]],
    inflow_streams: List[Mapping[str, Any]],
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Recurring rows for Plaid outflow (expense) and inflow (income) streams."""
    rows = []
    for streams, transaction_type in ((outflow_streams, "expense"), (inflow_streams, "income")):
        for stream in streams:
            account_id = account_map.get(stream.get("account_id"))
            if not account_id:
                continue
            rows.append(_stream_row(user_id, account_id, stream, transaction_type, today))
    return rows


def _physical_key(account: Mapping[str, Any]) -> tuple:
    return (account.get("mask"), account.get("type"), account.get("subtype"))


def find_relinked_duplicates(
    existing: List[Mapping[str, Any]],
    incoming: List[Mapping[str, Any]],
    plaid_item_id: str,
) -> List[str]:
    """
    Ids of stored accounts from other Plaid items that describe the same
    physical account (mask, type, subtype) as a freshly linked one.
    """
    incoming_keys = {_physical_key(account) for account in incoming}
    return [
        account["id"]
        for account in existing
        if account.get("plaid_item_id") != plaid_item_id and _physical_key(account) in incoming_keys
    ]


def find_duplicate_accounts(accounts: List[Mapping[str, Any]]) -> List[str]:
    """
    Group accounts by mask/type/subtype and return the ids of every account
    but the newest (by ``created_at``) in each group.
    """
    groups: Dict[tuple, List[Mapping[str, Any]]] = {}
    for account in accounts:
        groups.setdefault(_physical_key(account), []).append(account)

    to_remove: List[str] = []
    for group in groups.values():
        if len(group) < 2:
            continue
        newest_first = sorted(group, key=lambda a: a.get("created_at") or "", reverse=True)
        to_remove.extend(account["id"] for account in newest_first[1:])
    return to_remove
