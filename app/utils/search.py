from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from app.utils.amounts import normalize_amount
from app.utils.categorization import UNCATEGORIZED


@dataclass
class TransactionQuery:
    search: Optional[str] = None
    category_id: Optional[str] = None
    user_category_name: Optional[str] = None
    merchant_name: Optional[str] = None
    account_id: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    transaction_type: Optional[str] = None
    pending: Optional[bool] = None
    tags: List[str] = field(default_factory=list)
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    limit: int = 100
    offset: int = 0
    sort_by: str = "date"
    sort_order: str = "desc"


def _contains(haystack: Optional[str], needle: str) -> bool:
    return needle.lower() in (haystack or "").lower()


def _is_uncategorized(tx: Mapping[str, Any]) -> bool:
    provider = tx.get("plaid_primary_category")
    return not tx.get("user_category_name") and (not provider or provider == UNCATEGORIZED)


def matches(tx: Mapping[str, Any], query: TransactionQuery) -> bool:
    if query.search and not _contains(tx.get("name"), query.search):
        return False
    if query.category_id and tx.get("category_id") != query.category_id:
        return False
    if query.user_category_name:
        if query.user_category_name == UNCATEGORIZED:
            if not _is_uncategorized(tx):
                return False
        elif tx.get("user_category_name") != query.user_category_name:
            return False
    if query.merchant_name and not _contains(tx.get("merchant_name"), query.merchant_name):
        return False
    if query.account_id and tx.get("account_id") != query.account_id:
        return False
    if query.start_date and (tx.get("date") or "") < query.start_date:
        return False
    if query.end_date and (tx.get("date") or "") > query.end_date:
        return False
    if query.transaction_type and tx.get("transaction_type") != query.transaction_type:
        return False
    if query.pending is not None and bool(tx.get("pending")) != query.pending:
        return False
    if query.tags and not set(query.tags).issubset(tx.get("tags") or []):
        return False
    amount = normalize_amount(tx.get("amount"))
    if query.min_amount is not None and amount < query.min_amount:
        return False
    if query.max_amount is not None and amount > query.max_amount:
        return False
    return True


def search_transactions(
    transactions: List[Mapping[str, Any]],
    query: TransactionQuery,
) -> Dict[str, Any]:
    """Filter, sort and page stored transactions. ``count`` is the pre-paging total."""
    matched = [tx for tx in transactions if matches(tx, query)]

    descending = query.sort_order not in ("asc", "ascending")
    sort_by = query.sort_by or "date"
    if sort_by == "amount":
        matched.sort(key=lambda tx: normalize_amount(tx.get("amount")), reverse=descending)
    else:
        matched.sort(key=lambda tx: str(tx.get(sort_by) or ""), reverse=descending)

    page = matched[query.offset: query.offset + query.limit]
    return {
        "transactions": page,
        "count": len(matched),
        "limit": query.limit,
        "offset": query.offset,
    }
