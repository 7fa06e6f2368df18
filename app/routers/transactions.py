import logging
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.core.security import get_current_user_id
from app.db import dynamo
from app.models.transaction import TransactionUpdate
from app.utils.categorization import plan_auto_categorization
from app.utils.search import TransactionQuery, search_transactions
from app.utils.sync import sync_user_items

router = APIRouter()
logger = logging.getLogger(__name__)

RECENT_DAYS = 30


@router.get("")
def list_recent_transactions(user_id: str = Depends(get_current_user_id)):
    """Last 30 days of transactions plus the time of the most recent sync."""
    start_date = (date.today() - timedelta(days=RECENT_DAYS)).isoformat()
    transactions = dynamo.get_transactions_for_user(user_id, start_date=start_date)

    synced = [item.get("updated_at") for item in dynamo.get_plaid_items_for_user(user_id) if item.get("updated_at")]
    return {
        "transactions": transactions,
        "last_synced": max(synced) if synced else None,
    }


@router.post("/sync")
def sync_transactions(user_id: str = Depends(get_current_user_id)):
    items = dynamo.get_plaid_items_for_user(user_id)
    if not items:
        raise HTTPException(status_code=400, detail="No linked accounts found")

    logger.info(f"Manual sync for user {user_id} across {len(items)} items")
    try:
        result = sync_user_items(user_id, items)
    except Exception as e:
        logger.error(f"Error syncing transactions: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to sync transactions")

    return {
        "success": True,
        "message": f"Successfully synced {result['transactions']} transaction(s) and recurring charges",
        "synced_count": result["transactions"],
        "recurring_count": result["recurring"],
        "synced_at": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/search")
def search(
    user_id: str = Depends(get_current_user_id),
    search: Optional[str] = None,
    category_id: Optional[str] = None,
    user_category_name: Optional[str] = None,
    merchant_name: Optional[str] = None,
    account_id: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    transaction_type: Optional[str] = None,
    pending: Optional[bool] = None,
    tags: Optional[str] = None,
    min_amount: Optional[float] = None,
    max_amount: Optional[float] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    sort_by: str = "date",
    sort_order: str = "desc",
):
    """Filtered, sorted and paged transactions. ``tags`` is comma separated."""
    query = TransactionQuery(
        search=search,
        category_id=category_id,
        user_category_name=user_category_name,
        merchant_name=merchant_name,
        account_id=account_id,
        start_date=start_date,
        end_date=end_date,
        transaction_type=transaction_type,
        pending=pending,
        tags=[tag.strip() for tag in tags.split(",") if tag.strip()] if tags else [],
        min_amount=min_amount,
        max_amount=max_amount,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    transactions = dynamo.get_transactions_for_user(user_id, start_date=start_date, end_date=end_date)
    return search_transactions(transactions, query)


@router.post("/auto-categorize")
def auto_categorize(user_id: str = Depends(get_current_user_id)):
    """Assign keyword-based categories to uncategorized or miscategorized transactions."""
    transactions = dynamo.get_transactions_for_user(user_id)
    if not transactions:
        return {
            "success": True,
            "message": "No transactions found",
            "total_checked": 0,
            "categorized_count": 0,
            "recategorized_count": 0,
            "uncategorized_count": 0,
        }

    updates, counts = plan_auto_categorization(transactions)
    for update in updates:
        dynamo.update_transaction(
            user_id,
            update["transaction_id"],
            {"user_category_name": update["user_category_name"]},
        )

    changed = counts["categorized"] + counts["recategorized"]
    logger.info(f"Auto-categorized {changed} transactions for user: {user_id}")
    return {
        "success": True,
        "message": (
            f"Categorized {counts['categorized']} and re-categorized "
            f"{counts['recategorized']} transaction(s)"
        ),
        "total_checked": len(transactions),
        "categorized_count": counts["categorized"],
        "recategorized_count": counts["recategorized"],
        "uncategorized_count": len(transactions) - changed,
    }


@router.patch("/update")
def update_transaction(
    body: TransactionUpdate,
    transaction_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
):
    if not transaction_id:
        raise HTTPException(status_code=400, detail="Transaction ID is required")

    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    updated = dynamo.update_transaction(user_id, transaction_id, updates)
    if not updated:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return {"transaction": updated}


@router.delete("/delete")
def delete_transaction(
    transaction_id: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
):
    if not transaction_id:
        raise HTTPException(status_code=400, detail="Transaction ID is required")

    if not dynamo.delete_transaction(user_id, transaction_id):
        raise HTTPException(status_code=404, detail="Transaction not found")
    return {"success": True, "message": "Transaction deleted successfully"}
