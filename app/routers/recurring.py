import logging

from fastapi import APIRouter, Depends, HTTPException

from app.core.security import get_current_user_id
from app.db import dynamo
from app.utils.due_dates import annotate_due
from app.utils.sync import sync_user_items

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
def list_recurring(
    active_only: bool = True,
    upcoming_only: bool = False,
    user_id: str = Depends(get_current_user_id),
):
    """
    Recurring charges ordered by next due date (undated last), each annotated
    with ``days_until_due`` and a human ``due_in`` label.
    """
    rows = dynamo.get_recurring_for_user(user_id)
    if active_only:
        rows = [row for row in rows if row.get("is_active", True)]

    rows = annotate_due(rows)
    if upcoming_only:
        rows = [row for row in rows if row.get("days_until_due") is not None and row["days_until_due"] >= 0]

    rows.sort(key=lambda row: (row.get("next_due_date") is None, row.get("next_due_date") or ""))
    return {"recurring": rows}


@router.post("/sync")
def sync_recurring(user_id: str = Depends(get_current_user_id)):
    items = dynamo.get_plaid_items_for_user(user_id)
    if not items:
        raise HTTPException(status_code=400, detail="No linked accounts found")

    try:
        result = sync_user_items(user_id, items, include_transactions=False)
    except Exception as e:
        logger.error(f"Error syncing recurring transactions: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to sync recurring transactions")

    return {
        "success": True,
        "message": f"Successfully synced {result['recurring']} recurring transaction(s)",
        "synced_count": result["recurring"],
    }
