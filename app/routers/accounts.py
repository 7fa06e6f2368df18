import logging

from fastapi import APIRouter, Depends, HTTPException

from app.core.security import get_current_user_id
from app.db import dynamo
from app.utils.ingestion import find_duplicate_accounts

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
def list_accounts(user_id: str = Depends(get_current_user_id)):
    accounts = sorted(
        dynamo.get_accounts_for_user(user_id),
        key=lambda a: a.get("created_at") or "",
        reverse=True,
    )
    return {"accounts": accounts}


@router.post("/cleanup-duplicates")
def cleanup_duplicate_accounts(user_id: str = Depends(get_current_user_id)):
    """Keep the newest account per mask/type/subtype and delete the rest."""
    accounts = dynamo.get_accounts_for_user(user_id)
    if not accounts:
        return {"message": "No accounts found", "removed": 0}

    to_remove = find_duplicate_accounts(accounts)
    if not to_remove:
        return {"message": "No duplicate accounts found", "removed": 0}

    removed = dynamo.delete_accounts(user_id, to_remove)
    logger.info(f"Removed {removed} duplicate accounts for user: {user_id}")
    return {
        "message": f"Successfully removed {removed} duplicate account(s)",
        "removed": removed,
    }


@router.delete("/delete")
def delete_all_accounts(user_id: str = Depends(get_current_user_id)):
    """Remove every linked institution along with its accounts, transactions and recurring charges."""
    logger.info(f"Deleting all account data for user: {user_id}")
    try:
        counts = dynamo.delete_user_data(user_id)
    except Exception as e:
        logger.error(f"Error deleting account data: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to delete account data")

    return {
        "success": True,
        "message": "All account data has been deleted",
        "deleted_accounts": counts["accounts"],
        "deleted_transactions": counts["transactions"],
        "deleted_recurring": counts["recurring"],
        "deleted_plaid_items": counts["plaid_items"],
    }
