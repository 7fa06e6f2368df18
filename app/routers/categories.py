from fastapi import APIRouter, Depends

from app.core.security import get_current_user_id
from app.db import dynamo
from app.utils.categorization import UNCATEGORIZED, category_display, category_name

router = APIRouter()


@router.get("")
def list_categories(user_id: str = Depends(get_current_user_id)):
    """Categories in use by the user's transactions, always including Uncategorized."""
    names = {category_name(tx) for tx in dynamo.get_transactions_for_user(user_id)}
    names.add(UNCATEGORIZED)
    return {"categories": [category_display(name) for name in sorted(names)]}
