from typing import List, Optional

from pydantic import BaseModel


class TransactionUpdate(BaseModel):
    """User-editable transaction fields. Only fields that are sent get written."""

    category_id: Optional[str] = None
    user_category_name: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    excluded_from_budget: Optional[bool] = None
    is_recurring: Optional[bool] = None
