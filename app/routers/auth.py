from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.core.security import get_current_claims

router = APIRouter()


@router.get("/me")
def get_current_user(claims: Dict[str, Any] = Depends(get_current_claims)):
    """Current user as described by the validated access token."""
    metadata = claims.get("user_metadata") or {}
    return {
        "user": {
            "id": claims.get("sub"),
            "email": claims.get("email"),
            "full_name": metadata.get("full_name", ""),
        }
    }
