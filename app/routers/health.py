"""
Health Check Router
Liveness plus datastore and scheduler status
"""
from fastapi import APIRouter
from datetime import datetime, timezone
import logging

from botocore.exceptions import ClientError

from app.core.config import settings
from app.db import dynamo
from app.utils.scheduler import get_scheduler_status

router = APIRouter()
logger = logging.getLogger(__name__)


def _table_status(table, table_name: str) -> dict:
    try:
        table.scan(Limit=1)
        return {"name": table_name, "status": "accessible", "region": settings.DYNAMO_REGION}
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        logger.error(f"DynamoDB check failed for {table_name}: {str(e)}")
        return {"name": table_name, "status": "error", "error": f"{error_code}: {str(e)}"}


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    Returns API status.
    """
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/status")
def services_status():
    """
    Check reachability of every DynamoDB table and report the sync scheduler.
    """
    tables = {
        "plaid_items": _table_status(dynamo.plaid_items_table, settings.DYNAMO_PLAID_ITEMS_TABLE),
        "accounts": _table_status(dynamo.accounts_table, settings.DYNAMO_ACCOUNTS_TABLE),
        "transactions": _table_status(dynamo.transactions_table, settings.DYNAMO_TRANSACTIONS_TABLE),
        "recurring_transactions": _table_status(dynamo.recurring_table, settings.DYNAMO_RECURRING_TABLE),
    }
    connected = all(table["status"] == "accessible" for table in tables.values())

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "dynamodb": {"connected": connected, "tables": tables},
            "scheduler": get_scheduler_status(),
        },
        "overall_status": "healthy" if connected else "degraded",
    }
