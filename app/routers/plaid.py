import logging
import time

from fastapi import APIRouter, Depends, HTTPException
from plaid.exceptions import ApiException

from app.core.security import get_current_user_id
from app.db import dynamo
from app.models.plaid import PublicTokenExchange
from app.utils import plaid_client
from app.utils.ingestion import account_row, find_relinked_duplicates
from app.utils.sync import seal_access_token, sync_user_items

router = APIRouter()
logger = logging.getLogger(__name__)

# Plaid needs a moment after linking before transactions are available
INITIAL_SYNC_DELAY_SECONDS = 10


@router.post("/create_link_token")
def create_link_token(user_id: str = Depends(get_current_user_id)):
    logger.info(f"Creating Plaid link token for user: {user_id}")
    try:
        link_token = plaid_client.create_link_token(user_id)
    except ApiException as e:
        logger.error(f"Error creating link token: {e}")
        raise HTTPException(status_code=500, detail="Failed to create link token")
    return {"link_token": link_token}


@router.post("/exchange_public_token")
def exchange_public_token(body: PublicTokenExchange, user_id: str = Depends(get_current_user_id)):
    """
    Exchange a Link public token, store the item and its accounts, then run an
    initial transaction and recurring sync. Sync failures do not fail the link.
    """
    logger.info(f"Exchanging Plaid public token for user: {user_id}")
    try:
        exchanged = plaid_client.exchange_public_token(body.public_token)
        access_token, item_id = exchanged["access_token"], exchanged["item_id"]
        item = plaid_client.get_item(access_token)
        accounts = plaid_client.get_accounts(access_token)
    except ApiException as e:
        logger.error(f"Error exchanging public token: {e}")
        raise HTTPException(status_code=500, detail="Failed to exchange token")

    institution_id = item.get("institution_id")
    institution_name = plaid_client.get_institution_name(institution_id)

    plaid_item = dynamo.put_plaid_item({
        "user_id": user_id,
        "item_id": item_id,
        "access_token": seal_access_token(access_token),
        "institution_id": institution_id,
        "institution_name": institution_name,
    })
    if not plaid_item:
        raise HTTPException(status_code=500, detail="Error saving linked institution")

    rows = [account_row(user_id, item_id, account, institution_name) for account in accounts]
    if rows:
        duplicates = find_relinked_duplicates(dynamo.get_accounts_for_user(user_id), rows, item_id)
        if duplicates:
            logger.info(f"Removing {len(duplicates)} duplicate accounts from previous link...")
            dynamo.delete_accounts(user_id, duplicates)

        if dynamo.upsert_accounts(rows):
            logger.info(f"Saved {len(rows)} accounts to database")

    time.sleep(INITIAL_SYNC_DELAY_SECONDS)
    try:
        synced = sync_user_items(user_id, [plaid_item])
    except Exception as e:
        logger.error(f"Failed to auto-sync transactions: {str(e)}", exc_info=True)
        synced = {"transactions": 0, "recurring": 0}

    return {
        "item_id": item_id,
        "accounts": accounts,
        "institution_name": institution_name,
        "transactions_synced": synced["transactions"] > 0,
        "recurring_synced": synced["recurring"],
    }
