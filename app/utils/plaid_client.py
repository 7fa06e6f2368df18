"""
Plaid API wrapper.

Every call returns plain dicts (``response.to_dict()``) so callers never touch
the generated model classes.
"""
import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from plaid.api import plaid_api
from plaid.api_client import ApiClient
from plaid.configuration import Configuration
from plaid.exceptions import ApiException
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.country_code import CountryCode
from plaid.model.institutions_get_by_id_request import InstitutionsGetByIdRequest
from plaid.model.item_get_request import ItemGetRequest
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products
from plaid.model.transactions_get_request import TransactionsGetRequest
from plaid.model.transactions_get_request_options import TransactionsGetRequestOptions
from plaid.model.transactions_recurring_get_request import TransactionsRecurringGetRequest

from app.core.config import settings

logger = logging.getLogger(__name__)

PLAID_ENV_HOSTS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}

TRANSACTIONS_PAGE_SIZE = 500

configuration = Configuration(
    host=PLAID_ENV_HOSTS.get(settings.PLAID_ENV, PLAID_ENV_HOSTS["production"]),
    api_key={"clientId": settings.PLAID_CLIENT_ID, "secret": settings.PLAID_SECRET},
)
client = plaid_api.PlaidApi(ApiClient(configuration))


def plaid_error_code(error: ApiException) -> Optional[str]:
    """Pull ``error_code`` out of a Plaid error body, e.g. PRODUCT_NOT_READY."""
    try:
        return json.loads(error.body or "{}").get("error_code")
    except (TypeError, ValueError):
        return None


def create_link_token(user_id: str) -> str:
    request = LinkTokenCreateRequest(
        user=LinkTokenCreateRequestUser(client_user_id=user_id),
        client_name=settings.PLAID_CLIENT_NAME,
        products=[Products("transactions")],
        country_codes=[CountryCode("US")],
        language="en",
    )
    response = client.link_token_create(request)
    return response.link_token


def exchange_public_token(public_token: str) -> Dict[str, str]:
    response = client.item_public_token_exchange(
        ItemPublicTokenExchangeRequest(public_token=public_token)
    )
    return {"access_token": response.access_token, "item_id": response.item_id}


def get_item(access_token: str) -> Dict[str, Any]:
    return client.item_get(ItemGetRequest(access_token=access_token)).to_dict()["item"]


def get_accounts(access_token: str) -> List[Dict[str, Any]]:
    return client.accounts_get(AccountsGetRequest(access_token=access_token)).to_dict()["accounts"]


def get_institution_name(institution_id: Optional[str]) -> str:
    if not institution_id:
        return "Unknown Bank"
    try:
        response = client.institutions_get_by_id(
            InstitutionsGetByIdRequest(institution_id=institution_id, country_codes=[CountryCode("US")])
        )
        return response.institution.name
    except ApiException as e:
        logger.error(f"Error fetching institution {institution_id}: {e}")
        return "Unknown Bank"


def get_transactions(access_token: str, start_date: date, end_date: date) -> List[Dict[str, Any]]:
    """All transactions in the date range, paging through ``total_transactions``."""
    transactions: List[Dict[str, Any]] = []
    while True:
        request = TransactionsGetRequest(
            access_token=access_token,
            start_date=start_date,
            end_date=end_date,
            options=TransactionsGetRequestOptions(count=TRANSACTIONS_PAGE_SIZE, offset=len(transactions)),
        )
        response = client.transactions_get(request).to_dict()
        transactions.extend(response["transactions"])
        if not response["transactions"] or len(transactions) >= response["total_transactions"]:
            return transactions


def get_recurring_streams(access_token: str, account_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
    request = TransactionsRecurringGetRequest(access_token=access_token, account_ids=account_ids)
    response = client.transactions_recurring_get(request).to_dict()
    return {
        "inflow_streams": response.get("inflow_streams") or [],
        "outflow_streams": response.get("outflow_streams") or [],
    }
