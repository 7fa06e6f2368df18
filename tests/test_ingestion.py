from datetime import date

from app.utils.ingestion import (
    account_row,
    find_duplicate_accounts,
    find_relinked_duplicates,
    is_subscription_stream,
    recurring_rows_from_streams,
    transaction_row,
    transaction_rows,
)

plaid_account = {
    "account_id": "plaid-acc-1",
    "name": "Everyday Checking",
    "type": "depository",
    "subtype": "checking",
    "mask": "0000",
    "balances": {"current": 1250.5, "available": 1200.0, "iso_currency_code": None},
}

plaid_transaction = {
    "transaction_id": "tx-1",
    "account_id": "plaid-acc-1",
    "amount": 12.34,
    "date": date(2024, 6, 1),
    "name": "STARBUCKS 123",
    "merchant_name": "Starbucks",
    "category": ["Food and Drink", "Restaurants", "Coffee Shop"],
    "location": {"city": "Austin", "region": "TX"},
    "pending": False,
}


def test_account_row():
    row = account_row("user-1", "item-1", plaid_account, "Chase")
    assert row["plaid_item_id"] == "item-1"
    assert row["balance_current"] == 1250.5
    assert row["balance_available"] == 1200.0
    assert row["currency_code"] == "USD"
    assert row["institution_name"] == "Chase"


def test_transaction_row_expense():
    row = transaction_row("user-1", "local-acc-1", plaid_transaction)
    assert row["transaction_type"] == "expense"
    assert row["is_transfer"] is False
    assert row["date"] == "2024-06-01"
    assert row["plaid_primary_category"] == "Food and Drink"
    assert row["plaid_detailed_category"] == "Food and Drink > Restaurants > Coffee Shop"
    assert row["location_city"] == "Austin"
    assert row["location_state"] == "TX"
    assert row["location_country"] is None


def test_transaction_row_income_and_transfer():
    income = transaction_row("user-1", "a", {**plaid_transaction, "amount": -500, "category": None})
    assert income["transaction_type"] == "income"
    assert income["plaid_primary_category"] is None

    transfer = transaction_row("user-1", "a", {**plaid_transaction, "amount": 0})
    assert transfer["is_transfer"] is True


def test_transaction_rows_drop_unknown_accounts():
    other = {**plaid_transaction, "transaction_id": "tx-2", "account_id": "plaid-acc-9"}
    rows = transaction_rows("user-1", {"plaid-acc-1": "local-acc-1"}, [plaid_transaction, other])
    assert [row["transaction_id"] for row in rows] == ["tx-1"]
    assert rows[0]["account_id"] == "local-acc-1"


outflow_stream = {
    "account_id": "plaid-acc-1",
    "merchant_name": "Netflix",
    "description": "NETFLIX.COM",
    "frequency": "MONTHLY",
    "last_amount": {"amount": 15.49},
    "average_amount": {"amount": 15.49},
    "first_date": "2023-01-10",
    "last_date": "2024-06-10",
    "status": "MATURE",
    "is_active": True,
    "category": ["Service", "Subscription"],
    "transaction_ids": ["a", "b", "c"],
}

inflow_stream = {
    "account_id": "plaid-acc-1",
    "description": "ACME PAYROLL",
    "frequency": "BIWEEKLY",
    "last_amount": {"amount": -2100.0},
    "average_amount": {"amount": -2050.0},
    "last_date": "2024-06-14",
    "status": "EARLY_DETECTION",
    "is_active": False,
    "category": [],
    "transaction_ids": ["p1", "p2"],
}


def test_recurring_rows_from_streams():
    rows = recurring_rows_from_streams(
        "user-1", {"plaid-acc-1": "local-acc-1"}, [outflow_stream], [inflow_stream], today=date(2024, 6, 20)
    )
    expense, income = rows

    assert expense["name"] == "Netflix"
    assert expense["frequency"] == "monthly"
    assert expense["next_due_date"] == "2024-07-10"
    assert expense["is_subscription"] is True
    assert expense["is_active"] is True
    assert expense["total_occurrences"] == 3
    assert expense["notes"] == "Service, Subscription"

    assert income["name"] == "ACME PAYROLL"
    assert income["transaction_type"] == "income"
    assert income["expected_amount"] == 2100.0
    assert income["average_amount"] == 2050.0
    assert income["is_subscription"] is False
    assert income["is_active"] is False
    assert income["next_due_date"] == "2024-06-28"
    assert income["start_date"] == "2024-06-20"


def test_stream_activity_falls_back_to_status():
    mapping = {"plaid-acc-1": "local-acc-1"}
    mature = {key: value for key, value in outflow_stream.items() if key != "is_active"}
    tombstoned = {**mature, "status": "TOMBSTONED"}

    rows = recurring_rows_from_streams("user-1", mapping, [mature, tombstoned], [], today=date(2024, 6, 20))
    assert [row["is_active"] for row in rows] == [True, False]


def test_streams_for_unknown_accounts_are_skipped():
    assert recurring_rows_from_streams("user-1", {}, [outflow_stream], [inflow_stream]) == []


def test_subscription_stream_by_merchant():
    assert is_subscription_stream({"merchant_name": "GitHub", "category": []})
    assert not is_subscription_stream({"merchant_name": "City Water", "category": ["Utilities"]})


stored_accounts = [
    {"id": "old-item#a1", "plaid_item_id": "old-item", "mask": "0000", "type": "depository",
     "subtype": "checking", "created_at": "2024-01-01T00:00:00+00:00"},
    {"id": "new-item#a1", "plaid_item_id": "new-item", "mask": "0000", "type": "depository",
     "subtype": "checking", "created_at": "2024-05-01T00:00:00+00:00"},
    {"id": "old-item#a2", "plaid_item_id": "old-item", "mask": "9999", "type": "credit",
     "subtype": "credit card", "created_at": "2024-01-01T00:00:00+00:00"},
]


def test_find_relinked_duplicates():
    incoming = [account_row("user-1", "new-item", plaid_account, "Chase")]
    assert find_relinked_duplicates(stored_accounts, incoming, "new-item") == ["old-item#a1"]


def test_find_duplicate_accounts_keeps_newest():
    assert find_duplicate_accounts(stored_accounts) == ["old-item#a1"]
