import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app.core.config import settings
from app.core.security import get_current_user_id
from app.db import dynamo
from app.main import app
from app.routers import plaid as plaid_router
from app.routers import transactions as transactions_router
from app.utils import ai_advisor, plaid_client

USER_ID = "user-123"


@pytest.fixture
def client():
    app.dependency_overrides[get_current_user_id] = lambda: USER_ID
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health():
    response = TestClient(app).get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_missing_token_is_rejected():
    response = TestClient(app).get("/api/accounts")
    assert response.status_code == 401


def test_auth_me_with_valid_token(monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET_KEY", "test-secret")
    token = jwt.encode(
        {"sub": USER_ID, "email": "sam@example.com", "aud": "authenticated",
         "user_metadata": {"full_name": "Sam Lee"}},
        "test-secret",
        algorithm="HS256",
    )
    response = TestClient(app).get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["user"] == {"id": USER_ID, "email": "sam@example.com", "full_name": "Sam Lee"}


def test_auth_me_with_bad_token(monkeypatch):
    monkeypatch.setattr(settings, "JWT_SECRET_KEY", "test-secret")
    token = jwt.encode({"sub": USER_ID, "aud": "authenticated"}, "wrong-secret", algorithm="HS256")
    response = TestClient(app).get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_list_recent_transactions(client, monkeypatch):
    calls = {}

    def fake_get_transactions(user_id, start_date=None, end_date=None):
        calls["user_id"], calls["start_date"] = user_id, start_date
        return [{"transaction_id": "t1", "date": "2024-06-01"}]

    monkeypatch.setattr(dynamo, "get_transactions_for_user", fake_get_transactions)
    monkeypatch.setattr(dynamo, "get_plaid_items_for_user", lambda user_id: [
        {"item_id": "i1", "updated_at": "2024-06-01T00:00:00+00:00"},
        {"item_id": "i2", "updated_at": "2024-06-03T00:00:00+00:00"},
    ])

    response = client.get("/api/transactions")
    assert response.status_code == 200
    body = response.json()
    assert body["last_synced"] == "2024-06-03T00:00:00+00:00"
    assert len(body["transactions"]) == 1
    assert calls["user_id"] == USER_ID
    assert calls["start_date"] is not None


def test_sync_without_items(client, monkeypatch):
    monkeypatch.setattr(dynamo, "get_plaid_items_for_user", lambda user_id: [])
    assert client.post("/api/transactions/sync").status_code == 400


def test_sync_reports_counts(client, monkeypatch):
    monkeypatch.setattr(dynamo, "get_plaid_items_for_user", lambda user_id: [{"item_id": "i1"}])
    monkeypatch.setattr(
        transactions_router, "sync_user_items", lambda user_id, items: {"transactions": 7, "recurring": 2}
    )
    body = client.post("/api/transactions/sync").json()
    assert body["synced_count"] == 7
    assert body["message"] == "Successfully synced 7 transaction(s) and recurring charges"


def test_auto_categorize(client, monkeypatch):
    updated = []
    monkeypatch.setattr(dynamo, "get_transactions_for_user", lambda user_id, **kwargs: [
        {"transaction_id": "t1", "name": "PUBLIX #123"},
        {"transaction_id": "t2", "name": "XQZ 000"},
    ])
    monkeypatch.setattr(
        dynamo, "update_transaction", lambda user_id, tx_id, updates: updated.append((tx_id, updates)) or updates
    )

    body = client.post("/api/transactions/auto-categorize").json()
    assert updated == [("t1", {"user_category_name": "Groceries"})]
    assert body["total_checked"] == 2
    assert body["categorized_count"] == 1
    assert body["recategorized_count"] == 0
    assert body["uncategorized_count"] == 1


def test_update_transaction(client, monkeypatch):
    captured = {}

    def fake_update(user_id, transaction_id, updates):
        captured.update(updates)
        return {"transaction_id": transaction_id, **updates} if transaction_id == "t1" else None

    monkeypatch.setattr(dynamo, "update_transaction", fake_update)

    response = client.patch("/api/transactions/update?transaction_id=t1", json={"notes": "lunch"})
    assert response.status_code == 200
    # only the fields that were sent are written
    assert captured == {"notes": "lunch"}

    assert client.patch("/api/transactions/update", json={"notes": "x"}).status_code == 400
    assert client.patch("/api/transactions/update?transaction_id=nope", json={"notes": "x"}).status_code == 404


def test_delete_transaction(client, monkeypatch):
    monkeypatch.setattr(dynamo, "delete_transaction", lambda user_id, tx_id: tx_id == "t1")
    assert client.delete("/api/transactions/delete?transaction_id=t1").status_code == 200
    assert client.delete("/api/transactions/delete?transaction_id=t9").status_code == 404


def test_search_endpoint(client, monkeypatch):
    monkeypatch.setattr(dynamo, "get_transactions_for_user", lambda user_id, **kwargs: [
        {"transaction_id": "t1", "name": "Coffee", "amount": 4, "date": "2024-06-01", "tags": ["a", "b"]},
        {"transaction_id": "t2", "name": "Rent", "amount": 900, "date": "2024-06-02", "tags": ["a"]},
    ])
    body = client.get("/api/transactions/search?tags=a,b").json()
    assert [tx["transaction_id"] for tx in body["transactions"]] == ["t1"]
    assert body["count"] == 1


def test_categories(client, monkeypatch):
    monkeypatch.setattr(dynamo, "get_transactions_for_user", lambda user_id, **kwargs: [
        {"user_category_name": "Groceries"},
        {"plaid_primary_category": "Travel"},
    ])
    names = [c["name"] for c in client.get("/api/categories").json()["categories"]]
    assert names == ["Groceries", "Travel", "Uncategorized"]


def test_recurring_list(client, monkeypatch):
    monkeypatch.setattr(dynamo, "get_recurring_for_user", lambda user_id: [
        {"name": "Later", "next_due_date": "2999-01-02", "is_active": True},
        {"name": "Inactive", "next_due_date": "2999-01-01", "is_active": False},
        {"name": "Undated", "next_due_date": None, "is_active": True},
        {"name": "Sooner", "next_due_date": "2999-01-01", "is_active": True},
        {"name": "Past", "next_due_date": "2000-01-01", "is_active": True},
    ])

    rows = client.get("/api/recurring").json()["recurring"]
    assert [r["name"] for r in rows] == ["Past", "Sooner", "Later", "Undated"]
    assert rows[0]["due_in"].endswith("days ago")

    rows = client.get("/api/recurring?upcoming_only=true").json()["recurring"]
    assert [r["name"] for r in rows] == ["Sooner", "Later"]

    rows = client.get("/api/recurring?active_only=false").json()["recurring"]
    assert len(rows) == 5


def test_cleanup_duplicates(client, monkeypatch):
    deleted = []
    monkeypatch.setattr(dynamo, "get_accounts_for_user", lambda user_id: [
        {"id": "a", "mask": "1", "type": "depository", "subtype": "checking", "created_at": "2024-01-01"},
        {"id": "b", "mask": "1", "type": "depository", "subtype": "checking", "created_at": "2024-02-01"},
    ])
    monkeypatch.setattr(dynamo, "delete_accounts", lambda user_id, ids: deleted.extend(ids) or len(ids))

    body = client.post("/api/accounts/cleanup-duplicates").json()
    assert deleted == ["a"]
    assert body["removed"] == 1


def test_delete_all_accounts(client, monkeypatch):
    monkeypatch.setattr(dynamo, "delete_user_data", lambda user_id: {
        "transactions": 10, "recurring": 2, "accounts": 3, "plaid_items": 1,
    })
    body = client.delete("/api/accounts/delete").json()
    assert body["deleted_accounts"] == 3
    assert body["deleted_transactions"] == 10
    assert body["deleted_plaid_items"] == 1


def test_exchange_public_token(client, monkeypatch):
    saved = {}
    monkeypatch.setattr(plaid_router, "INITIAL_SYNC_DELAY_SECONDS", 0)
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", "unit-test-key")
    monkeypatch.setattr(plaid_client, "exchange_public_token",
                        lambda token: {"access_token": "access-1", "item_id": "item-1"})
    monkeypatch.setattr(plaid_client, "get_item", lambda token: {"institution_id": "ins_1"})
    monkeypatch.setattr(plaid_client, "get_accounts", lambda token: [
        {"account_id": "acc-1", "name": "Checking", "type": "depository", "subtype": "checking",
         "mask": "0000", "balances": {"current": 10}},
    ])
    monkeypatch.setattr(plaid_client, "get_institution_name", lambda institution_id: "Chase")
    monkeypatch.setattr(dynamo, "put_plaid_item", lambda item: saved.setdefault("item", item))
    monkeypatch.setattr(dynamo, "get_accounts_for_user", lambda user_id: [])
    monkeypatch.setattr(dynamo, "upsert_accounts", lambda rows: saved.setdefault("accounts", rows) is not None)
    monkeypatch.setattr(plaid_router, "sync_user_items", lambda user_id, items: {"transactions": 4, "recurring": 1})

    response = client.post("/api/plaid/exchange_public_token", json={"public_token": "public-1"})
    assert response.status_code == 200
    body = response.json()
    assert body["institution_name"] == "Chase"
    assert body["transactions_synced"] is True
    assert "access_token" not in body
    # token is sealed before it is stored
    assert saved["item"]["access_token"] != "access-1"
    assert saved["accounts"][0]["plaid_item_id"] == "item-1"


def test_exchange_requires_public_token(client):
    assert client.post("/api/plaid/exchange_public_token", json={"public_token": ""}).status_code == 422


def test_chat_not_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "OPENROUTER_API_KEY", "")
    assert client.post("/api/ai/chat", json={"message": "hi"}).status_code == 503


def _stub_chat_data(monkeypatch):
    monkeypatch.setattr(settings, "OPENROUTER_API_KEY", "test-key")
    monkeypatch.setattr(dynamo, "get_accounts_for_user", lambda user_id: [
        {"name": "Checking", "type": "depository", "balance_current": 500},
        {"name": "Visa", "type": "credit", "balance_current": 200},
    ])
    monkeypatch.setattr(dynamo, "get_recurring_for_user", lambda user_id: [])
    monkeypatch.setattr(dynamo, "get_transactions_for_user", lambda user_id, **kwargs: [])


def test_chat_requires_message(client, monkeypatch):
    _stub_chat_data(monkeypatch)
    assert client.post("/api/ai/chat", json={"message": "   "}).status_code == 400


def test_chat_reply(client, monkeypatch):
    _stub_chat_data(monkeypatch)
    captured = {}

    def fake_advice(message, context_summary, conversation=None):
        captured["summary"] = context_summary
        return "Pay down the Visa first."

    monkeypatch.setattr(ai_advisor, "request_advice", fake_advice)

    response = client.post("/api/ai/chat", json={"message": "What next?", "conversation": []})
    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Pay down the Visa first."
    assert body["context"]["netWorth"] == 300
    assert body["context"]["totalLiabilities"] == 200
    assert captured["summary"].startswith("Net worth $300")


def test_chat_upstream_failure(client, monkeypatch):
    _stub_chat_data(monkeypatch)

    def failing_advice(message, context_summary, conversation=None):
        raise ai_advisor.AdvisorUnavailable("AI advisor is temporarily unavailable.")

    monkeypatch.setattr(ai_advisor, "request_advice", failing_advice)
    response = client.post("/api/ai/chat", json={"message": "What next?"})
    assert response.status_code == 502
    assert response.json()["detail"] == "AI advisor is temporarily unavailable."


def test_chat_context_keeps_inactive_recurring(client, monkeypatch):
    _stub_chat_data(monkeypatch)
    monkeypatch.setattr(dynamo, "get_recurring_for_user", lambda user_id: [
        {"name": "Netflix", "expected_amount": 15, "transaction_type": "expense", "is_active": False},
    ])
    captured = {}

    def fake_advice(message, context_summary, conversation=None):
        captured["summary"] = context_summary
        return "ok"

    monkeypatch.setattr(ai_advisor, "request_advice", fake_advice)

    body = client.post("/api/ai/chat", json={"message": "Bills?"}).json()
    assert body["context"]["recurringTotal"] == 15
    assert "Recurring/subscription expenses: 1 active, about $15 per month." in captured["summary"]
