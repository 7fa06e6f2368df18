from plaid.exceptions import ApiException

from app.core.config import settings
from app.core.encryption import encrypt
from app.db import dynamo
from app.utils import plaid_client, scheduler, sync

stored_accounts = [
    {"id": "item-1#acc-1", "account_id": "acc-1", "plaid_item_id": "item-1"},
    {"id": "item-2#acc-9", "account_id": "acc-9", "plaid_item_id": "item-2"},
]


def test_open_access_token(monkeypatch):
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", "k")
    sealed = encrypt("access-1", "k")
    assert sync.open_access_token({"access_token": sealed}) == "access-1"
    # legacy plaintext tokens are used as is
    assert sync.open_access_token({"access_token": "access-plain"}) == "access-plain"
    assert sync.open_access_token({"item_id": "x", "access_token": "a:b:c:d"}) is None


def test_account_map_for_item(monkeypatch):
    monkeypatch.setattr(dynamo, "get_accounts_for_user", lambda user_id: stored_accounts)
    assert sync.account_map_for_item("user-1", "item-1") == {"acc-1": "item-1#acc-1"}


def test_recurring_falls_back_to_detection(monkeypatch):
    stored = []
    monkeypatch.setattr(dynamo, "get_accounts_for_user", lambda user_id: stored_accounts)
    monkeypatch.setattr(plaid_client, "get_recurring_streams",
                        lambda token, account_ids: {"inflow_streams": [], "outflow_streams": []})
    monkeypatch.setattr(dynamo, "get_transactions_for_user", lambda user_id: [
        {"account_id": "item-1#acc-1", "name": "Gym", "amount": 30, "date": "2024-02-01",
         "transaction_type": "expense"},
        {"account_id": "item-1#acc-1", "name": "Gym", "amount": 30, "date": "2024-01-01",
         "transaction_type": "expense"},
        # other item's account is not considered
        {"account_id": "item-2#acc-9", "name": "Gym", "amount": 30, "date": "2024-03-01",
         "transaction_type": "expense"},
    ])
    monkeypatch.setattr(dynamo, "upsert_recurring", lambda rows: stored.extend(rows) or len(rows))

    count = sync.sync_item_recurring("user-1", {"item_id": "item-1"}, "access-1")
    assert count == 1
    assert stored[0]["name"] == "Gym"
    assert stored[0]["total_occurrences"] == 2


def test_sync_user_items_skips_failing_items(monkeypatch):
    touched = []
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", "")

    def fake_transactions(user_id, item, token):
        if item["item_id"] == "bad":
            raise ApiException(status=400, reason="PRODUCT_NOT_READY")
        return 5

    monkeypatch.setattr(sync, "sync_item_transactions", fake_transactions)
    monkeypatch.setattr(sync, "sync_item_recurring", lambda user_id, item, token: 2)
    monkeypatch.setattr(dynamo, "touch_plaid_item", lambda user_id, item_id, ts: touched.append(item_id))

    items = [
        {"item_id": "good", "access_token": "access-good"},
        {"item_id": "bad", "access_token": "access-bad"},
        {"item_id": "empty", "access_token": ""},
    ]
    assert sync.sync_user_items("user-1", items) == {"transactions": 5, "recurring": 2}
    assert touched == ["good"]


def test_recurring_only_sync_does_not_touch_items(monkeypatch):
    monkeypatch.setattr(settings, "ENCRYPTION_KEY", "")
    monkeypatch.setattr(sync, "sync_item_recurring", lambda user_id, item, token: 3)
    touched = []
    monkeypatch.setattr(dynamo, "touch_plaid_item", lambda *args: touched.append(args))

    result = sync.sync_user_items("user-1", [{"item_id": "i", "access_token": "t"}], include_transactions=False)
    assert result == {"transactions": 0, "recurring": 3}
    assert touched == []


def test_daily_sync_job_groups_by_user(monkeypatch):
    seen = {}
    monkeypatch.setattr(dynamo, "get_all_plaid_items", lambda: [
        {"user_id": "u1", "item_id": "a"},
        {"user_id": "u2", "item_id": "b"},
        {"user_id": "u1", "item_id": "c"},
    ])

    def fake_sync(user_id, items):
        seen[user_id] = [item["item_id"] for item in items]
        if user_id == "u2":
            raise RuntimeError("boom")
        return {"transactions": 4, "recurring": 1}

    monkeypatch.setattr(sync, "sync_user_items", fake_sync)

    totals = scheduler.daily_sync_job()
    assert seen == {"u1": ["a", "c"], "u2": ["b"]}
    assert totals == {"users": 2, "transactions": 4, "recurring": 1}


def test_scheduler_status_when_stopped():
    assert scheduler.get_scheduler_status() == {"running": False}
