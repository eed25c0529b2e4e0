from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app
from app.schemas import TransactionType
from app.services.finance import apply_transaction

client = TestClient(create_app(Settings(storage_backend="memory", gemini_api_key=None)))


def _headers(**profile) -> dict[str, str]:
    email = f"saver-{uuid4().hex[:8]}@example.com"
    token = client.post("/signup", json={"email": email, "password": "Secret123!", "name": "Saver"}).json()["accessToken"]
    headers = {"Authorization": f"Bearer {token}"}
    if profile:
        client.post("/update-profile", json=profile, headers=headers)
    return headers


def test_income_updates_net_worth_and_is_listed() -> None:
    headers = _headers(currentNetWorth=5000)

    res = client.post("/transactions", json={"type": "income", "amount": 1000}, headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["newNetWorth"] == 6000
    assert body["transaction"]["id"].startswith("txn_")
    assert body["transaction"]["description"] == ""

    listed = client.get("/transactions", headers=headers).json()["transactions"]
    assert len(listed) == 1
    assert listed[0]["amount"] == 1000
    assert listed[0]["type"] == "income"

    profile = client.get("/profile", headers=headers).json()["userData"]
    assert profile["currentNetWorth"] == 6000


def test_saving_increases_savings_and_net_worth() -> None:
    headers = _headers(currentSavings=100, currentNetWorth=300)
    body = client.post("/transactions", json={"type": "saving", "amount": 250.5, "category": "fd"}, headers=headers).json()
    assert body["newSavings"] == pytest.approx(350.5)
    assert body["newNetWorth"] == pytest.approx(550.5)


def test_expense_is_clamped_at_zero() -> None:
    headers = _headers(currentNetWorth=100)
    body = client.post("/transactions", json={"type": "expense", "amount": 400}, headers=headers).json()
    assert body["newNetWorth"] == 0
    assert body["newSavings"] == 0


def test_transactions_append_in_order() -> None:
    headers = _headers()
    for amount in (10, 20, 30):
        client.post("/transactions", json={"type": "investment", "amount": amount}, headers=headers)
    listed = client.get("/transactions", headers=headers).json()["transactions"]
    assert [t["amount"] for t in listed] == [10, 20, 30]


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"type": "gift", "amount": 10}, "Invalid transaction type"),
        ({"amount": 10}, "type"),
        ({"type": "income", "amount": 0}, "Invalid amount"),
        ({"type": "income", "amount": -5}, "Invalid amount"),
        ({"type": "income", "amount": "100"}, "Invalid amount"),
        ({"type": "income", "amount": True}, "Invalid amount"),
    ],
)
def test_invalid_transactions_return_400(payload, message) -> None:
    headers = _headers()
    res = client.post("/transactions", json=payload, headers=headers)
    assert res.status_code == 400
    assert message in res.json()["error"]
    assert client.get("/transactions", headers=headers).json()["transactions"] == []


def test_financial_data_roundtrip() -> None:
    headers = _headers()
    assert client.get("/financial-data", headers=headers).json()["data"] is None

    saved = client.post("/financial-data", json={"emergencyFund": 12000, "savingsRate": 0.2}, headers=headers)
    assert saved.status_code == 200
    assert saved.json()["data"]["updatedAt"]

    data = client.get("/financial-data", headers=headers).json()["data"]
    assert data["emergencyFund"] == 12000
    assert data["savingsRate"] == 0.2


def test_financial_data_requires_object_body() -> None:
    res = client.post("/financial-data", json=[1, 2, 3], headers=_headers())
    assert res.status_code == 400


def test_apply_transaction_deltas() -> None:
    assert apply_transaction(0, 0, TransactionType.saving, 50) == (50, 50)
    assert apply_transaction(10, 10, TransactionType.investment, 5) == (10, 15)
    assert apply_transaction(10, 10, TransactionType.income, 5) == (10, 15)
    assert apply_transaction(10, 10, TransactionType.expense, 25) == (10, 0)
