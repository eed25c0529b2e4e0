from __future__ import annotations

import logging
from typing import Any

from ..persistence import KVStore, financial_key, transactions_key
from ..schemas import Transaction, TransactionCreate, TransactionResult, TransactionType
from ..store import InMemoryStore
from .accounts import UserService

logger = logging.getLogger(__name__)


def apply_transaction(savings: float, net_worth: float, tx_type: TransactionType, amount: float) -> tuple[float, float]:
    """Return ``(savings, net_worth)`` after one transaction, each clamped at zero."""
    if tx_type is TransactionType.saving:
        savings += amount
        net_worth += amount
    elif tx_type in (TransactionType.income, TransactionType.investment):
        net_worth += amount
    elif tx_type is TransactionType.expense:
        net_worth -= amount
    return max(0.0, savings), max(0.0, net_worth)


class FinanceService:
    def __init__(self, kv: KVStore, users: UserService) -> None:
        self.kv = kv
        self.users = users

    def list_transactions(self, email: str) -> list[dict[str, Any]]:
        stored = self.kv.get(transactions_key(email))
        return stored if isinstance(stored, list) else []

    def add_transaction(self, email: str, payload: TransactionCreate) -> TransactionResult:
        transaction = Transaction(
            id=f"txn_{InMemoryStore.now_ms()}_{InMemoryStore.make_suffix()}",
            type=TransactionType(payload.type),
            amount=payload.amount,
            description=payload.description or "",
            category=payload.category or "",
            date=InMemoryStore.now_iso(),
        )
        transactions = self.list_transactions(email)
        transactions.append(transaction.model_dump(mode="json"))
        self.kv.set(transactions_key(email), transactions)

        user = self.users.get_user(email)
        savings = user.currentSavings if user else 0.0
        net_worth = user.currentNetWorth if user else 0.0
        new_savings, new_net_worth = apply_transaction(savings, net_worth, transaction.type, transaction.amount)
        self.users.apply_balances(email, new_savings, new_net_worth)
        logger.info("Transaction %s recorded for %s (%s %s)", transaction.id, email, transaction.type.value, transaction.amount)
        return TransactionResult(transaction=transaction, newSavings=new_savings, newNetWorth=new_net_worth)

    def get_financial_data(self, email: str) -> dict[str, Any] | None:
        return self.kv.get(financial_key(email))

    def save_financial_data(self, email: str, metrics: dict[str, Any]) -> dict[str, Any]:
        snapshot = {**metrics, "updatedAt": InMemoryStore.now_iso()}
        self.kv.set(financial_key(email), snapshot)
        return snapshot
