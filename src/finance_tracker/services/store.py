import contextlib
import json
import os
import threading
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import ValidationError as ModelValidationError

from finance_tracker.errors import NotFoundError
from finance_tracker.logger import get_logger
from finance_tracker.models import Budget, Tag, Transaction

logger = get_logger(__name__)


class LedgerStore:
    """
    User-scoped storage for tags, transactions and budgets.

    Created once at startup and handed to the services; nothing here is module level.
    With ``data_path`` set the whole ledger is written to that JSON file after each
    mutation and read back on construction.
    """

    def __init__(self, data_path: str | None = None):
        self.data_path = data_path
        self._lock = threading.RLock()
        self.tags: dict[str, Tag] = {}
        self.transactions: dict[str, Transaction] = {}
        self.budgets: dict[str, Budget] = {}
        self.load()

    def load(self) -> None:
        with self._lock:
            self.tags, self.transactions, self.budgets = {}, {}, {}
            if not self.data_path or not os.path.exists(self.data_path):
                return
            try:
                with open(self.data_path, encoding="utf-8") as f:
                    raw = json.load(f)
                tags = [Tag.model_validate(item) for item in raw.get("tags", [])]
                transactions = [Transaction.model_validate(item) for item in raw.get("transactions", [])]
                budgets = [Budget.model_validate(item) for item in raw.get("budgets", [])]
            except (json.JSONDecodeError, ModelValidationError, AttributeError) as exc:
                logger.warning("[STORE] Could not read %s (%s), starting empty.", self.data_path, exc)
                return

            self.tags = {tag.id: tag for tag in tags}
            self.transactions = {tx.id: tx for tx in transactions}
            self.budgets = {budget.id: budget for budget in budgets}
            logger.info(
                "[STORE] Loaded %d tags, %d transactions, %d budgets from %s",
                len(self.tags),
                len(self.transactions),
                len(self.budgets),
                self.data_path,
            )

    def _write(
        self,
        tags: dict[str, Tag],
        transactions: dict[str, Transaction],
        budgets: dict[str, Budget],
    ) -> None:
        if not self.data_path:
            return
        document: dict[str, Any] = {
            "tags": [tag.model_dump(mode="json") for tag in tags.values()],
            "transactions": [tx.model_dump(mode="json") for tx in transactions.values()],
            "budgets": [budget.model_dump(mode="json") for budget in budgets.values()],
        }
        tmp_path = f"{self.data_path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_path, self.data_path)
        except OSError:
            logger.error("[STORE] Could not write %s, keeping the previous ledger.", self.data_path)
            with contextlib.suppress(OSError):
                os.remove(tmp_path)
            raise

    def _commit(
        self,
        tags: dict[str, Tag] | None = None,
        transactions: dict[str, Transaction] | None = None,
        budgets: dict[str, Budget] | None = None,
    ) -> None:
        """Write the candidate collections, then swap them in. A failed write changes nothing."""
        tags = self.tags if tags is None else tags
        transactions = self.transactions if transactions is None else transactions
        budgets = self.budgets if budgets is None else budgets
        self._write(tags, transactions, budgets)
        self.tags, self.transactions, self.budgets = tags, transactions, budgets

    def clear(self) -> None:
        with self._lock:
            self._commit({}, {}, {})
        logger.info("[STORE] Ledger cleared.")

    # Tags

    def list_tags(self, user_id: str) -> list[Tag]:
        with self._lock:
            owned = [tag for tag in self.tags.values() if tag.user_id == user_id]
        return sorted(owned, key=lambda tag: (tag.order, tag.name.casefold()))

    def get_tag(self, user_id: str, tag_id: str) -> Tag:
        with self._lock:
            tag = self.tags.get(tag_id)
        if tag is None or tag.user_id != user_id:
            raise NotFoundError("Tag not found")
        return tag

    def find_tags(self, user_id: str, tag_ids: Iterable[str]) -> list[Tag]:
        with self._lock:
            found = [self.tags.get(tag_id) for tag_id in tag_ids]
        return [tag for tag in found if tag is not None and tag.user_id == user_id]

    def put_tag(self, tag: Tag) -> Tag:
        with self._lock:
            # Keep the embedded copies on transactions in sync.
            ref = tag.ref()
            transactions = dict(self.transactions)
            for tx_id, tx in self.transactions.items():
                if tag.id in tx.tag_ids:
                    refs = [ref if existing.id == tag.id else existing for existing in tx.tags]
                    transactions[tx_id] = tx.model_copy(update={"tags": refs})
            self._commit(tags={**self.tags, tag.id: tag}, transactions=transactions)
        return tag

    def put_tags(self, tags: Iterable[Tag]) -> None:
        with self._lock:
            self._commit(tags={**self.tags, **{tag.id: tag for tag in tags}})

    def delete_tag(self, user_id: str, tag_id: str) -> None:
        with self._lock:
            self.get_tag(user_id, tag_id)
            tags = {key: tag for key, tag in self.tags.items() if key != tag_id}
            transactions = dict(self.transactions)
            for tx_id, tx in self.transactions.items():
                if tag_id in tx.tag_ids:
                    refs = [ref for ref in tx.tags if ref.id != tag_id]
                    transactions[tx_id] = tx.model_copy(update={"tags": refs})
            self._commit(tags=tags, transactions=transactions)

    # Transactions

    def list_transactions(self, user_id: str) -> list[Transaction]:
        with self._lock:
            owned = [tx for tx in self.transactions.values() if tx.user_id == user_id]
        return sorted(owned, key=lambda tx: tx.transaction_date, reverse=True)

    def transactions_between(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
        currency: str | None = None,
    ) -> list[Transaction]:
        return [
            tx
            for tx in self.list_transactions(user_id)
            if start <= tx.transaction_date <= end and (currency is None or tx.currency == currency)
        ]

    def get_transaction(self, user_id: str, transaction_id: str) -> Transaction:
        with self._lock:
            tx = self.transactions.get(transaction_id)
        if tx is None or tx.user_id != user_id:
            raise NotFoundError("Transaction not found")
        return tx

    def put_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            self._commit(transactions={**self.transactions, transaction.id: transaction})
        return transaction

    def delete_transaction(self, user_id: str, transaction_id: str) -> None:
        with self._lock:
            self.get_transaction(user_id, transaction_id)
            transactions = {key: tx for key, tx in self.transactions.items() if key != transaction_id}
            self._commit(transactions=transactions)

    # Budgets

    def list_budgets(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Budget]:
        """Budgets owned by the user whose period overlaps ``[start, end]``."""
        with self._lock:
            owned = [budget for budget in self.budgets.values() if budget.user_id == user_id]
        if end is not None:
            owned = [budget for budget in owned if budget.start_date <= end]
        if start is not None:
            owned = [budget for budget in owned if budget.end_date >= start]
        return sorted(owned, key=lambda budget: budget.start_date, reverse=True)

    def get_budget(self, user_id: str, budget_id: str) -> Budget:
        with self._lock:
            budget = self.budgets.get(budget_id)
        if budget is None or budget.user_id != user_id:
            raise NotFoundError("Budget not found")
        return budget

    def put_budget(self, budget: Budget) -> Budget:
        with self._lock:
            self._commit(budgets={**self.budgets, budget.id: budget})
        return budget

    def delete_budget(self, user_id: str, budget_id: str) -> None:
        with self._lock:
            self.get_budget(user_id, budget_id)
            budgets = {key: budget for key, budget in self.budgets.items() if key != budget_id}
            self._commit(budgets=budgets)
