import math
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from finance_tracker.domain.export import export_transactions_csv
from finance_tracker.domain.filters import FilterState, apply_filters
from finance_tracker.domain.grouping import group_by_date
from finance_tracker.errors import ValidationError
from finance_tracker.logger import get_logger
from finance_tracker.models import DateGroup, TagRef, Transaction, merge_update
from finance_tracker.services.store import LedgerStore

logger = get_logger(__name__)

TRANSACTION_REQUIRED_FIELDS = ("name", "amount", "currency", "type", "transaction_date", "time_precision")

SORT_KEYS: dict[str, Callable[[Transaction], Any]] = {
    "date": lambda tx: tx.transaction_date,
    "amount": lambda tx: tx.amount,
    "name": lambda tx: tx.name.casefold(),
}
DEFAULT_SORT = "date:desc"


def parse_sort(raw: str | None) -> tuple[str, bool]:
    """Parse ``field:asc|desc`` into ``(field, descending)``."""
    field, _, direction = (raw or DEFAULT_SORT).partition(":")
    if field not in SORT_KEYS or direction not in ("asc", "desc"):
        raise ValidationError("Sort format: field:asc|desc with field one of date, amount, name")
    return field, direction == "desc"


def sort_transactions(transactions: list[Transaction], sort: str | None = None) -> list[Transaction]:
    field, descending = parse_sort(sort)
    return sorted(transactions, key=SORT_KEYS[field], reverse=descending)


class TransactionService:
    def __init__(self, store: LedgerStore, page_size: int = 50):
        self.store = store
        self.page_size = page_size

    def resolve_tags(self, user_id: str, tag_ids: list[str]) -> list[TagRef]:
        unique_ids = list(dict.fromkeys(tag_ids))
        tags = self.store.find_tags(user_id, unique_ids)
        if len(tags) != len(unique_ids):
            raise ValidationError("One or more tags do not belong to user")
        return [tag.ref() for tag in tags]

    def filter_transactions(
        self,
        user_id: str,
        state: FilterState,
        now: datetime | None = None,
    ) -> list[Transaction]:
        return apply_filters(self.store.list_transactions(user_id), state, now)

    def list_page(
        self,
        user_id: str,
        state: FilterState,
        page: int = 1,
        limit: int | None = None,
        now: datetime | None = None,
        sort: str | None = None,
    ) -> dict[str, Any]:
        limit = limit or self.page_size
        matched = sort_transactions(self.filter_transactions(user_id, state, now), sort)
        offset = (page - 1) * limit
        return {
            "data": matched[offset:offset + limit],
            "page": page,
            "limit": limit,
            "total": len(matched),
            "total_pages": max(1, math.ceil(len(matched) / limit)),
            "has_next": offset + limit < len(matched),
        }

    def list_grouped(
        self,
        user_id: str,
        state: FilterState,
        now: datetime | None = None,
    ) -> list[DateGroup]:
        return group_by_date(self.filter_transactions(user_id, state, now), now)

    def get_transaction(self, user_id: str, transaction_id: str) -> Transaction:
        return self.store.get_transaction(user_id, transaction_id)

    def create_transaction(self, user_id: str, fields: dict[str, Any], tag_ids: list[str]) -> Transaction:
        transaction = Transaction(user_id=user_id, tags=self.resolve_tags(user_id, tag_ids), **fields)
        logger.debug("[TRANSACTIONS] Created %s for %s", transaction.id, user_id)
        return self.store.put_transaction(transaction)

    def update_transaction(
        self,
        user_id: str,
        transaction_id: str,
        changes: dict[str, Any],
        tag_ids: list[str] | None = None,
    ) -> Transaction:
        current = self.store.get_transaction(user_id, transaction_id)
        if tag_ids is not None:
            changes = {**changes, "tags": self.resolve_tags(user_id, tag_ids)}
        updated = merge_update(current, changes, required=TRANSACTION_REQUIRED_FIELDS)
        return self.store.put_transaction(updated)

    def delete_transaction(self, user_id: str, transaction_id: str) -> None:
        self.store.delete_transaction(user_id, transaction_id)

    def add_tag(self, user_id: str, transaction_id: str, tag_id: str) -> Transaction:
        transaction = self.store.get_transaction(user_id, transaction_id)
        tag = self.store.get_tag(user_id, tag_id)
        if tag.id in transaction.tag_ids:
            return transaction
        updated = transaction.model_copy(update={"tags": [*transaction.tags, tag.ref()]})
        return self.store.put_transaction(updated)

    def remove_tag(self, user_id: str, transaction_id: str, tag_id: str) -> Transaction:
        transaction = self.store.get_transaction(user_id, transaction_id)
        updated = transaction.model_copy(
            update={"tags": [tag for tag in transaction.tags if tag.id != tag_id]}
        )
        return self.store.put_transaction(updated)

    def bulk_create_transactions(
        self,
        user_id: str,
        entries: list[tuple[dict[str, Any], list[str]]],
    ) -> tuple[list[Transaction], list[dict[str, Any]]]:
        """
        Create each ``(fields, tag_ids)`` entry on its own. Entries that fail are reported
        by index and do not stop the rest.
        """
        created: list[Transaction] = []
        errors: list[dict[str, Any]] = []
        for index, (fields, tag_ids) in enumerate(entries):
            try:
                created.append(self.create_transaction(user_id, fields, tag_ids))
            except ValidationError as exc:
                errors.append({"index": index, "message": exc.message})
        logger.info("[TRANSACTIONS] Bulk create for %s: %d created, %d failed", user_id, len(created), len(errors))
        return created, errors

    def export_csv(
        self,
        user_id: str,
        state: FilterState,
        columns: Iterable[str] | None = None,
        sort: str | None = None,
        now: datetime | None = None,
    ) -> str:
        matched = sort_transactions(self.filter_transactions(user_id, state, now), sort)
        return export_transactions_csv(matched, columns)
