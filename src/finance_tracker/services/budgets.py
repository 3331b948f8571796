from datetime import datetime
from decimal import Decimal
from typing import Any

from finance_tracker.domain.budgets import DEFAULT_PACE_TOLERANCE, build_overview, compute_comparison
from finance_tracker.domain.dates import ensure_utc, utcnow
from finance_tracker.errors import ValidationError
from finance_tracker.logger import get_logger
from finance_tracker.models import Budget, BudgetComparison, BudgetItem, BudgetsOverview, merge_update
from finance_tracker.services.store import LedgerStore

logger = get_logger(__name__)

BUDGET_REQUIRED_FIELDS = ("name", "currency", "start_date", "end_date")


class BudgetService:
    def __init__(self, store: LedgerStore, pace_tolerance: float | Decimal = DEFAULT_PACE_TOLERANCE):
        self.store = store
        self.pace_tolerance = pace_tolerance

    def _validate_items(self, user_id: str, items: list[BudgetItem]) -> None:
        seen: set[str | None] = set()
        for item in items:
            if item.tag_id in seen:
                label = "Misc" if item.tag_id is None else item.tag_id
                raise ValidationError(f"Duplicate tag entry: {label}")
            seen.add(item.tag_id)

        tag_ids = [item.tag_id for item in items if item.tag_id is not None]
        if len(self.store.find_tags(user_id, tag_ids)) != len(tag_ids):
            raise ValidationError("One or more tags do not belong to user")

    @staticmethod
    def _validate_period(start_date: datetime, end_date: datetime) -> None:
        if ensure_utc(start_date) > ensure_utc(end_date):
            raise ValidationError("Budget start date must not be after its end date")

    def list_budgets(
        self,
        user_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Budget]:
        return self.store.list_budgets(
            user_id,
            start=ensure_utc(start) if start else None,
            end=ensure_utc(end) if end else None,
        )

    def get_budget(self, user_id: str, budget_id: str) -> Budget:
        return self.store.get_budget(user_id, budget_id)

    def create_budget(self, user_id: str, fields: dict[str, Any], items: list[BudgetItem]) -> Budget:
        self._validate_period(fields["start_date"], fields["end_date"])
        self._validate_items(user_id, items)
        budget = Budget(user_id=user_id, items=items, **fields)
        logger.info("[BUDGET] Created '%s' (%s) with %d items", budget.name, budget.id, len(items))
        return self.store.put_budget(budget)

    def update_budget(
        self,
        user_id: str,
        budget_id: str,
        changes: dict[str, Any],
        items: list[BudgetItem] | None = None,
    ) -> Budget:
        current = self.store.get_budget(user_id, budget_id)
        changes = {**changes, "updated_at": utcnow()}
        # Items are replaced as a whole when given.
        if items is not None:
            self._validate_items(user_id, items)
            changes["items"] = items
        updated = merge_update(current, changes, required=BUDGET_REQUIRED_FIELDS)
        self._validate_period(updated.start_date, updated.end_date)
        return self.store.put_budget(updated)

    def delete_budget(self, user_id: str, budget_id: str) -> None:
        self.store.delete_budget(user_id, budget_id)
        logger.info("[BUDGET] Deleted %s", budget_id)

    def get_comparison(self, user_id: str, budget_id: str) -> BudgetComparison:
        budget = self.store.get_budget(user_id, budget_id)
        transactions = self.store.transactions_between(
            user_id,
            budget.start_date,
            budget.end_date,
            currency=budget.currency,
        )
        return compute_comparison(budget, transactions)

    def get_overview(self, user_id: str, now: datetime | None = None) -> BudgetsOverview:
        """Overview of the budgets whose period contains ``now``."""
        now = ensure_utc(now or utcnow())
        active = self.store.list_budgets(user_id, start=now, end=now)
        transactions = self.store.list_transactions(user_id)
        return build_overview(active, transactions, now=now, pace_tolerance=self.pace_tolerance)
