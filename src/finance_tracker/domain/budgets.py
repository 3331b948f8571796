"""
Budget comparison engine.

Everything here is a pure function over budgets and transactions that were already
fetched from the store. Amounts stay ``Decimal`` end to end; floats only appear as the
rounded display percentage.
"""
import math
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from finance_tracker.domain.dates import DAY, ensure_utc, utcnow
from finance_tracker.logger import get_logger
from finance_tracker.models import (
    Budget,
    BudgetAlert,
    BudgetComparison,
    BudgetItem,
    BudgetItemComparison,
    BudgetOverviewEntry,
    BudgetsOverview,
    BudgetStatus,
    SpendingPace,
    Transaction,
)

logger = get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
APPROACHING_THRESHOLD = Decimal("80")
DEFAULT_PACE_TOLERANCE = Decimal("0.05")
_CENT = Decimal("0.01")

Number = Decimal | int | float | str


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() keeps the short repr, Decimal(float) would expose binary noise.
        return Decimal(str(value))
    return Decimal(value)


def sum_amounts(transactions: Iterable[Transaction]) -> Decimal:
    return sum((tx.amount for tx in transactions), ZERO)


def compute_percentage(actual: Decimal, expected: Decimal) -> Decimal:
    if expected == ZERO:
        return ZERO
    return actual / expected * HUNDRED


def round_percentage(value: Decimal) -> float:
    return float(value.quantize(_CENT, rounding=ROUND_HALF_UP))


def classify_status(percentage: Number) -> BudgetStatus:
    value = to_decimal(percentage)
    if value < APPROACHING_THRESHOLD:
        return "on track"
    if value <= HUNDRED:
        return "approaching"
    return "over budget"


def select_budget_transactions(budget: Budget, transactions: Iterable[Transaction]) -> list[Transaction]:
    """Transactions inside the inclusive budget period and in the budget currency."""
    return [
        tx
        for tx in transactions
        if tx.currency == budget.currency
        and budget.start_date <= tx.transaction_date <= budget.end_date
    ]


def bucket_expenses(budget: Budget, transactions: Iterable[Transaction]) -> dict[str | None, list[Transaction]]:
    """
    Map each budgeted tag id to the expenses carrying it, and ``None`` to the expenses
    carrying no budgeted tag at all. A transaction with two budgeted tags lands in both.
    """
    budgeted = budget.budgeted_tag_ids
    buckets: dict[str | None, list[Transaction]] = defaultdict(list)
    for tx in transactions:
        if tx.type != "EXPENSE":
            continue
        matched = tx.tag_ids & budgeted
        if not matched:
            buckets[None].append(tx)
            continue
        for tag_id in matched:
            buckets[tag_id].append(tx)
    return buckets


def _compare_item(item: BudgetItem, transactions: list[Transaction]) -> BudgetItemComparison:
    actual = sum_amounts(transactions)
    return BudgetItemComparison(
        tag_id=item.tag_id,
        expected=item.expected_amount,
        actual=actual,
        difference=actual - item.expected_amount,
        percentage=round_percentage(compute_percentage(actual, item.expected_amount)),
        transaction_count=len(transactions),
    )


def build_alerts(untagged: list[Transaction]) -> list[BudgetAlert]:
    """Group expenses with no budgeted tag by the unbudgeted tags they do carry."""
    alerts: dict[str, BudgetAlert] = {}
    for tx in untagged:
        for tag in tx.tags:
            alert = alerts.get(tag.id)
            if alert is None:
                alert = BudgetAlert(
                    tag_id=tag.id,
                    tag_name=tag.name,
                    tag_color=tag.color,
                    transaction_count=0,
                    total_amount=ZERO,
                )
                alerts[tag.id] = alert
            alert.transaction_count += 1
            alert.total_amount += tx.amount
    return sorted(alerts.values(), key=lambda alert: (-alert.total_amount, alert.tag_name))


def compute_comparison(budget: Budget, transactions: Iterable[Transaction]) -> BudgetComparison:
    in_period = select_budget_transactions(budget, transactions)
    buckets = bucket_expenses(budget, in_period)

    items = [_compare_item(item, buckets.get(item.tag_id, [])) for item in budget.items]

    total_expected = sum((item.expected_amount for item in budget.items), ZERO)
    total_actual = sum((item.actual for item in items), ZERO)
    percentage = compute_percentage(total_actual, total_expected)

    logger.debug(
        "[BUDGET] %s: %d in-period transactions, actual %s of %s",
        budget.id,
        len(in_period),
        total_actual,
        total_expected,
    )

    return BudgetComparison(
        budget_id=budget.id,
        currency=budget.currency,
        items=items,
        total_expected=total_expected,
        total_actual=total_actual,
        total_difference=total_actual - total_expected,
        percentage=round_percentage(percentage),
        status=classify_status(percentage),
        alerts=build_alerts(buckets.get(None, [])),
    )


def calculate_spending_pace(
    actual: Number,
    expected: Number,
    days_elapsed: int,
    total_days: int,
    tolerance: Number = DEFAULT_PACE_TOLERANCE,
) -> SpendingPace:
    actual_value = to_decimal(actual)
    expected_value = to_decimal(expected)
    if days_elapsed == 0 or total_days == 0 or expected_value == ZERO:
        return "on-track"

    expected_pace = expected_value / Decimal(total_days) * Decimal(days_elapsed)
    variance = actual_value - expected_pace
    if abs(variance / expected_pace) < to_decimal(tolerance):
        return "on-track"
    return "faster" if variance > 0 else "slower"


def _days_ceil(seconds: float) -> int:
    return math.ceil(seconds / DAY.total_seconds())


def calculate_days_remaining(end_date: datetime, now: datetime | None = None) -> int:
    now = ensure_utc(now or utcnow())
    return max(0, _days_ceil((ensure_utc(end_date) - now).total_seconds()))


def calculate_period_days(budget: Budget, now: datetime | None = None) -> tuple[int, int]:
    """Return ``(days_elapsed, total_days)`` for the budget period."""
    now = ensure_utc(now or utcnow())
    total_days = max(1, _days_ceil((budget.end_date - budget.start_date).total_seconds()))
    elapsed = _days_ceil((min(now, budget.end_date) - budget.start_date).total_seconds())
    return min(total_days, max(0, elapsed)), total_days


def format_remaining(remaining: Decimal, currency: str) -> str:
    amount = f"{currency} {abs(remaining):,.2f}"
    if remaining < ZERO:
        return f"{amount} over"
    return f"{amount} left"


def build_overview_entry(
    budget: Budget,
    transactions: Iterable[Transaction],
    now: datetime | None = None,
    pace_tolerance: Number = DEFAULT_PACE_TOLERANCE,
) -> BudgetOverviewEntry:
    now = ensure_utc(now or utcnow())
    comparison = compute_comparison(budget, transactions)
    days_elapsed, total_days = calculate_period_days(budget, now)
    remaining = comparison.total_expected - comparison.total_actual
    return BudgetOverviewEntry(
        budget_id=budget.id,
        name=budget.name,
        currency=budget.currency,
        start_date=budget.start_date,
        end_date=budget.end_date,
        comparison=comparison,
        remaining=remaining,
        remaining_label=format_remaining(remaining, budget.currency),
        days_remaining=calculate_days_remaining(budget.end_date, now),
        days_elapsed=days_elapsed,
        total_days=total_days,
        pace=calculate_spending_pace(
            comparison.total_actual,
            comparison.total_expected,
            days_elapsed,
            total_days,
            tolerance=pace_tolerance,
        ),
    )


def build_overview(
    budgets: Iterable[Budget],
    transactions: Iterable[Transaction],
    now: datetime | None = None,
    pace_tolerance: Number = DEFAULT_PACE_TOLERANCE,
) -> BudgetsOverview:
    """
    Compute an overview entry per budget. A budget that fails is logged and reported in
    ``failed_budget_ids`` while the rest of the batch is still computed.
    """
    now = ensure_utc(now or utcnow())
    pool = list(transactions)
    entries: list[BudgetOverviewEntry] = []
    failed: list[str] = []

    for budget in budgets:
        try:
            entries.append(build_overview_entry(budget, pool, now, pace_tolerance))
        except Exception:
            logger.exception("[OVERVIEW] Failed to compute budget %s, skipping.", getattr(budget, "id", "?"))
            failed.append(str(getattr(budget, "id", "?")))

    logger.debug("[OVERVIEW] Computed %d budgets, %d failed.", len(entries), len(failed))
    return BudgetsOverview(budgets=entries, failed_budget_ids=failed)
