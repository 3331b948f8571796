from collections import defaultdict
from collections.abc import Iterable
from datetime import date, datetime

from finance_tracker.domain.dates import format_date_header
from finance_tracker.models import DateGroup, Transaction


def _sort_key(transaction: Transaction) -> tuple[int, float, float]:
    """
    DateTime entries come before DateOnly ones on the same day. DateOnly entries tie-break
    on ``created_at``; DateTime ties keep their input order (the sort is stable).
    """
    occurred = -transaction.transaction_date.timestamp()
    if transaction.time_precision == "DateTime":
        return 0, occurred, 0.0
    return 1, occurred, -transaction.created_at.timestamp()


def sort_within_day(transactions: Iterable[Transaction]) -> list[Transaction]:
    return sorted(transactions, key=_sort_key)


def group_by_date(transactions: Iterable[Transaction], now: datetime | None = None) -> list[DateGroup]:
    """Bucket by UTC calendar date, most recent day first."""
    buckets: dict[date, list[Transaction]] = defaultdict(list)
    for transaction in transactions:
        buckets[transaction.transaction_date.date()].append(transaction)

    return [
        DateGroup(
            date=day.isoformat(),
            header=format_date_header(day, now),
            transactions=sort_within_day(buckets[day]),
        )
        for day in sorted(buckets, reverse=True)
    ]
