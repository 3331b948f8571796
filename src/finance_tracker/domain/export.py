"""CSV export of transaction lists."""
import csv
import io
from collections.abc import Callable, Iterable

from finance_tracker.models import Transaction

EXPORT_COLUMNS: dict[str, Callable[[Transaction], str]] = {
    "Name": lambda tx: tx.name,
    "Amount": lambda tx: format(tx.amount, "f"),
    "Currency": lambda tx: tx.currency,
    "Type": lambda tx: tx.type,
    "Date": lambda tx: (
        tx.transaction_date.date().isoformat()
        if tx.time_precision == "DateOnly"
        else tx.transaction_date.isoformat()
    ),
    "Description": lambda tx: tx.description or "",
    "Tags": lambda tx: ", ".join(tag.name for tag in tx.tags),
    "Payment method": lambda tx: tx.payment_method or "",
}

DEFAULT_EXPORT_COLUMNS: tuple[str, ...] = ("Name", "Amount", "Currency", "Date", "Description", "Tags")


def resolve_columns(requested: Iterable[str] | None) -> list[str]:
    """Known column names in the requested order; the defaults when none are usable."""
    columns = [name for name in (requested or ()) if name in EXPORT_COLUMNS]
    return list(dict.fromkeys(columns)) or list(DEFAULT_EXPORT_COLUMNS)


def export_transactions_csv(
    transactions: Iterable[Transaction],
    columns: Iterable[str] | None = None,
) -> str:
    selected = resolve_columns(columns)
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(selected)
    for tx in transactions:
        writer.writerow([EXPORT_COLUMNS[name](tx) for name in selected])
    return output.getvalue()
