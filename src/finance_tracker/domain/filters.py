"""
Transaction filter model.

``FilterState`` is the canonical filter value. It round-trips through a flat query
mapping (``serialize_filter_state`` / ``deserialize_filter_state``) and is applied to
transactions with ``matches``. Facets combine with AND; values inside one facet with OR;
an empty facet does not restrict anything.

Canonical query form: default values are left out, lists are comma separated,
dates are ``YYYY-MM-DD`` and prices plain decimal strings.
"""
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from finance_tracker.domain.dates import DAY, ensure_utc, month_window, parse_iso_date, start_of_day, utcnow
from finance_tracker.domain.tags import join_list, normalize_values, parse_list
from finance_tracker.models import PAYMENT_METHODS, TRANSACTION_TYPES, Transaction

DateFilterType = Literal["allTime", "thisMonth", "lastMonth", "custom"]
DATE_FILTER_TYPES: tuple[str, ...] = ("allTime", "thisMonth", "lastMonth", "custom")

Window = tuple[datetime | None, datetime | None]

MAX_PRICE_DIGITS = 15


@dataclass(frozen=True)
class DateFilter:
    type: DateFilterType = "allTime"
    start: date | None = None
    end: date | None = None

    def window(self, now: datetime | None = None) -> Window:
        """Resolve to a half-open ``[from, to)`` window. Relative types depend on ``now``."""
        if self.type == "thisMonth":
            return month_window(now or utcnow(), 0)
        if self.type == "lastMonth":
            return month_window(now or utcnow(), -1)
        if self.type == "custom":
            lower = start_of_day(self.start) if self.start else None
            # The end day is inclusive.
            upper = start_of_day(self.end) + DAY if self.end else None
            return lower, upper
        return None, None


@dataclass(frozen=True)
class PriceRange:
    min: Decimal | None = None
    max: Decimal | None = None

    @property
    def is_set(self) -> bool:
        return self.min is not None or self.max is not None

    def contains(self, amount: Decimal) -> bool:
        if self.min is not None and amount < self.min:
            return False
        if self.max is not None and amount > self.max:
            return False
        return True


@dataclass(frozen=True)
class FilterState:
    date_filter: DateFilter = field(default_factory=DateFilter)
    price: PriceRange = field(default_factory=PriceRange)
    search: str = ""
    tags: tuple[str, ...] = ()
    types: tuple[str, ...] = ()
    payment_methods: tuple[str, ...] = ()
    currencies: tuple[str, ...] = ()


DEFAULT_FILTER_STATE = FilterState()


def _normalize_date_filter(date_filter: DateFilter) -> DateFilter:
    if date_filter.type not in DATE_FILTER_TYPES:
        return DateFilter()
    if date_filter.type != "custom":
        return DateFilter(type=date_filter.type)

    start, end = date_filter.start, date_filter.end
    if start is None and end is None:
        return DateFilter()
    if start is not None and end is not None and start > end:
        start, end = end, start
    return DateFilter(type="custom", start=start, end=end)


def _valid_price(value: Decimal | None) -> Decimal | None:
    if value is None or not value.is_finite() or value < 0:
        return None
    # Canonical prices are written out in plain notation, so the magnitude is capped.
    if value.adjusted() > MAX_PRICE_DIGITS or value.as_tuple().exponent < -MAX_PRICE_DIGITS:
        return None
    return value


def _normalize_price(price: PriceRange) -> PriceRange:
    low, high = _valid_price(price.min), _valid_price(price.max)
    if low is not None and high is not None and low > high:
        low, high = high, low
    return PriceRange(min=low, max=high)


def normalize_filter_state(state: FilterState) -> FilterState:
    """Drop invalid values, resolve conflicts (swapped bounds) and dedupe lists."""
    return FilterState(
        date_filter=_normalize_date_filter(state.date_filter),
        price=_normalize_price(state.price),
        search=state.search.strip() if isinstance(state.search, str) else "",
        tags=tuple(normalize_values(list(state.tags))),
        types=tuple(v for v in normalize_values(list(state.types)) if v in TRANSACTION_TYPES),
        payment_methods=tuple(
            v for v in normalize_values(list(state.payment_methods)) if v in PAYMENT_METHODS
        ),
        currencies=tuple(normalize_values([v.upper() for v in state.currencies if isinstance(v, str)])),
    )


def has_active_filters(state: FilterState) -> bool:
    return (
        state.date_filter.type != DEFAULT_FILTER_STATE.date_filter.type
        or state.price.is_set
        or bool(state.search.strip())
        or bool(state.tags)
        or len(state.types) == 1
        or bool(state.payment_methods)
        or bool(state.currencies)
    )


def count_active_filters(state: FilterState) -> int:
    """Count the secondary facets in use. Date and search are shown separately."""
    return sum((
        state.price.is_set,
        bool(state.tags),
        len(state.types) == 1,
        bool(state.payment_methods),
        bool(state.currencies),
    ))


def _format_decimal(value: Decimal) -> str:
    return format(value, "f")


def serialize_filter_state(state: FilterState) -> dict[str, str]:
    state = normalize_filter_state(state)
    params: dict[str, str] = {}

    date_filter = state.date_filter
    if date_filter.type != "allTime":
        params["dateType"] = date_filter.type
    # Relative types are recomputed on evaluation, only custom bounds are stored.
    if date_filter.type == "custom":
        if date_filter.start:
            params["dateFrom"] = date_filter.start.isoformat()
        if date_filter.end:
            params["dateTo"] = date_filter.end.isoformat()

    if state.price.min is not None:
        params["priceMin"] = _format_decimal(state.price.min)
    if state.price.max is not None:
        params["priceMax"] = _format_decimal(state.price.max)

    if state.search:
        params["q"] = state.search
    if state.tags:
        params["tags"] = join_list(list(state.tags))
    if state.types:
        params["transactionTypes"] = join_list(list(state.types))
    if state.payment_methods:
        params["paymentMethods"] = join_list(list(state.payment_methods))
    if state.currencies:
        params["currencies"] = join_list(list(state.currencies))

    return params


def _get_param(params: Mapping[str, Any], key: str) -> str | None:
    value = params.get(key)
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _parse_price(raw: str | None) -> Decimal | None:
    if raw is None:
        return None
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        return None
    return _valid_price(value)


def _parse_date_filter(params: Mapping[str, Any]) -> DateFilter:
    date_type = _get_param(params, "dateType")
    if date_type not in DATE_FILTER_TYPES:
        return DateFilter()
    if date_type != "custom":
        return DateFilter(type=date_type)
    return DateFilter(
        type="custom",
        start=parse_iso_date(_get_param(params, "dateFrom")),
        end=parse_iso_date(_get_param(params, "dateTo")),
    )


def deserialize_filter_state(params: Mapping[str, Any] | None) -> FilterState:
    """
    Build a state from a flat query mapping. A malformed value drops only its own
    facet; this never raises.
    """
    if not params:
        return DEFAULT_FILTER_STATE

    search = _get_param(params, "q")
    if search is None:
        search = _get_param(params, "search")

    state = FilterState(
        date_filter=_parse_date_filter(params),
        price=PriceRange(
            min=_parse_price(_get_param(params, "priceMin")),
            max=_parse_price(_get_param(params, "priceMax")),
        ),
        search=search or "",
        tags=tuple(parse_list(_get_param(params, "tags"))),
        types=tuple(parse_list(_get_param(params, "transactionTypes"))),
        payment_methods=tuple(parse_list(_get_param(params, "paymentMethods"))),
        currencies=tuple(parse_list(_get_param(params, "currencies"))),
    )
    return normalize_filter_state(state)


def filter_state_to_json(state: FilterState) -> str:
    return json.dumps(serialize_filter_state(state), sort_keys=True)


def filter_state_from_json(raw: str | None) -> FilterState:
    if not raw:
        return DEFAULT_FILTER_STATE
    try:
        parsed = json.loads(raw)
    except (ValueError, RecursionError):
        return DEFAULT_FILTER_STATE
    if not isinstance(parsed, dict):
        return DEFAULT_FILTER_STATE
    return deserialize_filter_state(parsed)


def _matches_search(transaction: Transaction, needle: str) -> bool:
    haystack = [transaction.name, transaction.description or ""]
    haystack.extend(tag.name for tag in transaction.tags)
    return any(needle in text.casefold() for text in haystack)


def _matches(transaction: Transaction, state: FilterState, window: Window) -> bool:
    lower, upper = window
    occurred = transaction.transaction_date
    if lower is not None and occurred < lower:
        return False
    if upper is not None and occurred >= upper:
        return False
    if not state.price.contains(transaction.amount):
        return False
    if state.tags and transaction.tag_ids.isdisjoint(state.tags):
        return False
    if state.types and transaction.type not in state.types:
        return False
    if state.payment_methods and transaction.payment_method not in state.payment_methods:
        return False
    if state.currencies and transaction.currency not in state.currencies:
        return False
    needle = state.search.strip().casefold()
    if needle and not _matches_search(transaction, needle):
        return False
    return True


def matches(transaction: Transaction, state: FilterState, now: datetime | None = None) -> bool:
    return _matches(transaction, state, state.date_filter.window(ensure_utc(now or utcnow())))


def apply_filters(
    transactions: Iterable[Transaction],
    state: FilterState,
    now: datetime | None = None,
) -> list[Transaction]:
    window = state.date_filter.window(ensure_utc(now or utcnow()))
    return [tx for tx in transactions if _matches(tx, state, window)]
