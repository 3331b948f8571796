from typing import Any

LIST_SEPARATOR = ","


def _dedupe(values: list[str]) -> list[str]:
    result: list[str] = []
    seen = set()
    for value in values:
        if value and value not in seen:
            result.append(value)
            seen.add(value)
    return result


def parse_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    return _dedupe([part.strip() for part in raw.split(LIST_SEPARATOR)])


def join_list(values: list[str]) -> str:
    return LIST_SEPARATOR.join(_dedupe(values))


def normalize_values(value: Any) -> list[str]:
    """Accept a comma separated string or any list-like of values."""
    if not value:
        return []
    if isinstance(value, str):
        return parse_list(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return _dedupe([str(item).strip() for item in value if item is not None])
    return []


def tag_name_key(name: str) -> str:
    return " ".join(name.split()).casefold()


def next_tag_order(orders: list[int]) -> int:
    return max(orders, default=-1) + 1
