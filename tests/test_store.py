import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from finance_tracker.errors import NotFoundError
from finance_tracker.models import Budget, BudgetItem, Tag, Transaction
from finance_tracker.services.store import LedgerStore

UTC = timezone.utc


@pytest.fixture
def ledger_path(tmp_path):
    return str(tmp_path / "ledger.json")


@pytest.fixture
def store(ledger_path):
    return LedgerStore(data_path=ledger_path)


def test_store_persists_and_reloads(store, ledger_path):
    tag = store.put_tag(Tag(user_id="u1", name="Food"))
    store.put_transaction(Transaction(
        user_id="u1",
        name="Lunch",
        amount=Decimal("12.30"),
        transaction_date=datetime(2024, 3, 5, 12, tzinfo=UTC),
        tags=[tag.ref()],
    ))
    store.put_budget(Budget(
        user_id="u1",
        name="March",
        start_date=datetime(2024, 3, 1, tzinfo=UTC),
        end_date=datetime(2024, 3, 31, tzinfo=UTC),
        items=[BudgetItem(tag_id=tag.id, expected_amount=Decimal("200"))],
    ))

    reloaded = LedgerStore(data_path=ledger_path)

    assert [t.name for t in reloaded.list_tags("u1")] == ["Food"]
    tx = reloaded.list_transactions("u1")[0]
    assert tx.amount == Decimal("12.30")
    assert tx.tag_ids == {tag.id}
    assert reloaded.list_budgets("u1")[0].items[0].expected_amount == Decimal("200")


def test_amounts_are_written_as_strings(store, ledger_path):
    store.put_transaction(Transaction(
        user_id="u1",
        amount=Decimal("0.10"),
        transaction_date=datetime(2024, 3, 5, tzinfo=UTC),
    ))

    with open(ledger_path, encoding="utf-8") as f:
        document = json.load(f)

    assert document["transactions"][0]["amount"] == "0.10"


def test_corrupt_file_starts_empty(ledger_path, caplog):
    with open(ledger_path, "w", encoding="utf-8") as f:
        f.write("{not json")

    with caplog.at_level(logging.WARNING):
        store = LedgerStore(data_path=ledger_path)

    assert store.list_tags("u1") == []
    assert "Could not read" in caplog.text


def test_memory_only_store_writes_nothing(tmp_path):
    store = LedgerStore()
    store.put_tag(Tag(user_id="u1", name="Food"))

    assert list(tmp_path.iterdir()) == []
    assert len(store.list_tags("u1")) == 1


def test_lookups_are_scoped_to_the_owner(store):
    tag = store.put_tag(Tag(user_id="u1", name="Food"))

    assert store.get_tag("u1", tag.id) is tag
    with pytest.raises(NotFoundError):
        store.get_tag("u2", tag.id)
    assert store.find_tags("u2", [tag.id]) == []
    assert store.list_tags("u2") == []


def test_renaming_a_tag_updates_transactions(store):
    tag = store.put_tag(Tag(user_id="u1", name="Food"))
    tx = store.put_transaction(Transaction(
        user_id="u1",
        amount=Decimal("5"),
        transaction_date=datetime(2024, 3, 5, tzinfo=UTC),
        tags=[tag.ref()],
    ))

    store.put_tag(tag.model_copy(update={"name": "Groceries"}))

    assert [ref.name for ref in store.get_transaction("u1", tx.id).tags] == ["Groceries"]


def test_deleting_a_tag_detaches_it(store):
    keep = store.put_tag(Tag(user_id="u1", name="Keep"))
    drop = store.put_tag(Tag(user_id="u1", name="Drop"))
    tx = store.put_transaction(Transaction(
        user_id="u1",
        amount=Decimal("5"),
        transaction_date=datetime(2024, 3, 5, tzinfo=UTC),
        tags=[keep.ref(), drop.ref()],
    ))

    store.delete_tag("u1", drop.id)

    assert store.get_transaction("u1", tx.id).tag_ids == {keep.id}
    with pytest.raises(NotFoundError):
        store.get_tag("u1", drop.id)


def test_transactions_between_is_inclusive_and_filters_currency(store):
    for day, currency in ((1, "EUR"), (15, "EUR"), (31, "EUR"), (15, "USD")):
        store.put_transaction(Transaction(
            user_id="u1",
            amount=Decimal("1"),
            currency=currency,
            transaction_date=datetime(2024, 3, day, tzinfo=UTC),
        ))

    start = datetime(2024, 3, 1, tzinfo=UTC)
    end = datetime(2024, 3, 31, tzinfo=UTC)

    assert len(store.transactions_between("u1", start, end)) == 4
    assert len(store.transactions_between("u1", start, end, currency="EUR")) == 3


def test_list_budgets_by_overlap(store):
    def add(name, start_month, end_month):
        store.put_budget(Budget(
            user_id="u1",
            name=name,
            start_date=datetime(2024, start_month, 1, tzinfo=UTC),
            end_date=datetime(2024, end_month, 28, tzinfo=UTC),
        ))

    add("jan", 1, 1)
    add("q1", 1, 3)
    add("apr", 4, 4)

    march = store.list_budgets(
        "u1",
        start=datetime(2024, 3, 1, tzinfo=UTC),
        end=datetime(2024, 3, 31, tzinfo=UTC),
    )
    assert [b.name for b in march] == ["q1"]
    assert [b.name for b in store.list_budgets("u1")][0] == "apr"


def test_clear_empties_the_ledger(store, ledger_path):
    store.put_tag(Tag(user_id="u1", name="Food"))
    store.clear()

    assert LedgerStore(data_path=ledger_path).list_tags("u1") == []


def test_failed_write_leaves_memory_and_disk_unchanged(store, ledger_path, monkeypatch):
    food = store.put_tag(Tag(user_id="u1", name="Food"))

    def refuse(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("finance_tracker.services.store.os.replace", refuse)
    with pytest.raises(OSError):
        store.put_tag(food.model_copy(update={"name": "Groceries"}))
    with pytest.raises(OSError):
        store.put_tag(Tag(user_id="u1", name="Rent"))
    monkeypatch.undo()

    assert [tag.name for tag in store.list_tags("u1")] == ["Food"]
    assert not os.path.exists(f"{ledger_path}.tmp")
    assert [tag.name for tag in LedgerStore(data_path=ledger_path).list_tags("u1")] == ["Food"]
