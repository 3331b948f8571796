import csv
import inspect
import io
from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient

from finance_tracker.app import create_app
from finance_tracker.services.store import LedgerStore

HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    with TestClient(create_app(store=LedgerStore())) as test_client:
        yield test_client


def create_tag(client: TestClient, name: str) -> dict:
    response = client.post("/api/v1/tags", json={"name": name}, headers=HEADERS)
    assert response.status_code == 201
    return response.json()


def create_transaction(client: TestClient, amount: str, when: str, tag_ids: list[str] | None = None, **extra) -> dict:
    payload = {"name": f"tx {amount}", "amount": amount, "transaction_date": when, "tag_ids": tag_ids or [], **extra}
    response = client.post("/api/v1/transactions", json=payload, headers=HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_requests_without_user_are_rejected(client: TestClient) -> None:
    assert client.get("/api/v1/tags").status_code == 401
    assert client.get("/api/v1/tags", headers={"X-User-Id": "  "}).status_code == 401


def test_tag_lifecycle(client: TestClient) -> None:
    food = create_tag(client, "Food")

    duplicate = client.post("/api/v1/tags", json={"name": "food"}, headers=HEADERS)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "CONFLICT"

    renamed = client.patch(f"/api/v1/tags/{food['id']}", json={"name": "Groceries"}, headers=HEADERS)
    assert renamed.json()["name"] == "Groceries"

    assert client.delete(f"/api/v1/tags/{food['id']}", headers=HEADERS).status_code == 204
    missing = client.delete(f"/api/v1/tags/{food['id']}", headers=HEADERS)
    assert missing.status_code == 404
    assert missing.json() == {"error": {"code": "NOT_FOUND", "message": "Tag not found"}}


def test_bulk_create_and_reorder_tags(client: TestClient) -> None:
    create_tag(client, "Rent")
    response = client.post("/api/v1/tags/bulk", json={"names": ["Food", "rent", "Travel"]}, headers=HEADERS)

    assert response.status_code == 201
    body = response.json()
    assert [tag["name"] for tag in body["created"]] == ["Food", "Travel"]
    assert body["skipped"] == ["rent"]

    ids = {tag["name"]: tag["id"] for tag in client.get("/api/v1/tags", headers=HEADERS).json()}
    order = [ids["Travel"], ids["Rent"], ids["Food"]]
    reordered = client.post("/api/v1/tags/reorder", json={"tag_ids": order}, headers=HEADERS)
    assert reordered.status_code == 200

    listed = client.get("/api/v1/tags", headers=HEADERS).json()
    assert [tag["name"] for tag in listed] == ["Travel", "Rent", "Food"]


def test_tags_are_private_to_their_user(client: TestClient) -> None:
    create_tag(client, "Food")
    assert client.get("/api/v1/tags", headers={"X-User-Id": "user-2"}).json() == []


def test_transaction_amounts_are_decimal_strings(client: TestClient) -> None:
    tx = create_transaction(client, "12.50", "2024-03-05T10:00:00Z")

    assert tx["amount"] == "12.50"
    assert tx["currency"] == "EUR"
    assert tx["type"] == "EXPENSE"

    fetched = client.get(f"/api/v1/transactions/{tx['id']}", headers=HEADERS).json()
    assert fetched["amount"] == "12.50"


def test_negative_amount_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/v1/transactions",
        json={"amount": "-1", "transaction_date": "2024-03-05T10:00:00Z"},
        headers=HEADERS,
    )
    assert response.status_code == 422


def test_transaction_with_foreign_tag_is_rejected(client: TestClient) -> None:
    other = client.post("/api/v1/tags", json={"name": "Theirs"}, headers={"X-User-Id": "user-2"}).json()
    response = client.post(
        "/api/v1/transactions",
        json={"amount": "1", "transaction_date": "2024-03-05T10:00:00Z", "tag_ids": [other["id"]]},
        headers=HEADERS,
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_transaction_listing_applies_filter_query(client: TestClient) -> None:
    food = create_tag(client, "Food")
    create_transaction(client, "5", "2024-03-05T10:00:00Z", [food["id"]])
    create_transaction(client, "50", "2024-03-06T10:00:00Z", [food["id"]], payment_method="CASH")
    create_transaction(client, "500", "2024-03-07T10:00:00Z")
    create_transaction(client, "7", "2024-02-20T10:00:00Z", [food["id"]], currency="USD")

    response = client.get(
        "/api/v1/transactions",
        params={"tags": food["id"], "priceMin": "10", "priceMax": "abc"},
        headers=HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["data"][0]["amount"] == "50"

    custom = client.get(
        "/api/v1/transactions",
        params={"dateType": "custom", "dateFrom": "2024-03-01", "dateTo": "2024-03-06", "currencies": "eur"},
        headers=HEADERS,
    ).json()
    assert [tx["amount"] for tx in custom["data"]] == ["50", "5"]


def test_transaction_listing_paginates(client: TestClient) -> None:
    for day in range(1, 6):
        create_transaction(client, str(day), f"2024-03-0{day}T10:00:00Z")

    body = client.get("/api/v1/transactions", params={"page": 2, "limit": 2}, headers=HEADERS).json()

    assert body["total"] == 5
    assert body["total_pages"] == 3
    assert body["has_next"] is True
    assert [tx["amount"] for tx in body["data"]] == ["3", "2"]


def test_grouped_listing(client: TestClient) -> None:
    create_transaction(client, "1", "2024-03-08T09:00:00Z")
    create_transaction(client, "2", "2024-03-08T18:00:00Z")
    create_transaction(client, "3", "2024-03-08T00:00:00Z", time_precision="DateOnly")
    create_transaction(client, "4", "2024-03-09T12:00:00Z")

    groups = client.get("/api/v1/transactions/grouped", headers=HEADERS).json()

    assert [group["date"] for group in groups] == ["2024-03-09", "2024-03-08"]
    assert groups[1]["header"] == "March 8, 2024"
    assert [tx["amount"] for tx in groups[1]["transactions"]] == ["2", "1", "3"]


def test_update_and_tag_a_transaction(client: TestClient) -> None:
    food = create_tag(client, "Food")
    tx = create_transaction(client, "5", "2024-03-05T10:00:00Z")

    updated = client.patch(
        f"/api/v1/transactions/{tx['id']}",
        json={"amount": "6.25", "description": "market"},
        headers=HEADERS,
    ).json()
    assert updated["amount"] == "6.25"
    assert updated["name"] == tx["name"]

    tagged = client.post(f"/api/v1/transactions/{tx['id']}/tags/{food['id']}", headers=HEADERS).json()
    assert [tag["name"] for tag in tagged["tags"]] == ["Food"]

    untagged = client.delete(f"/api/v1/transactions/{tx['id']}/tags/{food['id']}", headers=HEADERS).json()
    assert untagged["tags"] == []

    assert client.delete(f"/api/v1/transactions/{tx['id']}", headers=HEADERS).status_code == 204
    assert client.get(f"/api/v1/transactions/{tx['id']}", headers=HEADERS).status_code == 404


def test_budget_comparison_endpoint(client: TestClient) -> None:
    food = create_tag(client, "Food")
    coffee = create_tag(client, "Coffee")
    budget = client.post(
        "/api/v1/budgets",
        json={
            "name": "March",
            "start_date": "2024-03-01T00:00:00Z",
            "end_date": "2024-03-31T23:59:59Z",
            "items": [
                {"tag_id": food["id"], "expected_amount": "40"},
                {"tag_id": None, "expected_amount": "20"},
            ],
        },
        headers=HEADERS,
    )
    assert budget.status_code == 201, budget.text
    budget_id = budget.json()["id"]

    create_transaction(client, "50", "2024-03-05T10:00:00Z", [food["id"]])
    create_transaction(client, "30", "2024-03-06T10:00:00Z", [coffee["id"]])
    create_transaction(client, "1000", "2024-03-07T10:00:00Z", type="INCOME")

    comparison = client.get(f"/api/v1/budgets/{budget_id}/comparison", headers=HEADERS).json()

    assert comparison["total_expected"] == "60"
    assert comparison["total_actual"] == "80"
    assert comparison["percentage"] == 133.33
    assert comparison["status"] == "over budget"
    assert [alert["tag_name"] for alert in comparison["alerts"]] == ["Coffee"]


def test_budget_validation_errors(client: TestClient) -> None:
    response = client.post(
        "/api/v1/budgets",
        json={
            "name": "March",
            "start_date": "2024-03-01T00:00:00Z",
            "end_date": "2024-03-31T00:00:00Z",
            "items": [{"expected_amount": "1"}, {"expected_amount": "2"}],
        },
        headers=HEADERS,
    )
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Duplicate tag entry: Misc"

    bad_range = client.get("/api/v1/budgets", params={"from": "yesterday"}, headers=HEADERS)
    assert bad_range.status_code == 400


def test_budget_listing_and_update(client: TestClient) -> None:
    for name, month in (("January", 1), ("March", 3)):
        client.post(
            "/api/v1/budgets",
            json={
                "name": name,
                "start_date": f"2024-0{month}-01T00:00:00Z",
                "end_date": f"2024-0{month}-28T00:00:00Z",
            },
            headers=HEADERS,
        )

    march_only = client.get(
        "/api/v1/budgets",
        params={"from": "2024-03-01", "to": "2024-03-31"},
        headers=HEADERS,
    ).json()
    assert [budget["name"] for budget in march_only] == ["March"]

    budget_id = march_only[0]["id"]
    updated = client.patch(f"/api/v1/budgets/{budget_id}", json={"name": "March v2"}, headers=HEADERS)
    assert updated.json()["name"] == "March v2"

    assert client.delete(f"/api/v1/budgets/{budget_id}", headers=HEADERS).status_code == 204
    assert client.get(f"/api/v1/budgets/{budget_id}", headers=HEADERS).status_code == 404


def test_budgets_overview(client: TestClient) -> None:
    now = datetime.now(timezone.utc)
    client.post(
        "/api/v1/budgets",
        json={
            "name": "Current",
            "start_date": (now - timedelta(days=5)).isoformat(),
            "end_date": (now + timedelta(days=5)).isoformat(),
            "items": [{"tag_id": None, "expected_amount": "100"}],
        },
        headers=HEADERS,
    )
    create_transaction(client, "10", (now - timedelta(days=1)).isoformat())

    overview = client.get("/api/v1/budgets/overview", headers=HEADERS).json()

    assert overview["failed_budget_ids"] == []
    entry = overview["budgets"][0]
    assert entry["name"] == "Current"
    assert entry["remaining"] == "90"
    assert entry["remaining_label"] == "EUR 90.00 left"
    assert entry["days_remaining"] == 5
    assert entry["pace"] == "slower"


def test_filter_normalize_endpoint(client: TestClient) -> None:
    response = client.get(
        "/api/v1/filters/normalize",
        params={"priceMin": "50", "priceMax": "10", "tags": "b,a,b", "dateType": "weird", "search": "tea"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "query": {"priceMin": "10", "priceMax": "50", "tags": "b,a", "q": "tea"},
        "active": True,
        "active_count": 2,
    }


def test_patch_with_null_keeps_required_transaction_fields(client: TestClient) -> None:
    tx = create_transaction(client, "5", "2024-03-05T10:00:00Z")

    response = client.patch(
        f"/api/v1/transactions/{tx['id']}",
        json={"amount": None, "name": None, "transaction_date": None, "description": None},
        headers=HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["amount"] == "5"
    assert body["name"] == tx["name"]
    assert body["transaction_date"] == tx["transaction_date"]


def test_patch_with_null_keeps_budget_period(client: TestClient) -> None:
    budget = client.post(
        "/api/v1/budgets",
        json={"name": "March", "start_date": "2024-03-01T00:00:00Z", "end_date": "2024-03-31T00:00:00Z"},
        headers=HEADERS,
    ).json()

    response = client.patch(
        f"/api/v1/budgets/{budget['id']}",
        json={"start_date": None, "end_date": None, "name": None, "currency": None},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.json()["start_date"] == budget["start_date"]
    assert response.json()["name"] == "March"


def test_bulk_create_transactions(client: TestClient) -> None:
    food = create_tag(client, "Food")
    entry = {"amount": "3", "transaction_date": "2024-03-05T10:00:00Z"}

    all_ok = client.post(
        "/api/v1/transactions/bulk",
        json=[entry, {**entry, "amount": "4", "tag_ids": [food["id"]]}],
        headers=HEADERS,
    )
    assert all_ok.status_code == 201
    assert [tx["amount"] for tx in all_ok.json()["created"]] == ["3", "4"]
    assert all_ok.json()["errors"] == []

    partial = client.post(
        "/api/v1/transactions/bulk",
        json=[entry, {**entry, "tag_ids": ["missing"]}],
        headers=HEADERS,
    )
    assert partial.status_code == 207
    assert partial.json()["errors"] == [{"index": 1, "message": "One or more tags do not belong to user"}]

    none_ok = client.post("/api/v1/transactions/bulk", json=[{**entry, "tag_ids": ["missing"]}], headers=HEADERS)
    assert none_ok.status_code == 400
    assert none_ok.json()["error"]["message"] == "All transactions failed to create"

    assert client.post("/api/v1/transactions/bulk", json=[], headers=HEADERS).status_code == 400
    assert client.get("/api/v1/transactions", headers=HEADERS).json()["total"] == 3


def test_transaction_listing_sort(client: TestClient) -> None:
    create_transaction(client, "20", "2024-03-01T10:00:00Z", name="banana")
    create_transaction(client, "5", "2024-03-02T10:00:00Z", name="Apple")
    create_transaction(client, "100", "2024-03-03T10:00:00Z", name="cherry")

    def amounts(sort: str) -> list[str]:
        body = client.get("/api/v1/transactions", params={"sort": sort}, headers=HEADERS).json()
        return [tx["amount"] for tx in body["data"]]

    assert amounts("date:desc") == ["100", "5", "20"]
    assert amounts("date:asc") == ["20", "5", "100"]
    assert amounts("amount:desc") == ["100", "20", "5"]
    assert amounts("name:asc") == ["5", "20", "100"]

    invalid = client.get("/api/v1/transactions", params={"sort": "colour:up"}, headers=HEADERS)
    assert invalid.status_code == 400


def test_export_filtered_transactions_as_csv(client: TestClient) -> None:
    food = create_tag(client, "Food")
    create_transaction(client, "12.50", "2024-03-05T10:00:00Z", [food["id"]], name="Market, weekly")
    create_transaction(client, "99", "2024-03-06T10:00:00Z")

    response = client.get(
        "/api/v1/transactions/export",
        params={"tags": food["id"], "columns": "Name,Amount,Tags,Bogus"},
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=transactions_" in response.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows == [["Name", "Amount", "Tags"], ["Market, weekly", "12.50", "Food"]]


def test_normalize_drops_oversized_price(client: TestClient) -> None:
    response = client.get("/api/v1/filters/normalize", params={"priceMin": "1E+5000000", "priceMax": "20"})

    assert response.status_code == 200
    assert response.json()["query"] == {"priceMax": "20"}


def test_api_handlers_run_in_the_threadpool() -> None:
    routes = [route for route in create_app(store=LedgerStore()).routes if isinstance(route, APIRoute)]
    api_routes = [route for route in routes if route.path.startswith("/api/v1")]

    assert api_routes
    assert not [route.path for route in api_routes if inspect.iscoroutinefunction(route.endpoint)]
