from typing import Annotated

from fastapi import APIRouter, Body, Depends, Query, Request, Response

from finance_tracker.api.dependencies import get_transaction_service, get_user_id
from finance_tracker.api.schemas import TransactionBulkResult, TransactionCreate, TransactionPage, TransactionUpdate
from finance_tracker.domain.dates import utcnow
from finance_tracker.domain.filters import deserialize_filter_state
from finance_tracker.domain.tags import parse_list
from finance_tracker.errors import ValidationError
from finance_tracker.models import DateGroup, Transaction
from finance_tracker.services.transactions import TransactionService

router = APIRouter(prefix="/api/v1/transactions", tags=["transactions"])

UserId = Annotated[str, Depends(get_user_id)]
Transactions = Annotated[TransactionService, Depends(get_transaction_service)]


@router.get("")
def list_transactions(
    request: Request,
    user_id: UserId,
    service: Transactions,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
    sort: str | None = None,
) -> TransactionPage:
    """
    Filter facets come from the query string (dateType, dateFrom, dateTo, priceMin,
    priceMax, q, tags, transactionTypes, paymentMethods, currencies). ``sort`` is
    ``field:asc|desc`` over date, amount or name, newest first by default.
    """
    state = deserialize_filter_state(request.query_params)
    return TransactionPage(**service.list_page(user_id, state, page=page, limit=limit, sort=sort))


@router.get("/grouped")
def list_transactions_grouped(request: Request, user_id: UserId, service: Transactions) -> list[DateGroup]:
    state = deserialize_filter_state(request.query_params)
    return service.list_grouped(user_id, state)


@router.get("/export")
def export_transactions(
    request: Request,
    user_id: UserId,
    service: Transactions,
    sort: str | None = None,
    columns: str | None = None,
) -> Response:
    """CSV of the filtered transactions. ``columns`` is a comma separated subset of the export columns."""
    state = deserialize_filter_state(request.query_params)
    content = service.export_csv(user_id, state, columns=parse_list(columns), sort=sort)
    filename = f"transactions_{utcnow().date().isoformat()}.csv"
    return Response(
        content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("/bulk", status_code=201)
def bulk_create_transactions(
    req: Annotated[list[TransactionCreate], Body()],
    response: Response,
    user_id: UserId,
    service: Transactions,
) -> TransactionBulkResult:
    """201 when every entry was created, 207 on partial success, 400 when none was."""
    if not req:
        raise ValidationError("At least one transaction is required")
    entries = [(item.model_dump(exclude={"tag_ids"}), item.tag_ids) for item in req]
    created, errors = service.bulk_create_transactions(user_id, entries)
    if not created:
        raise ValidationError("All transactions failed to create")
    if errors:
        response.status_code = 207
    return TransactionBulkResult(created=created, errors=errors)


@router.post("", status_code=201)
def create_transaction(req: TransactionCreate, user_id: UserId, service: Transactions) -> Transaction:
    fields = req.model_dump(exclude={"tag_ids"})
    return service.create_transaction(user_id, fields, req.tag_ids)


@router.get("/{transaction_id}")
def get_transaction(transaction_id: str, user_id: UserId, service: Transactions) -> Transaction:
    return service.get_transaction(user_id, transaction_id)


@router.patch("/{transaction_id}")
def update_transaction(
    transaction_id: str,
    req: TransactionUpdate,
    user_id: UserId,
    service: Transactions,
) -> Transaction:
    changes = req.model_dump(exclude_unset=True, exclude={"tag_ids"})
    return service.update_transaction(user_id, transaction_id, changes, tag_ids=req.tag_ids)


@router.delete("/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: str, user_id: UserId, service: Transactions) -> Response:
    service.delete_transaction(user_id, transaction_id)
    return Response(status_code=204)


@router.post("/{transaction_id}/tags/{tag_id}")
def add_transaction_tag(
    transaction_id: str,
    tag_id: str,
    user_id: UserId,
    service: Transactions,
) -> Transaction:
    return service.add_tag(user_id, transaction_id, tag_id)


@router.delete("/{transaction_id}/tags/{tag_id}")
def remove_transaction_tag(
    transaction_id: str,
    tag_id: str,
    user_id: UserId,
    service: Transactions,
) -> Transaction:
    return service.remove_tag(user_id, transaction_id, tag_id)
