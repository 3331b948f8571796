from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response

from finance_tracker.api.dependencies import get_budget_service, get_user_id
from finance_tracker.api.schemas import BudgetCreate, BudgetUpdate
from finance_tracker.domain.dates import parse_iso_datetime
from finance_tracker.errors import ValidationError
from finance_tracker.models import Budget, BudgetComparison, BudgetsOverview
from finance_tracker.services.budgets import BudgetService

router = APIRouter(prefix="/api/v1/budgets", tags=["budgets"])

UserId = Annotated[str, Depends(get_user_id)]
Budgets = Annotated[BudgetService, Depends(get_budget_service)]


@router.get("")
def list_budgets(
    user_id: UserId,
    service: Budgets,
    start: Annotated[str | None, Query(alias="from")] = None,
    end: Annotated[str | None, Query(alias="to")] = None,
) -> list[Budget]:
    start_date = parse_iso_datetime(start)
    end_date = parse_iso_datetime(end)
    if (start and start_date is None) or (end and end_date is None):
        raise ValidationError("from/to must be ISO-8601 dates")
    return service.list_budgets(user_id, start=start_date, end=end_date)


@router.post("", status_code=201)
def create_budget(req: BudgetCreate, user_id: UserId, service: Budgets) -> Budget:
    fields = req.model_dump(exclude={"items"})
    return service.create_budget(user_id, fields, [item.to_item() for item in req.items])


@router.get("/overview")
def get_budgets_overview(user_id: UserId, service: Budgets) -> BudgetsOverview:
    return service.get_overview(user_id)


@router.get("/{budget_id}")
def get_budget(budget_id: str, user_id: UserId, service: Budgets) -> Budget:
    return service.get_budget(user_id, budget_id)


@router.patch("/{budget_id}")
def update_budget(budget_id: str, req: BudgetUpdate, user_id: UserId, service: Budgets) -> Budget:
    changes = req.model_dump(exclude_unset=True, exclude={"items"})
    items = [item.to_item() for item in req.items] if req.items is not None else None
    return service.update_budget(user_id, budget_id, changes, items=items)


@router.delete("/{budget_id}", status_code=204)
def delete_budget(budget_id: str, user_id: UserId, service: Budgets) -> Response:
    service.delete_budget(user_id, budget_id)
    return Response(status_code=204)


@router.get("/{budget_id}/comparison")
def get_budget_comparison(budget_id: str, user_id: UserId, service: Budgets) -> BudgetComparison:
    return service.get_comparison(user_id, budget_id)
