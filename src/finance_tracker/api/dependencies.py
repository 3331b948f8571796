from typing import Annotated

from fastapi import Header, HTTPException, Request

from finance_tracker.services.budgets import BudgetService
from finance_tracker.services.tags import TagService
from finance_tracker.services.transactions import TransactionService


def get_user_id(x_user_id: Annotated[str | None, Header()] = None) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id.strip()


def get_tag_service(request: Request) -> TagService:
    service = getattr(request.app.state, "tag_service", None)
    if not service:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return service


def get_transaction_service(request: Request) -> TransactionService:
    service = getattr(request.app.state, "transaction_service", None)
    if not service:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return service


def get_budget_service(request: Request) -> BudgetService:
    service = getattr(request.app.state, "budget_service", None)
    if not service:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return service
