from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, TypeVar
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as ModelValidationError

from finance_tracker.domain.dates import ensure_utc, utcnow
from finance_tracker.errors import ValidationError

TransactionType = Literal["EXPENSE", "INCOME"]
TimePrecision = Literal["DateOnly", "DateTime"]
PaymentMethod = Literal[
    "CASH",
    "CREDIT_CARD",
    "DEBIT_CARD",
    "BANK_TRANSFER",
    "CHECK",
    "DIGITAL_WALLET",
    "CRYPTOCURRENCY",
    "GIFT_CARD",
    "OTHER",
]
BudgetStatus = Literal["on track", "approaching", "over budget"]
SpendingPace = Literal["faster", "slower", "on-track"]

TRANSACTION_TYPES: tuple[str, ...] = ("EXPENSE", "INCOME")
PAYMENT_METHODS: tuple[str, ...] = (
    "CASH",
    "CREDIT_CARD",
    "DEBIT_CARD",
    "BANK_TRANSFER",
    "CHECK",
    "DIGITAL_WALLET",
    "CRYPTOCURRENCY",
    "GIFT_CARD",
    "OTHER",
)


def new_id() -> str:
    return uuid4().hex


class TagRef(BaseModel):
    id: str
    name: str
    color: str | None = None


class Tag(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str
    name: str
    color: str | None = None
    description: str | None = None
    order: int = 0
    created_at: datetime = Field(default_factory=utcnow)

    def ref(self) -> TagRef:
        return TagRef(id=self.id, name=self.name, color=self.color)


class Transaction(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str = ""
    name: str = ""
    amount: Decimal
    currency: str = "EUR"
    type: TransactionType = "EXPENSE"
    transaction_date: datetime
    time_precision: TimePrecision = "DateTime"
    created_at: datetime = Field(default_factory=utcnow)
    tags: list[TagRef] = Field(default_factory=list)
    description: str | None = None
    payment_method: PaymentMethod | None = None

    @field_validator("transaction_date", "created_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()

    @property
    def tag_ids(self) -> set[str]:
        return {tag.id for tag in self.tags}


class BudgetItem(BaseModel):
    # None marks the Misc item.
    tag_id: str | None = None
    expected_amount: Decimal


class Budget(BaseModel):
    id: str = Field(default_factory=new_id)
    user_id: str = ""
    name: str
    currency: str = "EUR"
    start_date: datetime
    end_date: datetime
    items: list[BudgetItem] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("start_date", "end_date", "created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()

    @property
    def budgeted_tag_ids(self) -> set[str]:
        return {item.tag_id for item in self.items if item.tag_id is not None}


class BudgetItemComparison(BaseModel):
    tag_id: str | None
    expected: Decimal
    actual: Decimal
    difference: Decimal
    percentage: float
    transaction_count: int


class BudgetAlert(BaseModel):
    tag_id: str
    tag_name: str
    tag_color: str | None = None
    transaction_count: int
    total_amount: Decimal


class BudgetComparison(BaseModel):
    budget_id: str
    currency: str
    items: list[BudgetItemComparison]
    total_expected: Decimal
    total_actual: Decimal
    total_difference: Decimal
    percentage: float
    status: BudgetStatus
    alerts: list[BudgetAlert] = Field(default_factory=list)


class BudgetOverviewEntry(BaseModel):
    budget_id: str
    name: str
    currency: str
    start_date: datetime
    end_date: datetime
    comparison: BudgetComparison
    remaining: Decimal
    remaining_label: str
    days_remaining: int
    days_elapsed: int
    total_days: int
    pace: SpendingPace


class BudgetsOverview(BaseModel):
    budgets: list[BudgetOverviewEntry]
    failed_budget_ids: list[str] = Field(default_factory=list)


class DateGroup(BaseModel):
    date: str
    header: str
    transactions: list[Transaction]


ModelT = TypeVar("ModelT", bound=BaseModel)


def _describe(exc: ModelValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first['msg']}" if location else first["msg"]


def merge_update(current: ModelT, changes: dict[str, Any], required: tuple[str, ...] = ()) -> ModelT:
    """
    Apply a partial update to ``current`` and validate the result.

    ``None`` for a field in ``required`` leaves that field unchanged. Validation failures
    surface as ``finance_tracker.errors.ValidationError``.
    """
    applied = {key: value for key, value in changes.items() if not (key in required and value is None)}
    try:
        return type(current).model_validate({**current.model_dump(), **applied})
    except ModelValidationError as exc:
        raise ValidationError(_describe(exc)) from exc
