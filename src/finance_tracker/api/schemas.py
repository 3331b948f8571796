from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from finance_tracker.core import settings
from finance_tracker.models import (
    BudgetItem,
    PaymentMethod,
    Tag,
    TimePrecision,
    Transaction,
    TransactionType,
)


class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    color: str | None = None
    description: str | None = None


class TagUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    color: str | None = None
    description: str | None = None


class TagBulkCreate(BaseModel):
    names: list[str]


class TagBulkResult(BaseModel):
    created: list[Tag]
    skipped: list[str]


class TagReorderRequest(BaseModel):
    tag_ids: list[str]


class TransactionCreate(BaseModel):
    name: str = ""
    amount: Decimal = Field(ge=0)
    currency: str = Field(default_factory=lambda: settings.DEFAULT_CURRENCY, min_length=3, max_length=3)
    type: TransactionType = "EXPENSE"
    transaction_date: datetime
    time_precision: TimePrecision = "DateTime"
    description: str | None = None
    payment_method: PaymentMethod | None = None
    tag_ids: list[str] = Field(default_factory=list)


class TransactionUpdate(BaseModel):
    name: str | None = None
    amount: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    type: TransactionType | None = None
    transaction_date: datetime | None = None
    time_precision: TimePrecision | None = None
    description: str | None = None
    payment_method: PaymentMethod | None = None
    tag_ids: list[str] | None = None


class TransactionBulkError(BaseModel):
    index: int
    message: str


class TransactionBulkResult(BaseModel):
    created: list[Transaction]
    errors: list[TransactionBulkError]


class TransactionPage(BaseModel):
    data: list[Transaction]
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool


class BudgetItemInput(BaseModel):
    tag_id: str | None = None
    expected_amount: Decimal = Field(ge=0)

    def to_item(self) -> BudgetItem:
        return BudgetItem(tag_id=self.tag_id, expected_amount=self.expected_amount)


class BudgetCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    currency: str = Field(default_factory=lambda: settings.DEFAULT_CURRENCY, min_length=3, max_length=3)
    start_date: datetime
    end_date: datetime
    items: list[BudgetItemInput] = Field(default_factory=list)


class BudgetUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    start_date: datetime | None = None
    end_date: datetime | None = None
    items: list[BudgetItemInput] | None = None


class FilterQueryResponse(BaseModel):
    query: dict[str, str]
    active: bool
    active_count: int
