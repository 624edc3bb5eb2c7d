import logging
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Annotated, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    field_validator,
)

from config import get_settings
from models import TransactionKind
from reconcile import format_signed, quantize_money


logger = logging.getLogger(__name__)

# Rendered as a number rounded to two places; arithmetic stays on Decimal.
Money = Annotated[
    Decimal, PlainSerializer(lambda v: float(quantize_money(v)), return_type=float)
]


class TransactionDraft(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    kind: TransactionKind = TransactionKind.debit
    reason: str = Field(..., max_length=200)
    occurred_on: Optional[date] = None
    occurred_at: Optional[time] = None

    @field_validator("reason")
    @classmethod
    def _reason_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Reason must not be empty")
        return value


class InitialBalanceIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)


class Transaction(BaseModel):
    """A stored transaction. Instances are never mutated once created."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    user_id: str
    kind: TransactionKind
    amount: Decimal
    reason: str = ""
    occurred_on: Optional[date] = None
    occurred_at: Optional[time] = None
    recorded_at: datetime

    @field_validator("occurred_on", mode="before")
    @classmethod
    def _lenient_date(cls, value):
        if value is None or isinstance(value, date):
            return value.date() if isinstance(value, datetime) else value
        try:
            return date.fromisoformat(str(value).strip())
        except ValueError:
            logger.debug(f"transaction_date_unparseable: value={value!r}")
            return None

    @field_validator("amount", mode="before")
    @classmethod
    def _lenient_amount(cls, value):
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            amount = None
        if amount is None or not amount.is_finite():
            logger.debug(f"transaction_amount_unparseable: value={value!r}")
            return Decimal("0")
        return amount

    @field_validator("reason", mode="before")
    @classmethod
    def _none_reason(cls, value):
        return "" if value is None else value


class TransactionOut(BaseModel):
    id: int
    kind: TransactionKind
    amount: Money
    reason: str
    occurred_on: Optional[date]
    occurred_at: Optional[time]
    recorded_at: datetime
    display_amount: str

    @classmethod
    def from_transaction(cls, txn: Transaction) -> "TransactionOut":
        symbol = get_settings().currency_symbol
        return cls(
            **txn.model_dump(exclude={"user_id"}),
            display_amount=format_signed(txn.amount, txn.kind, symbol),
        )


class BucketOut(BaseModel):
    label: str
    start: date
    end: date
    expense_total: Money
    income_total: Money
    net_total: Money


class CategoryOut(BaseModel):
    label: str
    display_label: str
    total: Money


class SummaryOut(BaseModel):
    total_expenses: Money
    total_income: Money
    net_savings: Money
    average_amount: Money
    transaction_count: int


class MutationOut(BaseModel):
    success: bool
    outcome: Literal["committed", "not_applied", "balance_stale"]
    message: Optional[str] = None
    balance: Money
    transaction: Optional[TransactionOut] = None


class OverviewOut(BaseModel):
    granularity: str
    balance: Optional[Money] = None
    periods: Optional[list[BucketOut]] = None
    categories: Optional[list[CategoryOut]] = None
    summary: Optional[SummaryOut] = None
    recent: Optional[list[TransactionOut]] = None


class LedgerStateOut(BaseModel):
    user_id: str
    balance: Money
    initial_balance: Optional[Money] = None
    needs_balance_setup: bool
    transaction_count: int
    consistent: bool
