import logging
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from database import Base


logger = logging.getLogger(__name__)


class TransactionKind(str, Enum):
    credit = "credit"
    debit = "debit"


MONEY = Numeric(14, 2, asdecimal=True)


class LenientResult(TypeDecorator):
    """Column type that loads values it cannot parse as None.

    Rows written outside the app may hold text the dialect cannot convert;
    ``schemas.Transaction`` decides what a missing value means.
    """

    cache_ok = True

    def result_processor(self, dialect, coltype):
        process = super().result_processor(dialect, coltype)
        if process is None:
            return None

        def lenient(value):
            try:
                return process(value)
            except (ValueError, TypeError, ArithmeticError):
                logger.debug(f"column_value_unparseable: value={value!r}")
                return None

        return lenient


class LenientDate(LenientResult):
    impl = Date


class LenientTime(LenientResult):
    impl = Time


class LenientMoney(LenientResult):
    impl = Numeric

    def __init__(self) -> None:
        super().__init__(14, 2, asdecimal=True)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class LedgerProfile(Base, TimestampMixin):
    __tablename__ = "ledger_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    initial_balance: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    current_balance: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )


class TransactionRecord(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    kind: Mapped[TransactionKind] = mapped_column(
        SAEnum(TransactionKind), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(LenientMoney(), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    occurred_on: Mapped[Optional[date]] = mapped_column(LenientDate())
    occurred_at: Mapped[Optional[time]] = mapped_column(LenientTime())
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_transactions_user_recorded", "user_id", "recorded_at"),
        Index("ix_transactions_user_occurred", "user_id", "occurred_on"),
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        # ids handed out by the gateway must never be reused after a delete
        {"sqlite_autoincrement": True},
    )
