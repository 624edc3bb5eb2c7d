"""Report aggregation over a transaction set.

All functions here are pure: they read the transactions they are given and
build new values, so calling them repeatedly on the same input gives the same
output. Transactions without a usable date are left out of period buckets and
transactions without a usable reason are left out of the category ranking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from config import get_settings
from models import TransactionKind
from periods import Granularity, Period, bucket_periods
from schemas import Transaction


logger = logging.getLogger(__name__)

ZERO = Decimal("0")
NO_EXPENSES_LABEL = "No Expenses"
NO_EXPENSES_PLACEHOLDER = Decimal("1")


@dataclass(frozen=True)
class PeriodBucket:
    label: str
    start: date
    end: date
    expense_total: Decimal
    income_total: Decimal

    @property
    def net_total(self) -> Decimal:
        return self.income_total - self.expense_total


@dataclass(frozen=True)
class CategoryTotal:
    label: str
    total: Decimal

    @property
    def display_label(self) -> str:
        return self.label[:1].upper() + self.label[1:]


@dataclass(frozen=True)
class LedgerSummary:
    total_expenses: Decimal
    total_income: Decimal
    transaction_count: int
    average_amount: Decimal

    @property
    def net_savings(self) -> Decimal:
        return self.total_income - self.total_expenses


def _bucket_totals(period: Period, dated: list[Transaction]) -> PeriodBucket:
    expense = ZERO
    income = ZERO
    for txn in dated:
        if not period.contains(txn.occurred_on):
            continue
        if txn.kind == TransactionKind.debit:
            expense += txn.amount
        else:
            income += txn.amount
    return PeriodBucket(period.slug, period.start, period.end, expense, income)


def aggregate_periods(
    transactions: Iterable[Transaction],
    granularity: Granularity,
    *,
    today: Optional[date] = None,
    first_weekday: Optional[int] = None,
) -> list[PeriodBucket]:
    """Expense/income totals for the last 12 weeks, 12 months or 5 years."""
    dated: list[Transaction] = []
    for txn in transactions:
        if txn.occurred_on is None:
            logger.debug(f"period_skip: id={txn.id} reason=missing_date")
            continue
        dated.append(txn)

    periods = bucket_periods(granularity, today=today, first_weekday=first_weekday)
    return [_bucket_totals(period, dated) for period in periods]


def category_key(reason: Optional[str]) -> str:
    return (reason or "").strip().lower()


def rank_categories(
    transactions: Iterable[Transaction], *, limit: Optional[int] = None
) -> list[CategoryTotal]:
    """Debit totals per normalised reason, largest first.

    Ties keep the order in which categories were first seen. Only the top
    ``limit`` categories are returned; the rest are dropped, not merged.
    """
    if limit is None:
        limit = get_settings().top_categories

    totals: dict[str, Decimal] = {}
    for txn in transactions:
        if txn.kind != TransactionKind.debit:
            continue
        key = category_key(txn.reason)
        if not key or txn.amount <= ZERO:
            logger.debug(f"category_skip: id={txn.id}")
            continue
        totals[key] = totals.get(key, ZERO) + txn.amount

    # sorted() is stable, so equal totals stay in first-seen order
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    ranked = [(label, total) for label, total in ranked if total > ZERO][:limit]
    if not ranked:
        return [CategoryTotal(NO_EXPENSES_LABEL, NO_EXPENSES_PLACEHOLDER)]
    return [CategoryTotal(label, total) for label, total in ranked]


def summarize(transactions: Iterable[Transaction]) -> LedgerSummary:
    expenses = ZERO
    income = ZERO
    count = 0
    for txn in transactions:
        count += 1
        if txn.kind == TransactionKind.debit:
            expenses += txn.amount
        else:
            income += txn.amount
    average = (expenses + income) / count if count else ZERO
    return LedgerSummary(
        total_expenses=expenses,
        total_income=income,
        transaction_count=count,
        average_amount=average,
    )
