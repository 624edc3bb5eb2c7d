from datetime import date, datetime
from decimal import Decimal

from aggregation import (
    NO_EXPENSES_LABEL,
    aggregate_periods,
    rank_categories,
    summarize,
)
from models import TransactionKind
from periods import Granularity
from reconcile import quantize_money
from schemas import Transaction


def _txn(
    txn_id: int,
    amount,
    kind: TransactionKind = TransactionKind.debit,
    reason: str = "Misc",
    occurred_on=date(2025, 6, 15),
) -> Transaction:
    return Transaction.model_validate(
        {
            "id": txn_id,
            "user_id": "user-1",
            "kind": kind,
            "amount": amount,
            "reason": reason,
            "occurred_on": occurred_on,
            "recorded_at": datetime(2025, 6, 15, 12, 0),
        }
    )


TODAY = date(2025, 6, 18)


def test_categories_are_case_insensitive() -> None:
    txns = [_txn(1, "100", reason="coffee"), _txn(2, "50", reason="Coffee")]
    ranked = rank_categories(txns)
    assert len(ranked) == 1
    assert ranked[0].label == "coffee"
    assert ranked[0].total == Decimal("150")
    assert ranked[0].display_label == "Coffee"


def test_empty_set_gives_zero_buckets_and_sentinel() -> None:
    buckets = aggregate_periods([], Granularity.monthly, today=TODAY)
    assert len(buckets) == 12
    assert all(b.expense_total == 0 and b.income_total == 0 for b in buckets)
    assert all(b.label for b in buckets)

    ranked = rank_categories([])
    assert [(c.label, c.total) for c in ranked] == [
        (NO_EXPENSES_LABEL, Decimal("1"))
    ]


def test_only_credits_still_gives_sentinel() -> None:
    ranked = rank_categories([_txn(1, "500", kind=TransactionKind.credit)])
    assert ranked[0].label == NO_EXPENSES_LABEL


def test_month_end_transaction_stays_in_its_month() -> None:
    txns = [
        _txn(1, "40", occurred_on=date(2025, 5, 31)),
        _txn(2, "60", occurred_on=date(2025, 6, 1)),
        _txn(3, "25", kind=TransactionKind.credit, occurred_on=date(2025, 6, 30)),
    ]
    buckets = aggregate_periods(txns, Granularity.monthly, today=TODAY)
    may, june = buckets[-2], buckets[-1]
    assert may.label == "May 2025"
    assert may.expense_total == Decimal("40")
    assert june.label == "Jun 2025"
    assert june.expense_total == Decimal("60")
    assert june.income_total == Decimal("25")
    assert june.net_total == Decimal("-35")


def test_weekly_buckets_and_boundaries() -> None:
    # 2025-06-18 is a Wednesday; with Sunday weeks the current week starts 06-15
    txns = [
        _txn(1, "10", occurred_on=date(2025, 6, 14)),
        _txn(2, "20", occurred_on=date(2025, 6, 15)),
        _txn(3, "30", occurred_on=date(2025, 6, 21)),
    ]
    buckets = aggregate_periods(
        txns, Granularity.weekly, today=TODAY, first_weekday=6
    )
    assert len(buckets) == 12
    assert buckets[-1].start == date(2025, 6, 15)
    assert buckets[-1].end == date(2025, 6, 21)
    assert buckets[-1].expense_total == Decimal("50")
    assert buckets[-2].expense_total == Decimal("10")
    assert buckets[0].start == date(2025, 3, 30)


def test_yearly_buckets() -> None:
    txns = [
        _txn(1, "5", occurred_on=date(2021, 1, 1)),
        _txn(2, "7", occurred_on=date(2020, 12, 31)),
        _txn(3, "9", kind=TransactionKind.credit, occurred_on=date(2025, 12, 31)),
    ]
    buckets = aggregate_periods(txns, Granularity.yearly, today=TODAY)
    assert [b.label for b in buckets] == ["2021", "2022", "2023", "2024", "2025"]
    assert buckets[0].expense_total == Decimal("5")
    assert buckets[-1].income_total == Decimal("9")


def test_undated_transactions_are_skipped() -> None:
    txns = [
        _txn(1, "10", occurred_on=None),
        _txn(2, "20", occurred_on="not-a-date"),
        _txn(3, "30", occurred_on="2025-06-02"),
    ]
    assert txns[1].occurred_on is None
    buckets = aggregate_periods(txns, Granularity.monthly, today=TODAY)
    assert sum(b.expense_total for b in buckets) == Decimal("30")


def test_ranking_keeps_top_ten_and_first_seen_ties() -> None:
    txns = [_txn(i, "10", reason=f"cat{i}") for i in range(1, 13)]
    txns.append(_txn(13, "100", reason="rent"))
    ranked = rank_categories(txns, limit=10)
    assert len(ranked) == 10
    assert ranked[0].label == "rent"
    assert [c.label for c in ranked[1:]] == [f"cat{i}" for i in range(1, 10)]


def test_ranking_skips_blank_reasons_and_bad_amounts() -> None:
    txns = [
        _txn(1, "10", reason="   "),
        _txn(2, "0", reason="free"),
        _txn(3, "abc", reason="broken"),
        _txn(4, "8", reason="  Taxi "),
        _txn(5, "99", kind=TransactionKind.credit, reason="salary"),
    ]
    ranked = rank_categories(txns)
    assert [(c.label, c.total) for c in ranked] == [("taxi", Decimal("8"))]


def test_aggregation_is_repeatable() -> None:
    txns = [
        _txn(1, "12.34", reason="food", occurred_on=date(2025, 4, 2)),
        _txn(2, "50", kind=TransactionKind.credit, occurred_on=date(2025, 6, 1)),
        _txn(3, "7.66", reason="Food", occurred_on=date(2025, 6, 3)),
    ]
    assert aggregate_periods(txns, Granularity.monthly, today=TODAY) == (
        aggregate_periods(txns, Granularity.monthly, today=TODAY)
    )
    assert rank_categories(txns) == rank_categories(txns)
    assert rank_categories(txns)[0].total == Decimal("20.00")


def test_summary_totals() -> None:
    txns = [
        _txn(1, "100"),
        _txn(2, "50.50"),
        _txn(3, "300", kind=TransactionKind.credit),
    ]
    summary = summarize(txns)
    assert summary.total_expenses == Decimal("150.50")
    assert summary.total_income == Decimal("300")
    assert summary.net_savings == Decimal("149.50")
    assert summary.transaction_count == 3
    assert quantize_money(summary.average_amount) == Decimal("150.17")

    empty = summarize([])
    assert empty.transaction_count == 0
    assert empty.average_amount == 0
