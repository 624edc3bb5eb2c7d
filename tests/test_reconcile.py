from datetime import date, datetime, time
from decimal import Decimal

import pytest

from models import TransactionKind
from reconcile import (
    apply_delta,
    format_amount,
    format_signed,
    ledger_balance,
    quantize_money,
    reverse_delta,
    running_balances,
    signed_amount,
)
from schemas import Transaction


def _txn(txn_id, amount, kind, occurred_on=None, occurred_at=None):
    return Transaction(
        id=txn_id,
        user_id="user-1",
        kind=kind,
        amount=Decimal(amount),
        reason="Test",
        occurred_on=occurred_on,
        occurred_at=occurred_at,
        recorded_at=datetime(2025, 1, 1, 8, 0),
    )


def test_signed_amount_by_kind() -> None:
    assert signed_amount(Decimal("5"), TransactionKind.credit) == Decimal("5")
    assert signed_amount(Decimal("5"), TransactionKind.debit) == Decimal("-5")
    with pytest.raises(ValueError):
        signed_amount(Decimal("5"), "refund")


@pytest.mark.parametrize("kind", list(TransactionKind))
def test_reverse_undoes_apply(kind) -> None:
    balance = Decimal("100.10")
    for amount in ("0.01", "0.07", "99999.99", "12.345"):
        after = apply_delta(balance, Decimal(amount), kind)
        assert reverse_delta(after, Decimal(amount), kind) == balance


def test_balance_may_go_negative() -> None:
    assert apply_delta(Decimal("10"), Decimal("25"), TransactionKind.debit) == (
        Decimal("-15")
    )


def test_ledger_balance_from_scratch() -> None:
    txns = [
        _txn(1, "200", TransactionKind.debit),
        _txn(2, "500", TransactionKind.credit),
    ]
    assert ledger_balance(Decimal("1000"), txns) == Decimal("1300")
    assert ledger_balance(Decimal("1000"), []) == Decimal("1000")


def test_running_balances_are_chronological_with_undated_last() -> None:
    txns = [
        _txn(1, "10", TransactionKind.debit, date(2025, 2, 1), time(9, 0)),
        _txn(2, "5", TransactionKind.debit),
        _txn(3, "100", TransactionKind.credit, date(2025, 1, 15)),
        _txn(4, "1", TransactionKind.debit, date(2025, 2, 1), time(8, 0)),
    ]
    rows = running_balances(txns, Decimal("50"))
    assert [txn.id for txn, _ in rows] == [3, 4, 1, 2]
    assert [balance for _, balance in rows] == [
        Decimal("150"),
        Decimal("149"),
        Decimal("139"),
        Decimal("134"),
    ]


def test_presentation_rounding() -> None:
    assert quantize_money(Decimal("2.005")) == Decimal("2.01")
    assert format_amount(Decimal("1234.5")) == "1234.50"
    assert format_amount(Decimal("-3"), "₹") == "₹3.00"
    assert format_signed(Decimal("20"), TransactionKind.credit, "₹") == "+₹20.00"
    assert format_signed(Decimal("20"), TransactionKind.debit) == "-20.00"
