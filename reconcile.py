"""Balance arithmetic for the ledger.

Every balance change goes through ``apply_delta`` or ``reverse_delta``. The two
are exact algebraic inverses on ``Decimal`` so that removing a transaction right
after adding it restores the previous balance exactly. Rounding to two places
happens only when a value is presented (``quantize_money``/``format_amount``).
"""

from __future__ import annotations

from datetime import date, time
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Iterable

from models import TransactionKind

if TYPE_CHECKING:  # pragma: no cover
    from schemas import Transaction


CENT = Decimal("0.01")


def signed_amount(amount: Decimal, kind: TransactionKind) -> Decimal:
    if kind == TransactionKind.credit:
        return amount
    if kind == TransactionKind.debit:
        return -amount
    raise ValueError(f"Unknown transaction kind: {kind!r}")


def apply_delta(balance: Decimal, amount: Decimal, kind: TransactionKind) -> Decimal:
    return balance + signed_amount(amount, kind)


def reverse_delta(balance: Decimal, amount: Decimal, kind: TransactionKind) -> Decimal:
    return balance - signed_amount(amount, kind)


def ledger_balance(
    initial_balance: Decimal, transactions: Iterable["Transaction"]
) -> Decimal:
    """Balance recomputed from scratch; used to check the incremental one."""
    balance = initial_balance
    for txn in transactions:
        balance = apply_delta(balance, txn.amount, txn.kind)
    return balance


def chronological_key(txn: "Transaction") -> tuple:
    # undated transactions sort after dated ones
    return (
        txn.occurred_on is None,
        txn.occurred_on or date.max,
        txn.occurred_at or time.min,
        txn.recorded_at,
        txn.id,
    )


def running_balances(
    transactions: Iterable["Transaction"], opening: Decimal = Decimal("0")
) -> list[tuple["Transaction", Decimal]]:
    balance = opening
    rows: list[tuple["Transaction", Decimal]] = []
    for txn in sorted(transactions, key=chronological_key):
        balance = apply_delta(balance, txn.amount, txn.kind)
        rows.append((txn, balance))
    return rows


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal, symbol: str = "") -> str:
    """Magnitude with two decimals; the sign is carried separately."""
    return f"{symbol}{abs(quantize_money(value)):.2f}"


def format_signed(amount: Decimal, kind: TransactionKind, symbol: str = "") -> str:
    prefix = "+" if kind == TransactionKind.credit else "-"
    return f"{prefix}{format_amount(amount, symbol)}"
