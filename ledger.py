"""In-memory ledger for one user session.

``LedgerStore`` is the only place where the balance and the transaction list
change. Each mutation is two-phase: the gateway is asked to persist first and
the local state changes only after that succeeds. The balance is then
persisted separately; if that second write fails the local ledger keeps the
change and the result reports ``balance_stale`` so the caller can retry with
``sync_balance``. Nothing is retried automatically.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional, Union

from pydantic import ValidationError as SchemaValidationError

from gateway import PersistenceError, PersistenceGateway
from periods import Period
from reconcile import apply_delta, chronological_key, ledger_balance, reverse_delta
from schemas import InitialBalanceIn, Transaction, TransactionDraft


logger = logging.getLogger(__name__)


class LedgerError(Exception):
    pass


class ValidationError(LedgerError, ValueError):
    """Input rejected before any state change or gateway call."""


class NotFoundError(LedgerError, LookupError):
    pass


class LedgerStateError(LedgerError):
    """The operation is not allowed in the ledger's current state."""


class MutationOutcome(str, Enum):
    committed = "committed"
    # the gateway refused the first write; nothing changed locally
    not_applied = "not_applied"
    # local state changed but the durable balance could not be written
    balance_stale = "balance_stale"


@dataclass(frozen=True)
class MutationResult:
    outcome: MutationOutcome
    balance: Decimal
    message: Optional[str] = None
    transaction: Optional[Transaction] = None

    @property
    def success(self) -> bool:
        return self.outcome == MutationOutcome.committed


def _first_error(exc: SchemaValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    err = errors[0]
    loc = ".".join(str(part) for part in err.get("loc", ()))
    return f"{loc}: {err['msg']}" if loc else err["msg"]


def parse_draft(data: Union[TransactionDraft, dict[str, Any]]) -> TransactionDraft:
    if isinstance(data, TransactionDraft):
        data = data.model_dump()
    try:
        return TransactionDraft.model_validate(data)
    except SchemaValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc


def parse_initial_balance(amount: Any) -> Decimal:
    try:
        return InitialBalanceIn(amount=amount).amount
    except SchemaValidationError as exc:
        raise ValidationError(_first_error(exc)) from exc


SORT_KEYS = {
    "date": chronological_key,
    "amount": lambda txn: txn.amount,
    "reason": lambda txn: txn.reason.lower(),
}


class LedgerStore:
    """Ledger of one user. Transactions are kept newest first."""

    def __init__(
        self,
        user_id: str,
        gateway: PersistenceGateway,
        *,
        initial_balance: Optional[Decimal] = None,
        balance: Optional[Decimal] = None,
        transactions: Iterable[Transaction] = (),
    ) -> None:
        self.user_id = user_id
        self.gateway = gateway
        self._initial_balance = initial_balance
        if balance is None:
            balance = initial_balance if initial_balance is not None else Decimal("0")
        self._balance = balance
        self._transactions: list[Transaction] = list(transactions)
        self._lock = asyncio.Lock()
        self._closed = False

    @classmethod
    async def load(cls, user_id: str, gateway: PersistenceGateway) -> "LedgerStore":
        profile = await gateway.get_profile(user_id)
        transactions = await gateway.list_transactions(user_id)
        transactions.sort(key=lambda txn: (txn.recorded_at, txn.id), reverse=True)
        store = cls(
            user_id,
            gateway,
            initial_balance=profile.initial_balance if profile else None,
            balance=profile.current_balance if profile else None,
            transactions=transactions,
        )
        if profile and not store.is_consistent():
            logger.warning(
                f"ledger_load_inconsistent: user={user_id} "
                f"stored={profile.current_balance} expected={store.expected_balance()}"
            )
        logger.info(
            f"ledger_load: user={user_id} transactions={len(transactions)} "
            f"needs_setup={store.needs_balance_setup}"
        )
        return store

    @property
    def balance(self) -> Decimal:
        return self._balance

    @property
    def initial_balance(self) -> Optional[Decimal]:
        return self._initial_balance

    @property
    def needs_balance_setup(self) -> bool:
        return self._initial_balance is None

    @property
    def transactions(self) -> tuple[Transaction, ...]:
        return tuple(self._transactions)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def expected_balance(self) -> Decimal:
        return ledger_balance(self._initial_balance or Decimal("0"), self._transactions)

    def is_consistent(self) -> bool:
        return self._balance == self.expected_balance()

    def get(self, transaction_id: int) -> Transaction:
        for txn in self._transactions:
            if txn.id == transaction_id:
                return txn
        raise NotFoundError(f"Transaction {transaction_id} not found")

    def recent(self, limit: int = 5) -> list[Transaction]:
        return self._transactions[:limit]

    def between(self, start: date, end: date) -> list[Transaction]:
        period = Period("range", start, end)
        return [
            txn
            for txn in self._transactions
            if txn.occurred_on is not None and period.contains(txn.occurred_on)
        ]

    def sorted_by(
        self, field: str = "date", descending: bool = True
    ) -> list[Transaction]:
        try:
            key = SORT_KEYS[field]
        except KeyError:
            raise ValidationError(f"Unknown sort field: {field}") from None
        return sorted(self._transactions, key=key, reverse=descending)

    def _ensure_writable(self) -> None:
        if self._closed:
            raise LedgerStateError("Ledger session is closed")
        if self.needs_balance_setup:
            raise LedgerStateError("Initial balance has not been set")

    async def add_transaction(
        self, draft: Union[TransactionDraft, dict[str, Any]]
    ) -> MutationResult:
        draft = parse_draft(draft)
        async with self._lock:
            self._ensure_writable()
            try:
                txn = await self.gateway.create_transaction(self.user_id, draft)
            except PersistenceError as exc:
                logger.warning(f"ledger_add_failed: user={self.user_id} error={exc}")
                return MutationResult(
                    MutationOutcome.not_applied, self._balance, str(exc)
                )
            self._transactions.insert(0, txn)
            new_balance = apply_delta(self._balance, txn.amount, txn.kind)
            return await self._commit_balance("ledger_add", new_balance, txn)

    async def remove_transaction(self, transaction_id: int) -> MutationResult:
        async with self._lock:
            self._ensure_writable()
            txn = self.get(transaction_id)
            try:
                await self.gateway.delete_transaction(txn.id)
            except PersistenceError as exc:
                logger.warning(
                    f"ledger_remove_failed: user={self.user_id} id={txn.id} error={exc}"
                )
                return MutationResult(
                    MutationOutcome.not_applied, self._balance, str(exc)
                )
            self._transactions.remove(txn)
            new_balance = reverse_delta(self._balance, txn.amount, txn.kind)
            return await self._commit_balance("ledger_remove", new_balance, txn)

    async def set_initial_balance(self, amount: Any) -> MutationResult:
        amount = parse_initial_balance(amount)
        async with self._lock:
            if self._closed:
                raise LedgerStateError("Ledger session is closed")
            if not self.needs_balance_setup:
                raise LedgerStateError("Initial balance is already set")
            if self._transactions:
                raise LedgerStateError(
                    "Initial balance can only be set before any transactions exist"
                )
            try:
                await self.gateway.set_initial_balance(self.user_id, amount)
            except PersistenceError as exc:
                logger.warning(
                    f"ledger_initial_balance_failed: user={self.user_id} error={exc}"
                )
                return MutationResult(
                    MutationOutcome.not_applied, self._balance, str(exc)
                )
            self._initial_balance = amount
            self._balance = amount
            logger.info(f"ledger_initial_balance: user={self.user_id} amount={amount}")
            return MutationResult(MutationOutcome.committed, self._balance)

    async def sync_balance(self) -> MutationResult:
        """Write the local balance again, e.g. after a ``balance_stale`` result."""
        async with self._lock:
            self._ensure_writable()
            return await self._commit_balance("ledger_sync", self._balance, None)

    async def _commit_balance(
        self, event: str, new_balance: Decimal, txn: Optional[Transaction]
    ) -> MutationResult:
        txn_id = txn.id if txn else None
        try:
            await self.gateway.set_balance(self.user_id, new_balance)
        except PersistenceError as exc:
            self._balance = new_balance
            logger.warning(
                f"{event}_balance_stale: user={self.user_id} id={txn_id} "
                f"balance={new_balance} error={exc}"
            )
            return MutationResult(
                MutationOutcome.balance_stale,
                new_balance,
                f"Balance could not be saved: {exc}",
                txn,
            )
        self._balance = new_balance
        logger.info(f"{event}: user={self.user_id} id={txn_id} balance={new_balance}")
        return MutationResult(MutationOutcome.committed, new_balance, None, txn)


class SessionNotOpen(LedgerStateError):
    pass


class SessionRegistry:
    """Open ledgers keyed by user id; opened at login and closed at logout."""

    def __init__(self, gateway: PersistenceGateway) -> None:
        self.gateway = gateway
        self._stores: dict[str, LedgerStore] = {}
        self._lock = asyncio.Lock()

    async def open(self, user_id: str) -> LedgerStore:
        async with self._lock:
            store = self._stores.get(user_id)
            if store is None:
                store = await LedgerStore.load(user_id, self.gateway)
                self._stores[user_id] = store
            return store

    def get(self, user_id: str) -> LedgerStore:
        store = self._stores.get(user_id)
        if store is None:
            raise SessionNotOpen(f"No open ledger session for {user_id}")
        return store

    def close(self, user_id: str) -> bool:
        store = self._stores.pop(user_id, None)
        if store is None:
            return False
        store.close()
        logger.info(f"ledger_session_closed: user={user_id}")
        return True

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._stores
