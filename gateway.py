"""Durable storage behind the ledger.

``LedgerStore`` only talks to the abstract ``PersistenceGateway``. Every failure
an implementation hits must surface as ``PersistenceError`` so the store can
decide what the failure means for its in-memory state.
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional, TypeVar
from zoneinfo import ZoneInfo

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from database import SessionLocal, session_scope
from models import LedgerProfile, TransactionRecord
from schemas import Transaction, TransactionDraft


logger = logging.getLogger(__name__)

T = TypeVar("T")


class PersistenceError(RuntimeError):
    """The durable store rejected or failed an operation."""


@dataclass(frozen=True)
class StoredProfile:
    user_id: str
    initial_balance: Optional[Decimal]
    current_balance: Decimal

    @property
    def needs_balance_setup(self) -> bool:
        return self.initial_balance is None


def _local_now() -> datetime:
    return datetime.now(ZoneInfo(get_settings().timezone))


class PersistenceGateway(ABC):
    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[StoredProfile]:
        """Return the user's ledger profile, or None if onboarding never ran."""

    @abstractmethod
    async def set_initial_balance(self, user_id: str, amount: Decimal) -> None:
        """Create or reset the profile; ``amount`` is both initial and current."""

    @abstractmethod
    async def create_transaction(
        self, user_id: str, draft: TransactionDraft
    ) -> Transaction:
        """Durably create a transaction and return it with its assigned id.

        A draft without ``occurred_on``/``occurred_at`` is stamped with the
        current local date and time.
        """

    @abstractmethod
    async def delete_transaction(self, transaction_id: int) -> None:
        pass

    @abstractmethod
    async def set_balance(self, user_id: str, balance: Decimal) -> None:
        pass

    @abstractmethod
    async def list_transactions(self, user_id: str) -> list[Transaction]:
        """All transactions of the user, in no particular order."""


class InMemoryGateway(PersistenceGateway):
    def __init__(self) -> None:
        self.profiles: dict[str, StoredProfile] = {}
        self.transactions: dict[int, Transaction] = {}
        self._ids = itertools.count(1)

    async def get_profile(self, user_id: str) -> Optional[StoredProfile]:
        return self.profiles.get(user_id)

    async def set_initial_balance(self, user_id: str, amount: Decimal) -> None:
        self.profiles[user_id] = StoredProfile(user_id, amount, amount)

    async def create_transaction(
        self, user_id: str, draft: TransactionDraft
    ) -> Transaction:
        now = _local_now()
        txn = Transaction(
            id=next(self._ids),
            user_id=user_id,
            kind=draft.kind,
            amount=draft.amount,
            reason=draft.reason,
            occurred_on=draft.occurred_on or now.date(),
            occurred_at=draft.occurred_at or now.time().replace(microsecond=0),
            recorded_at=datetime.utcnow(),
        )
        self.transactions[txn.id] = txn
        return txn

    async def delete_transaction(self, transaction_id: int) -> None:
        if self.transactions.pop(transaction_id, None) is None:
            raise PersistenceError(f"Transaction {transaction_id} not found in storage")

    async def set_balance(self, user_id: str, balance: Decimal) -> None:
        profile = self.profiles.get(user_id)
        if profile is None:
            raise PersistenceError(f"Ledger profile for {user_id} not found")
        self.profiles[user_id] = StoredProfile(
            user_id, profile.initial_balance, balance
        )

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        return [txn for txn in self.transactions.values() if txn.user_id == user_id]


class SQLAlchemyGateway(PersistenceGateway):
    """Gateway over the SQL tables; blocking session work runs in a threadpool."""

    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self.session_factory = session_factory

    async def _run(self, operation: str, fn: Callable[..., T], *args) -> T:
        try:
            return await run_in_threadpool(fn, *args)
        except SQLAlchemyError as exc:
            logger.exception(f"gateway_failed: operation={operation}")
            raise PersistenceError(f"Storage failure during {operation}") from exc

    async def get_profile(self, user_id: str) -> Optional[StoredProfile]:
        return await self._run("get_profile", self._get_profile, user_id)

    async def set_initial_balance(self, user_id: str, amount: Decimal) -> None:
        await self._run(
            "set_initial_balance", self._set_initial_balance, user_id, amount
        )

    async def create_transaction(
        self, user_id: str, draft: TransactionDraft
    ) -> Transaction:
        return await self._run(
            "create_transaction", self._create_transaction, user_id, draft
        )

    async def delete_transaction(self, transaction_id: int) -> None:
        await self._run("delete_transaction", self._delete_transaction, transaction_id)

    async def set_balance(self, user_id: str, balance: Decimal) -> None:
        await self._run("set_balance", self._set_balance, user_id, balance)

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        return await self._run("list_transactions", self._list_transactions, user_id)

    def _profile_row(self, session: Session, user_id: str) -> Optional[LedgerProfile]:
        return session.scalar(
            select(LedgerProfile).where(LedgerProfile.user_id == user_id)
        )

    def _get_profile(self, user_id: str) -> Optional[StoredProfile]:
        with session_scope(self.session_factory) as session:
            profile = self._profile_row(session, user_id)
            if profile is None:
                return None
            return StoredProfile(
                user_id=profile.user_id,
                initial_balance=profile.initial_balance,
                current_balance=profile.current_balance,
            )

    def _set_initial_balance(self, user_id: str, amount: Decimal) -> None:
        with session_scope(self.session_factory) as session:
            profile = self._profile_row(session, user_id)
            if profile is None:
                profile = LedgerProfile(user_id=user_id)
                session.add(profile)
            profile.initial_balance = amount
            profile.current_balance = amount

    def _create_transaction(self, user_id: str, draft: TransactionDraft) -> Transaction:
        now = _local_now()
        with session_scope(self.session_factory) as session:
            record = TransactionRecord(
                user_id=user_id,
                kind=draft.kind,
                amount=draft.amount,
                reason=draft.reason,
                occurred_on=draft.occurred_on or now.date(),
                occurred_at=draft.occurred_at or now.time().replace(microsecond=0),
                recorded_at=datetime.utcnow(),
            )
            session.add(record)
            session.flush()
            return Transaction.model_validate(record)

    def _delete_transaction(self, transaction_id: int) -> None:
        with session_scope(self.session_factory) as session:
            result = session.execute(
                delete(TransactionRecord).where(TransactionRecord.id == transaction_id)
            )
            if result.rowcount == 0:
                raise PersistenceError(
                    f"Transaction {transaction_id} not found in storage"
                )

    def _set_balance(self, user_id: str, balance: Decimal) -> None:
        with session_scope(self.session_factory) as session:
            profile = self._profile_row(session, user_id)
            if profile is None:
                raise PersistenceError(f"Ledger profile for {user_id} not found")
            profile.current_balance = balance

    def _list_transactions(self, user_id: str) -> list[Transaction]:
        with session_scope(self.session_factory) as session:
            records = session.scalars(
                select(TransactionRecord).where(TransactionRecord.user_id == user_id)
            ).all()
            return [Transaction.model_validate(record) for record in records]
