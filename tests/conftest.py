"""Shared test setup.

``database`` builds its engine from settings at import time, so the data
directory is pointed at a throwaway location before any project module loads.
"""

from __future__ import annotations

import asyncio
import os
import tempfile

os.environ.setdefault("LEDGER_DATA_DIR", tempfile.mkdtemp(prefix="ledger-tests-"))

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import models  # noqa: E402,F401
from database import Base  # noqa: E402
from gateway import InMemoryGateway, PersistenceError  # noqa: E402


class FlakyGateway(InMemoryGateway):
    """In-memory gateway whose operations can be told to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_on: set[str] = set()
        self.calls: list[str] = []

    async def _step(self, operation: str) -> None:
        self.calls.append(operation)
        # yield so overlapping callers get a chance to interleave
        await asyncio.sleep(0)
        if operation in self.fail_on:
            raise PersistenceError(f"{operation} unavailable")

    async def set_initial_balance(self, user_id, amount):
        await self._step("set_initial_balance")
        await super().set_initial_balance(user_id, amount)

    async def create_transaction(self, user_id, draft):
        await self._step("create_transaction")
        return await super().create_transaction(user_id, draft)

    async def delete_transaction(self, transaction_id):
        await self._step("delete_transaction")
        await super().delete_transaction(transaction_id)

    async def set_balance(self, user_id, balance):
        await self._step("set_balance")
        await super().set_balance(user_id, balance)


@pytest.fixture
def gateway() -> FlakyGateway:
    return FlakyGateway()


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()
