"""Shared fixtures: in-memory SQLite database, fake game gateway, funded users.

SQLite ignores ``SELECT ... FOR UPDATE``; lock contention is exercised in
``test_concurrent_writes.py`` on a file-backed database, where version
checks and the retry wrapper serialize racing writers.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from seka.config import Settings
from seka.models.ledger import LedgerEntryType
from seka.services.account import AccountService
from seka.tournament.config import TournamentConfig
from seka.tournament.engine import TournamentEngine
from seka.utils.db import create_all, create_session_factory, run_in_transaction
from seka.utils.errors import UpstreamFaultError

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingGateway:
    """GameSessionGateway double that records calls.

    ``fail_on_call`` makes the n-th call (1-based) raise UpstreamFaultError.
    """

    def __init__(self, fail_on_call: int | None = None):
        self.calls: list[dict] = []
        self.fail_on_call = fail_on_call

    async def create_session(
        self,
        user_ids: Sequence[str],
        wager_unit: int,
        label: str,
    ) -> str:
        self.calls.append(
            {"user_ids": list(user_ids), "wager_unit": wager_unit, "label": label}
        )
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise UpstreamFaultError("game service unavailable", {"label": label})
        return f"game-{len(self.calls)}"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_env="test",
        database_url=TEST_DATABASE_URL,
        tx_max_attempts=3,
        tx_retry_min_wait=0,
        tx_retry_max_wait=0,
        game_gateway_url="http://games.test/api",
    )


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def engine(session_factory, gateway, settings) -> TournamentEngine:
    return TournamentEngine(session_factory, gateway, settings)


@pytest.fixture
def make_engine(session_factory, settings):
    """Engine wired to its own RecordingGateway, e.g. one that fails on call n."""

    def _make(fail_on_call: int | None = None) -> tuple[TournamentEngine, RecordingGateway]:
        gateway = RecordingGateway(fail_on_call)
        return TournamentEngine(session_factory, gateway, settings), gateway

    return _make


@pytest.fixture
def make_user(session_factory, settings):
    """Create a committed account, optionally funded with a bonus entry."""

    async def _make(
        nickname: str | None = None,
        balance: Decimal | str | int = Decimal("100.00"),
    ) -> str:
        async def op(session: AsyncSession) -> str:
            accounts = AccountService(session)
            user = await accounts.create_account(nickname or f"player-{uuid4().hex[:8]}")
            if Decimal(str(balance)) > 0:
                await accounts.credit(
                    user.id,
                    balance,
                    "Welcome bonus",
                    entry_type=LedgerEntryType.BONUS,
                )
            return user.id

        return await run_in_transaction(session_factory, op, settings=settings)

    return _make


@pytest.fixture
def make_config():
    def _make(**overrides) -> TournamentConfig:
        values = {
            "name": "Friday Sit & Go",
            "max_players": 6,
            "buy_in": Decimal("10.00"),
        }
        values.update(overrides)
        return TournamentConfig(**values)

    return _make
