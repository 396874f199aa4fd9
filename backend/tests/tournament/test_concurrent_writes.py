"""
Concurrent Write Tests.

파일 기반 SQLite에서 동시 요청 경합:
- 마지막 좌석을 두고 동시 등록 → 정원 초과 없음
- 같은 유저에 대한 동시 차감 → 원장 체인 유지
"""

import asyncio
from collections.abc import AsyncGenerator
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from seka.config import Settings
from seka.models.ledger import LedgerEntry, LedgerEntryType
from seka.models.tournament import TournamentKind, TournamentPlayer
from seka.services.account import AccountService
from seka.tournament.engine import TournamentEngine
from seka.utils.db import create_all, create_session_factory, run_in_transaction
from seka.utils.errors import CapacityExceededError


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def file_settings(tmp_path) -> Settings:
    return Settings(
        app_env="test",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'race.db'}",
        tx_max_attempts=10,
        tx_retry_min_wait=0.01,
        tx_retry_max_wait=0.05,
        game_gateway_url="http://games.test/api",
    )


@pytest_asyncio.fixture
async def file_db(file_settings) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(file_settings.database_url)
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def file_sessions(file_db):
    return create_session_factory(file_db)


@pytest.fixture
def file_engine(file_sessions, gateway, file_settings) -> TournamentEngine:
    return TournamentEngine(file_sessions, gateway, file_settings)


async def _funded_user(engine: TournamentEngine, nickname: str) -> str:
    user = await engine.create_account(nickname)
    await run_in_transaction(
        engine.session_factory,
        lambda s: AccountService(s).credit(
            user.id, 100, "Welcome bonus", entry_type=LedgerEntryType.BONUS
        ),
        settings=engine.settings,
    )
    return user.id


# =============================================================================
# Registration race
# =============================================================================


class TestConcurrentRegistration:
    @pytest.mark.asyncio
    async def test_last_seat_goes_to_one_player(self, file_engine, make_config):
        """2석 중 1석 남은 상태에서 3명 동시 등록 → 1명만 성공."""
        tournament = await file_engine.create(
            make_config(kind=TournamentKind.SCHEDULED, max_players=2)
        )
        await file_engine.register(tournament.id, await _funded_user(file_engine, "first"))
        racers = [await _funded_user(file_engine, f"racer-{i}") for i in range(3)]

        results = await asyncio.gather(
            *[file_engine.register(tournament.id, user_id) for user_id in racers],
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, TournamentPlayer)]
        losers = [r for r in results if isinstance(r, CapacityExceededError)]
        assert len(winners) == 1
        assert len(losers) == 2

        tournament = await file_engine.get(tournament.id)
        players = await file_engine.get_players(tournament.id)
        assert tournament.current_players == 2
        assert len(players) == 2
        assert tournament.prize_pool == Decimal("20.00")

        # 실패한 참가자는 차감 없음
        charged = [await file_engine.get_balance(u) for u in racers]
        assert sorted(charged) == [Decimal("90.00"), Decimal("100.00"), Decimal("100.00")]
        for user_id in racers:
            assert (await file_engine.verify_history(user_id)).is_consistent


# =============================================================================
# Ledger race
# =============================================================================


class TestConcurrentDebits:
    @pytest.mark.asyncio
    async def test_debits_chain_balances(self, file_engine):
        """같은 유저 동시 차감 3회 → 100 → 99 → 98 → 97."""
        user_id = await _funded_user(file_engine, "alice")

        async def debit(n: int):
            return await run_in_transaction(
                file_engine.session_factory,
                lambda s: AccountService(s).debit(user_id, 1, f"Buy-in {n}"),
                settings=file_engine.settings,
            )

        await asyncio.gather(*[debit(n) for n in range(3)])

        assert await file_engine.get_balance(user_id) == Decimal("97.00")

        async with file_engine.session_factory() as session:
            result = await session.execute(
                select(LedgerEntry)
                .where(LedgerEntry.user_id == user_id)
                .order_by(LedgerEntry.sequence)
            )
            entries = list(result.scalars().all())
            count = await session.scalar(
                select(func.count())
                .select_from(LedgerEntry)
                .where(LedgerEntry.user_id == user_id)
            )

        assert count == 4
        assert [e.sequence for e in entries] == [1, 2, 3, 4]
        assert [e.balance_after for e in entries] == [
            Decimal("100.00"),
            Decimal("99.00"),
            Decimal("98.00"),
            Decimal("97.00"),
        ]
        for previous, current in zip(entries, entries[1:]):
            assert current.balance_before == previous.balance_after

        audit = await file_engine.verify_history(user_id)
        assert audit.is_consistent
        assert audit.entry_count == 4
