"""
Tournament Engine.

Entry point for callers (HTTP handlers, game session callbacks). Every method
is one logical operation executed in exactly one database transaction:

    engine = TournamentEngine(get_session_factory(), HttpGameSessionGateway.from_settings(settings))
    tournament = await engine.create(TournamentConfig(name="Nightly", max_players=6, buy_in=10))
    await engine.register(tournament.id, user_id)

Write conflicts (row lock timeouts, stale versions, serialization failures)
roll the transaction back and re-run the whole operation, up to
``settings.tx_max_attempts`` times. Domain errors are raised immediately.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from decimal import Decimal
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seka.config import Settings, get_settings
from seka.logging_config import operation_context
from seka.models.ledger import LedgerEntry
from seka.models.tournament import (
    Tournament,
    TournamentKind,
    TournamentPlayer,
    TournamentStatus,
)
from seka.models.user import User
from seka.services.account import AccountService, LedgerAudit
from seka.tournament.config import TournamentConfig
from seka.tournament.elimination import EliminationOutcome, EliminationTracker
from seka.tournament.gateway import GameSessionGateway
from seka.tournament.ranking import LeaderboardEntry, build_leaderboard
from seka.tournament.registry import TournamentRegistry
from seka.tournament.settlement import PayoutEstimate, PrizeDistributor
from seka.utils.db import run_in_transaction

T = TypeVar("T")


class TournamentEngine:
    """Transactional facade over registry, elimination and settlement."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: GameSessionGateway,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.settings = settings or get_settings()

    async def _run(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        return await run_in_transaction(
            self.session_factory, operation, settings=self.settings
        )

    def _registry(self, session: AsyncSession) -> TournamentRegistry:
        return TournamentRegistry(session, self.gateway)

    def _tracker(self, session: AsyncSession) -> EliminationTracker:
        registry = self._registry(session)
        return EliminationTracker(registry, PrizeDistributor(registry.accounts))

    # =========================================================================
    # Tournaments
    # =========================================================================

    async def create(self, config: TournamentConfig) -> Tournament:
        with operation_context("create_tournament"):
            return await self._run(lambda s: self._registry(s).create(config))

    async def list(
        self,
        status: TournamentStatus | None = None,
        kind: TournamentKind | None = None,
    ) -> list[Tournament]:
        return await self._run(lambda s: self._registry(s).list(status, kind))

    async def get(self, tournament_id: str) -> Tournament:
        return await self._run(lambda s: self._registry(s).get(tournament_id))

    async def get_players(self, tournament_id: str) -> list[TournamentPlayer]:
        async def op(session: AsyncSession) -> list[TournamentPlayer]:
            registry = self._registry(session)
            await registry.get(tournament_id)
            return await registry.get_players(tournament_id)

        return await self._run(op)

    async def register(self, tournament_id: str, user_id: str) -> TournamentPlayer:
        with operation_context("register", tournament_id=tournament_id, user_id=user_id):
            return await self._run(
                lambda s: self._registry(s).register(tournament_id, user_id)
            )

    async def unregister(self, tournament_id: str, user_id: str) -> None:
        with operation_context("unregister", tournament_id=tournament_id, user_id=user_id):
            await self._run(
                lambda s: self._registry(s).unregister(tournament_id, user_id)
            )

    async def start(self, tournament_id: str) -> Tournament:
        with operation_context("start", tournament_id=tournament_id):
            return await self._run(lambda s: self._registry(s).start(tournament_id))

    async def cancel(self, tournament_id: str, reason: str = "") -> Tournament:
        with operation_context("cancel", tournament_id=tournament_id):
            return await self._run(
                lambda s: self._registry(s).cancel(tournament_id, reason)
            )

    async def report_chip_counts(
        self,
        tournament_id: str,
        chip_counts: Mapping[str, int],
    ) -> list[TournamentPlayer]:
        with operation_context("report_chip_counts", tournament_id=tournament_id):
            return await self._run(
                lambda s: self._registry(s).report_chip_counts(
                    tournament_id, chip_counts
                )
            )

    async def eliminate(self, tournament_id: str, user_id: str) -> EliminationOutcome:
        with operation_context("eliminate", tournament_id=tournament_id, user_id=user_id):
            return await self._run(
                lambda s: self._tracker(s).eliminate(tournament_id, user_id)
            )

    async def get_leaderboard(self, tournament_id: str) -> list[LeaderboardEntry]:
        async def op(session: AsyncSession) -> list[LeaderboardEntry]:
            registry = self._registry(session)
            await registry.get(tournament_id)
            return build_leaderboard(await registry.get_players(tournament_id))

        return await self._run(op)

    @staticmethod
    def estimate_payouts(
        config: TournamentConfig, player_count: int
    ) -> list[PayoutEstimate]:
        return PrizeDistributor.estimate_payouts(config, player_count)

    # =========================================================================
    # Accounts
    # =========================================================================

    async def create_account(self, nickname: str) -> User:
        with operation_context("create_account"):
            return await self._run(lambda s: AccountService(s).create_account(nickname))

    async def get_balance(self, user_id: str) -> Decimal:
        return await self._run(lambda s: AccountService(s).get_balance(user_id))

    async def reverse_entry(self, entry_id: str, reason: str) -> LedgerEntry:
        with operation_context("reverse_entry", entry_id=entry_id):
            return await self._run(
                lambda s: AccountService(s).reverse_entry(entry_id, reason)
            )

    async def verify_history(self, user_id: str) -> LedgerAudit:
        return await self._run(lambda s: AccountService(s).verify_history(user_id))
