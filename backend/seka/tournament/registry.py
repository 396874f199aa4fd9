"""
Tournament Registry.

토너먼트 생성, 참가 등록/취소, 시작, 취소 처리.

All methods work inside the caller's transaction (see TournamentEngine). The
tournament row is locked first, user rows afterwards through AccountService,
so every operation takes locks in the same order.
"""

from __future__ import annotations

from collections.abc import Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from seka.logging_config import get_logger
from seka.models.base import utcnow
from seka.models.ledger import LedgerEntryType, ReferenceType
from seka.models.tournament import (
    Tournament,
    TournamentKind,
    TournamentPlayer,
    TournamentStatus,
)
from seka.models.user import User
from seka.services.account import ZERO, AccountService
from seka.tournament.config import TournamentConfig
from seka.tournament.gateway import GameSessionGateway
from seka.tournament.partitioner import TablePlan, partition_players
from seka.utils.errors import (
    AlreadyRegisteredError,
    CapacityExceededError,
    InsufficientPlayersError,
    InvalidAmountError,
    InvalidStateError,
    NotFoundError,
    UpstreamFaultError,
)

logger = get_logger(__name__)


def table_label(tournament_id: str, table_number: int) -> str:
    return f"tournament-{tournament_id}-table-{table_number}"


class TournamentRegistry:
    """Owns tournament records, registration and lifecycle transitions."""

    def __init__(self, session: AsyncSession, gateway: GameSessionGateway):
        self.session = session
        self.gateway = gateway
        self.accounts = AccountService(session)

    # =========================================================================
    # Queries
    # =========================================================================

    async def get(self, tournament_id: str) -> Tournament:
        tournament = await self.session.get(Tournament, tournament_id)
        if not tournament:
            raise NotFoundError("Tournament", tournament_id)
        return tournament

    async def list(
        self,
        status: TournamentStatus | None = None,
        kind: TournamentKind | None = None,
    ) -> list[Tournament]:
        """List tournaments, newest first."""
        query = select(Tournament)
        if status:
            query = query.where(Tournament.status == status)
        if kind:
            query = query.where(Tournament.kind == kind)
        query = query.order_by(Tournament.created_at.desc(), Tournament.id)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_players(self, tournament_id: str) -> list[TournamentPlayer]:
        """Participants in registration order."""
        result = await self.session.execute(
            select(TournamentPlayer)
            .where(TournamentPlayer.tournament_id == tournament_id)
            .order_by(TournamentPlayer.registration_number)
        )
        return list(result.scalars().all())

    async def get_player(self, tournament_id: str, user_id: str) -> TournamentPlayer:
        player = await self._find_player(tournament_id, user_id)
        if not player:
            raise NotFoundError(
                "TournamentPlayer", user_id, tournamentId=tournament_id
            )
        return player

    # =========================================================================
    # Commands
    # =========================================================================

    async def create(self, config: TournamentConfig) -> Tournament:
        tournament = Tournament(
            name=config.name,
            description=config.description,
            kind=config.kind,
            status=TournamentStatus.REGISTRATION,
            min_players=config.min_players,
            max_players=config.max_players,
            current_players=0,
            players_per_table=config.players_per_table,
            buy_in=config.buy_in,
            prize_pool=ZERO,
            payout_percentages=list(config.payout_percentages),
            starting_chips=config.starting_chips,
            starting_blind=config.starting_blind,
            blind_increase_seconds=config.blind_increase_seconds,
            allow_rebuys=config.allow_rebuys,
            max_rebuys=config.max_rebuys,
            scheduled_start_time=config.scheduled_start_time,
            table_ids=[],
            eliminated_user_ids=[],
            registration_counter=0,
        )
        self.session.add(tournament)
        await self.session.flush()

        logger.info(
            "tournament_created",
            tournament_id=tournament.id,
            name=tournament.name,
            kind=tournament.kind.value,
            max_players=tournament.max_players,
            buy_in=tournament.buy_in,
        )
        return tournament

    async def register(self, tournament_id: str, user_id: str) -> TournamentPlayer:
        """Register a user and take the buy-in.

        A sit-and-go that fills up starts inside the same transaction.
        """
        tournament = await self.lock_for_update(tournament_id)

        if tournament.status != TournamentStatus.REGISTRATION:
            raise InvalidStateError(
                "Tournament registration is closed", tournament.status.value
            )
        if tournament.is_full:
            raise CapacityExceededError(tournament.id, tournament.max_players)
        if await self._find_player(tournament.id, user_id):
            raise AlreadyRegisteredError(tournament.id, user_id)
        if not await self.session.get(User, user_id):
            raise NotFoundError("User", user_id)

        # Debit first: InsufficientFunds aborts before any tournament write
        if tournament.buy_in > ZERO:
            await self.accounts.debit(
                user_id,
                tournament.buy_in,
                f"Tournament buy-in: {tournament.name}",
                entry_type=LedgerEntryType.SPENT,
                reference_id=tournament.id,
                reference_type=ReferenceType.TOURNAMENT,
            )

        tournament.registration_counter += 1
        player = TournamentPlayer(
            tournament_id=tournament.id,
            user_id=user_id,
            registration_number=tournament.registration_counter,
            chips=tournament.starting_chips,
            is_eliminated=False,
            rebuy_count=0,
        )
        self.session.add(player)
        tournament.current_players += 1
        tournament.prize_pool += tournament.buy_in
        await self.session.flush()

        logger.info(
            "tournament_registered",
            tournament_id=tournament.id,
            user_id=user_id,
            current_players=tournament.current_players,
            prize_pool=tournament.prize_pool,
        )

        if tournament.kind == TournamentKind.SIT_N_GO and tournament.is_full:
            logger.info("sit_n_go_filled", tournament_id=tournament.id)
            await self._start_locked(tournament)

        return player

    async def unregister(self, tournament_id: str, user_id: str) -> None:
        """Remove a registration and refund the buy-in."""
        tournament = await self.lock_for_update(tournament_id)

        if tournament.status != TournamentStatus.REGISTRATION:
            raise InvalidStateError(
                "Cannot unregister after registration closed",
                tournament.status.value,
            )
        player = await self.get_player(tournament.id, user_id)

        await self.session.delete(player)
        tournament.current_players -= 1
        tournament.prize_pool -= tournament.buy_in

        if tournament.buy_in > ZERO:
            await self.accounts.credit(
                user_id,
                tournament.buy_in,
                f"Tournament unregistration refund: {tournament.name}",
                entry_type=LedgerEntryType.REFUND,
                reference_id=tournament.id,
                reference_type=ReferenceType.TOURNAMENT,
            )
        await self.session.flush()

        logger.info(
            "tournament_unregistered",
            tournament_id=tournament.id,
            user_id=user_id,
            current_players=tournament.current_players,
            prize_pool=tournament.prize_pool,
        )

    async def start(self, tournament_id: str) -> Tournament:
        tournament = await self.lock_for_update(tournament_id)
        await self._start_locked(tournament)
        return tournament

    async def cancel(self, tournament_id: str, reason: str = "") -> Tournament:
        """Cancel and refund every participant's buy-in."""
        tournament = await self.lock_for_update(tournament_id)

        if tournament.status not in (
            TournamentStatus.REGISTRATION,
            TournamentStatus.IN_PROGRESS,
        ):
            raise InvalidStateError(
                f"Cannot cancel a {tournament.status.value} tournament",
                tournament.status.value,
            )

        players = await self.get_players(tournament.id)
        refunded = ZERO
        if tournament.buy_in > ZERO:
            for player in players:
                await self.accounts.credit(
                    player.user_id,
                    tournament.buy_in,
                    f"Tournament cancelled: {tournament.name}",
                    entry_type=LedgerEntryType.REFUND,
                    reference_id=tournament.id,
                    reference_type=ReferenceType.TOURNAMENT,
                )
                refunded += tournament.buy_in

        tournament.status = TournamentStatus.CANCELLED
        tournament.cancelled_at = utcnow()
        await self.session.flush()

        logger.warning(
            "tournament_cancelled",
            tournament_id=tournament.id,
            reason=reason,
            players=len(players),
            refunded=refunded,
        )
        return tournament

    async def report_chip_counts(
        self,
        tournament_id: str,
        chip_counts: Mapping[str, int],
    ) -> list[TournamentPlayer]:
        """Apply stack sizes reported by the game layer after a hand."""
        tournament = await self.lock_for_update(tournament_id)
        if tournament.status != TournamentStatus.IN_PROGRESS:
            raise InvalidStateError(
                "Chip counts can only be reported while in progress",
                tournament.status.value,
            )

        updated = []
        for user_id, chips in chip_counts.items():
            if chips < 0:
                raise InvalidAmountError("Chip count cannot be negative", chips)
            player = await self.get_player(tournament.id, user_id)
            if player.is_eliminated:
                raise InvalidStateError(
                    f"Player {user_id} is already eliminated",
                    tournament.status.value,
                )
            player.chips = chips
            updated.append(player)
        await self.session.flush()

        logger.debug(
            "chip_counts_reported",
            tournament_id=tournament.id,
            players=len(updated),
        )
        return updated

    # =========================================================================
    # Internals
    # =========================================================================

    async def _start_locked(self, tournament: Tournament) -> None:
        if tournament.status != TournamentStatus.REGISTRATION:
            raise InvalidStateError(
                "Tournament has already left registration", tournament.status.value
            )
        if tournament.current_players < tournament.min_players:
            raise InsufficientPlayersError(
                tournament.current_players, tournament.min_players
            )

        players = [p for p in await self.get_players(tournament.id) if not p.is_eliminated]
        plan = partition_players(
            [p.user_id for p in players], tournament.players_per_table
        )
        if plan.unseated:
            logger.warning(
                "tournament_players_unseated",
                tournament_id=tournament.id,
                unseated=list(plan.unseated),
                players_per_table=tournament.players_per_table,
            )

        session_ids = await self._form_tables(tournament, plan)

        by_user = {p.user_id: p for p in players}
        for table, session_id in zip(plan.tables, session_ids):
            for user_id in table.user_ids:
                by_user[user_id].current_table_id = session_id

        tournament.table_ids = session_ids
        tournament.status = TournamentStatus.IN_PROGRESS
        tournament.started_at = utcnow()
        await self.session.flush()

        logger.info(
            "tournament_started",
            tournament_id=tournament.id,
            players=len(players),
            tables=len(session_ids),
        )

    async def _form_tables(self, tournament: Tournament, plan: TablePlan) -> list[str]:
        """Create one game session per table.

        Any failure aborts the start; the caller's transaction rolls back to
        registration and the sessions already created are reported for reaping.
        """
        session_ids: list[str] = []
        for table in plan.tables:
            label = table_label(tournament.id, table.table_number)
            try:
                session_id = await self.gateway.create_session(
                    table.user_ids,
                    tournament.starting_blind,
                    label,
                )
            except Exception as e:
                logger.error(
                    "table_formation_failed",
                    tournament_id=tournament.id,
                    table_number=table.table_number,
                    created_session_ids=session_ids,
                    error=str(e),
                )
                raise UpstreamFaultError(
                    f"Failed to create game session for table {table.table_number}",
                    {
                        "tournamentId": tournament.id,
                        "tableNumber": table.table_number,
                        "createdSessionIds": list(session_ids),
                    },
                ) from e
            session_ids.append(session_id)
        return session_ids

    async def lock_for_update(self, tournament_id: str) -> Tournament:
        """SELECT ... FOR UPDATE the tournament row, refreshing any cached copy."""
        result = await self.session.execute(
            select(Tournament)
            .where(Tournament.id == tournament_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        tournament = result.scalar_one_or_none()
        if not tournament:
            raise NotFoundError("Tournament", tournament_id)
        return tournament

    async def _find_player(
        self, tournament_id: str, user_id: str
    ) -> TournamentPlayer | None:
        result = await self.session.execute(
            select(TournamentPlayer).where(
                TournamentPlayer.tournament_id == tournament_id,
                TournamentPlayer.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()
