"""
Elimination tracking and completion.

탈락 처리 → 생존자 1명이면 토너먼트 종료 → 순위 확정 → 상금 지급.

The elimination list on the tournament row is append-only and earliest first;
final ranks are derived from it (see ranking.compute_final_ranks).
"""

from dataclasses import dataclass

from seka.logging_config import get_logger
from seka.models.base import utcnow
from seka.models.tournament import Tournament, TournamentPlayer, TournamentStatus
from seka.tournament.ranking import compute_final_ranks
from seka.tournament.registry import TournamentRegistry
from seka.tournament.settlement import PrizeDistributor, SettlementSummary
from seka.utils.errors import IntegrityFaultError, InvalidStateError

logger = get_logger(__name__)


@dataclass
class EliminationOutcome:
    """What an eliminate call did."""

    player: TournamentPlayer
    already_eliminated: bool = False
    tournament_completed: bool = False
    champion_id: str | None = None
    settlement: SettlementSummary | None = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.player.user_id,
            "already_eliminated": self.already_eliminated,
            "tournament_completed": self.tournament_completed,
            "champion_id": self.champion_id,
            "settlement": self.settlement.to_dict() if self.settlement else None,
        }


class EliminationTracker:
    """Records busts and closes the tournament at one survivor."""

    def __init__(self, registry: TournamentRegistry, distributor: PrizeDistributor):
        self.registry = registry
        self.distributor = distributor

    async def eliminate(self, tournament_id: str, user_id: str) -> EliminationOutcome:
        """Mark a participant eliminated.

        Repeating the call for an eliminated player changes nothing, whatever
        the tournament state.

        Raises:
            NotFoundError: unknown tournament or not a participant
            InvalidStateError: tournament is not in progress
            IntegrityFaultError: no active player would remain
        """
        tournament = await self.registry.lock_for_update(tournament_id)
        player = await self.registry.get_player(tournament.id, user_id)

        if player.is_eliminated:
            logger.debug(
                "elimination_ignored",
                tournament_id=tournament.id,
                user_id=user_id,
            )
            return EliminationOutcome(player=player, already_eliminated=True)

        if tournament.status != TournamentStatus.IN_PROGRESS:
            raise InvalidStateError(
                "Eliminations are only accepted while in progress",
                tournament.status.value,
            )

        player.is_eliminated = True
        player.eliminated_at = utcnow()
        player.chips = 0
        # JSON columns track reassignment, not in-place mutation
        tournament.eliminated_user_ids = [*tournament.eliminated_user_ids, user_id]
        await self.registry.session.flush()

        logger.info(
            "player_eliminated",
            tournament_id=tournament.id,
            user_id=user_id,
            eliminated_count=len(tournament.eliminated_user_ids),
        )

        outcome = EliminationOutcome(player=player)
        players = await self.registry.get_players(tournament.id)
        active = [p for p in players if not p.is_eliminated]

        if not active:
            logger.error(
                "tournament_no_survivor",
                tournament_id=tournament.id,
                eliminated_user_ids=tournament.eliminated_user_ids,
            )
            raise IntegrityFaultError(
                "No active players remain in the tournament",
                {
                    "tournamentId": tournament.id,
                    "eliminatedUserIds": list(tournament.eliminated_user_ids),
                },
            )

        if len(active) == 1:
            outcome.tournament_completed = True
            outcome.champion_id = active[0].user_id
            outcome.settlement = await self._complete(tournament, players)

        return outcome

    async def _complete(
        self,
        tournament: Tournament,
        players: list[TournamentPlayer],
    ) -> SettlementSummary:
        ranks = compute_final_ranks(players, tournament.eliminated_user_ids)
        for player in players:
            player.final_rank = ranks[player.user_id]

        tournament.status = TournamentStatus.COMPLETED
        tournament.completed_at = utcnow()

        logger.info(
            "tournament_completed",
            tournament_id=tournament.id,
            champion_id=next(uid for uid, rank in ranks.items() if rank == 1),
            total_players=len(players),
        )

        summary = await self.distributor.distribute(tournament, players, ranks)
        await self.registry.session.flush()
        return summary
