"""
Final ranking and leaderboard.

최종 순위: 마지막 생존자가 1위, 탈락 순서의 역순으로 순위 부여.

    rank(eliminated[i]) = total_players - i

The first player out finishes last; the champion is rank 1.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from seka.models.tournament import TournamentPlayer
from seka.utils.errors import IntegrityFaultError


@dataclass(frozen=True)
class LeaderboardEntry:
    """Single leaderboard row."""

    user_id: str
    rank: int | None
    chips: int
    eliminated: bool
    winnings: Decimal

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "rank": self.rank,
            "chips": self.chips,
            "eliminated": self.eliminated,
            "winnings": str(self.winnings),
        }


def compute_final_ranks(
    players: Sequence[TournamentPlayer],
    eliminated_user_ids: Sequence[str],
) -> dict[str, int]:
    """Map user_id -> final rank once exactly one player remains.

    The elimination list must hold every eliminated participant exactly once;
    anything else means the tournament record is corrupt.

    Raises:
        IntegrityFaultError: survivor count is not one, or the elimination
            list disagrees with the participant rows
    """
    total = len(players)
    survivors = [p.user_id for p in players if not p.is_eliminated]
    eliminated = {p.user_id for p in players if p.is_eliminated}

    if len(survivors) != 1:
        raise IntegrityFaultError(
            f"Expected one remaining player, found {len(survivors)}",
            {"survivors": survivors},
        )
    if len(set(eliminated_user_ids)) != len(eliminated_user_ids):
        raise IntegrityFaultError(
            "Elimination list contains duplicates",
            {"eliminatedUserIds": list(eliminated_user_ids)},
        )
    if set(eliminated_user_ids) != eliminated or len(eliminated_user_ids) != total - 1:
        raise IntegrityFaultError(
            "Elimination list does not match eliminated participants",
            {
                "eliminatedUserIds": list(eliminated_user_ids),
                "eliminatedRows": sorted(eliminated),
                "totalPlayers": total,
            },
        )

    ranks = {survivors[0]: 1}
    for i, user_id in enumerate(eliminated_user_ids):
        ranks[user_id] = total - i
    return ranks


def build_leaderboard(players: Sequence[TournamentPlayer]) -> list[LeaderboardEntry]:
    """Ranked players first (rank ascending), then the rest by chips.

    ``players`` is expected in registration order; it breaks chip ties.
    """
    ordered = sorted(
        enumerate(players),
        key=lambda item: (
            item[1].final_rank is None,
            item[1].final_rank if item[1].final_rank is not None else 0,
            -item[1].chips if item[1].final_rank is None else 0,
            item[0],
        ),
    )
    return [
        LeaderboardEntry(
            user_id=p.user_id,
            rank=p.final_rank,
            chips=p.chips,
            eliminated=p.is_eliminated,
            winnings=p.winnings,
        )
        for _, p in ordered
    ]
