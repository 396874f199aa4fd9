"""
Ranking Tests.

최종 순위 = 탈락 역순, 리더보드 정렬.
"""

from decimal import Decimal

import pytest

from seka.models.tournament import TournamentPlayer
from seka.tournament.ranking import build_leaderboard, compute_final_ranks
from seka.utils.errors import IntegrityFaultError


def _player(
    user_id: str,
    *,
    eliminated: bool = False,
    chips: int = 1000,
    rank: int | None = None,
    winnings: str = "0",
) -> TournamentPlayer:
    return TournamentPlayer(
        tournament_id="t-1",
        user_id=user_id,
        registration_number=0,
        chips=chips,
        is_eliminated=eliminated,
        final_rank=rank,
        winnings=Decimal(winnings),
    )


class TestComputeFinalRanks:
    def test_reverse_elimination_order(self):
        """A,B,C,D 중 D → C → B 순으로 탈락: A=1, B=2, C=3, D=4."""
        players = [
            _player("A"),
            _player("B", eliminated=True),
            _player("C", eliminated=True),
            _player("D", eliminated=True),
        ]

        ranks = compute_final_ranks(players, ["D", "C", "B"])

        assert ranks == {"A": 1, "B": 2, "C": 3, "D": 4}

    def test_heads_up(self):
        players = [_player("A", eliminated=True), _player("B")]

        assert compute_final_ranks(players, ["A"]) == {"B": 1, "A": 2}

    def test_two_survivors_is_fault(self):
        players = [_player("A"), _player("B"), _player("C", eliminated=True)]

        with pytest.raises(IntegrityFaultError):
            compute_final_ranks(players, ["C"])

    def test_duplicate_in_list_is_fault(self):
        players = [
            _player("A"),
            _player("B", eliminated=True),
            _player("C", eliminated=True),
        ]

        with pytest.raises(IntegrityFaultError):
            compute_final_ranks(players, ["B", "B"])

    def test_list_missing_eliminated_player_is_fault(self):
        players = [
            _player("A"),
            _player("B", eliminated=True),
            _player("C", eliminated=True),
        ]

        with pytest.raises(IntegrityFaultError) as exc_info:
            compute_final_ranks(players, ["B", "X"])

        assert exc_info.value.code == "INTEGRITY_FAULT"


class TestBuildLeaderboard:
    def test_ranked_players_ascending(self):
        players = [
            _player("D", eliminated=True, chips=0, rank=4),
            _player("A", chips=4000, rank=1, winnings="500"),
            _player("C", eliminated=True, chips=0, rank=3, winnings="200"),
            _player("B", eliminated=True, chips=0, rank=2, winnings="300"),
        ]

        board = build_leaderboard(players)

        assert [e.user_id for e in board] == ["A", "B", "C", "D"]
        assert [e.rank for e in board] == [1, 2, 3, 4]
        assert board[0].winnings == Decimal("500")

    def test_unranked_by_chips_then_registration(self):
        players = [
            _player("A", chips=800),
            _player("B", chips=1500),
            _player("C", chips=800),
            _player("D", eliminated=True, chips=0),
        ]

        board = build_leaderboard(players)

        assert [e.user_id for e in board] == ["B", "A", "C", "D"]
        assert all(e.rank is None for e in board)

    def test_entry_dict(self):
        board = build_leaderboard([_player("A", chips=10, rank=1, winnings="12.50")])

        assert board[0].to_dict() == {
            "user_id": "A",
            "rank": 1,
            "chips": 10,
            "eliminated": False,
            "winnings": "12.50",
        }
