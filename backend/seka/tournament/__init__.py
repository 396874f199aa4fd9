"""
Tournament lifecycle.

- registry: creation, registration, start, cancellation
- partitioner: one-shot table formation
- elimination: bust tracking and completion
- ranking / settlement: final standings and prize payout
- engine: transactional entry point for callers
"""

from seka.tournament.config import TournamentConfig
from seka.tournament.elimination import EliminationOutcome, EliminationTracker
from seka.tournament.engine import TournamentEngine
from seka.tournament.gateway import GameSessionGateway, HttpGameSessionGateway
from seka.tournament.partitioner import TableAssignment, TablePlan, partition_players
from seka.tournament.ranking import LeaderboardEntry, build_leaderboard, compute_final_ranks
from seka.tournament.registry import TournamentRegistry
from seka.tournament.settlement import (
    PayoutEstimate,
    PayoutResult,
    PrizeDistributor,
    SettlementSummary,
)

__all__ = [
    "TournamentEngine",
    "TournamentConfig",
    "TournamentRegistry",
    "EliminationTracker",
    "EliminationOutcome",
    "PrizeDistributor",
    "PayoutEstimate",
    "PayoutResult",
    "SettlementSummary",
    "GameSessionGateway",
    "HttpGameSessionGateway",
    "TableAssignment",
    "TablePlan",
    "partition_players",
    "LeaderboardEntry",
    "build_leaderboard",
    "compute_final_ranks",
]
