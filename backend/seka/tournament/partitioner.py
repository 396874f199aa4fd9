"""
Table partitioning.

토너먼트 시작 시 등록 순서대로 플레이어를 테이블에 배치.

Algorithm:
    Walk the active players in registration order and slice consecutive
    groups of ``players_per_table``. A trailing group with fewer than
    MIN_PLAYERS_PER_TABLE players cannot play; it is returned as ``unseated``
    for operator attention instead of being dropped.

Formation is one-shot at start. Tables are not rebalanced as players bust.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

MIN_PLAYERS_PER_TABLE = 2


@dataclass(frozen=True)
class TableAssignment:
    """One table to materialize."""

    table_number: int
    user_ids: tuple[str, ...]

    @property
    def player_count(self) -> int:
        return len(self.user_ids)

    def to_dict(self) -> dict:
        return {
            "table_number": self.table_number,
            "user_ids": list(self.user_ids),
        }


@dataclass(frozen=True)
class TablePlan:
    """Complete seating plan."""

    tables: tuple[TableAssignment, ...] = ()
    unseated: tuple[str, ...] = field(default_factory=tuple)

    @property
    def seated_count(self) -> int:
        return sum(t.player_count for t in self.tables)

    def to_dict(self) -> dict:
        return {
            "tables": [t.to_dict() for t in self.tables],
            "unseated": list(self.unseated),
        }


def partition_players(
    user_ids: Sequence[str],
    players_per_table: int,
) -> TablePlan:
    """Split players (already in registration order) into tables.

    Args:
        user_ids: Active players in registration order
        players_per_table: Seating limit per table

    Returns:
        TablePlan with table numbers starting at 1
    """
    if players_per_table < MIN_PLAYERS_PER_TABLE:
        raise ValueError(
            f"players_per_table must be at least {MIN_PLAYERS_PER_TABLE}"
        )

    tables: list[TableAssignment] = []
    unseated: tuple[str, ...] = ()

    for start in range(0, len(user_ids), players_per_table):
        group = tuple(user_ids[start : start + players_per_table])
        if len(group) < MIN_PLAYERS_PER_TABLE:
            unseated = group
            continue
        tables.append(TableAssignment(table_number=len(tables) + 1, user_ids=group))

    return TablePlan(tables=tuple(tables), unseated=unseated)
