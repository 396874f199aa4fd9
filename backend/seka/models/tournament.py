"""Tournament and tournament player models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from seka.models.base import MONEY, Base, TimestampMixin, UUIDMixin

JSONList = JSON().with_variant(JSONB(), "postgresql")


class TournamentKind(str, Enum):
    """How a tournament starts."""

    SCHEDULED = "scheduled"  # 운영자가 시작
    SIT_N_GO = "sit_n_go"  # 정원이 차면 자동 시작


class TournamentStatus(str, Enum):
    """Tournament lifecycle states."""

    REGISTRATION = "registration"  # 접수 중
    IN_PROGRESS = "in_progress"  # 진행 중
    COMPLETED = "completed"  # 완료
    CANCELLED = "cancelled"  # 취소


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


class Tournament(Base, UUIDMixin, TimestampMixin):
    """Tournament record.

    Invariants:
        current_players == number of tournament_players rows
        prize_pool == current_players * buy_in while in registration
    """

    __tablename__ = "tournaments"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    kind: Mapped[TournamentKind] = mapped_column(
        SQLEnum(TournamentKind, name="tournament_kind", values_callable=_enum_values),
        nullable=False,
        default=TournamentKind.SIT_N_GO,
        index=True,
    )
    status: Mapped[TournamentStatus] = mapped_column(
        SQLEnum(
            TournamentStatus, name="tournament_status", values_callable=_enum_values
        ),
        nullable=False,
        default=TournamentStatus.REGISTRATION,
        index=True,
    )

    # 규모 설정
    min_players: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    max_players: Mapped[int] = mapped_column(Integer, nullable=False)
    current_players: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    players_per_table: Mapped[int] = mapped_column(Integer, nullable=False, default=6)

    # 바이인 / 상금
    buy_in: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    prize_pool: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )
    payout_percentages: Mapped[list] = mapped_column(
        JSONList,
        nullable=False,
        default=list,
        comment="Share of the pool per finishing place, index 0 = 1st",
    )

    # 게임 설정
    starting_chips: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    starting_blind: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    blind_increase_seconds: Mapped[int] = mapped_column(
        Integer, nullable=False, default=300
    )
    allow_rebuys: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_rebuys: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    scheduled_start_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Game session ids, in table-number order
    table_ids: Mapped[list] = mapped_column(JSONList, nullable=False, default=list)
    # Earliest elimination first
    eliminated_user_ids: Mapped[list] = mapped_column(
        JSONList, nullable=False, default=list
    )

    # Never decremented; orders players by registration
    registration_counter: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_full(self) -> bool:
        return self.current_players >= self.max_players

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "kind": self.kind.value,
            "status": self.status.value,
            "min_players": self.min_players,
            "max_players": self.max_players,
            "current_players": self.current_players,
            "players_per_table": self.players_per_table,
            "buy_in": str(self.buy_in),
            "prize_pool": str(self.prize_pool),
            "payout_percentages": list(self.payout_percentages),
            "starting_chips": self.starting_chips,
            "starting_blind": self.starting_blind,
            "table_ids": list(self.table_ids),
            "eliminated_user_ids": list(self.eliminated_user_ids),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat()
            if self.completed_at
            else None,
        }

    def __repr__(self) -> str:
        return f"<Tournament {self.name} status={self.status.value}>"


class TournamentPlayer(Base, UUIDMixin, TimestampMixin):
    """One row per (tournament, user). Never deleted once the tournament starts."""

    __tablename__ = "tournament_players"

    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    registration_number: Mapped[int] = mapped_column(Integer, nullable=False)

    chips: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_eliminated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    eliminated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # 1 = winner; NULL until the tournament completes
    final_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    winnings: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )

    rebuy_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_table_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("tournament_id", "user_id", name="uq_tournament_player"),
    )

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "chips": self.chips,
            "is_eliminated": self.is_eliminated,
            "final_rank": self.final_rank,
            "winnings": str(self.winnings),
            "current_table_id": self.current_table_id,
            "rebuy_count": self.rebuy_count,
        }

    def __repr__(self) -> str:
        return f"<TournamentPlayer {self.user_id[:8]}... chips={self.chips}>"
