"""Tournament configuration.

Every recognized creation field with its default, validated when the config
object is built. The engine copies a validated config onto the Tournament row;
nothing downstream re-checks these rules.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from seka.models.base import CENT
from seka.models.tournament import TournamentKind

DEFAULT_PAYOUT_PERCENTAGES = (50.0, 30.0, 20.0)  # 1st, 2nd, 3rd


class TournamentConfig(BaseModel):
    """Validated tournament creation payload."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    kind: TournamentKind = TournamentKind.SIT_N_GO

    # 규모 설정
    min_players: int = Field(default=2, ge=2)
    max_players: int = Field(..., ge=2, le=1000)
    players_per_table: int = Field(default=6, ge=2, le=10)

    # 바이인 / 상금 구조
    buy_in: Decimal = Field(..., ge=0)
    payout_percentages: tuple[float, ...] = DEFAULT_PAYOUT_PERCENTAGES

    # 게임 설정
    starting_chips: int = Field(default=1000, gt=0)
    starting_blind: int = Field(default=10, gt=0, description="Ante passed to each table")
    blind_increase_seconds: int = Field(default=300, gt=0)

    # 리바이
    allow_rebuys: bool = False
    max_rebuys: int = Field(default=0, ge=0)

    scheduled_start_time: datetime | None = None

    @field_validator("buy_in")
    @classmethod
    def validate_buy_in(cls, v: Decimal) -> Decimal:
        """Buy-ins are whole cents."""
        if v != v.quantize(CENT):
            raise ValueError("buy_in must have at most two decimal places")
        return v.quantize(CENT)

    @field_validator("payout_percentages")
    @classmethod
    def validate_payout_percentages(cls, v: tuple[float, ...]) -> tuple[float, ...]:
        """Shares are non-negative and sum to at most 100."""
        if not v:
            raise ValueError("payout_percentages must not be empty")
        if any(p < 0 for p in v):
            raise ValueError("payout_percentages must be non-negative")
        if sum(Decimal(str(p)) for p in v) > 100:
            raise ValueError("payout_percentages must sum to at most 100")
        return v

    @model_validator(mode="after")
    def validate_capacity(self) -> "TournamentConfig":
        if self.max_players < self.min_players:
            raise ValueError("max_players must be >= min_players")

        # A full field would leave one player without a table
        if (
            self.max_players > self.players_per_table
            and self.max_players % self.players_per_table == 1
        ):
            raise ValueError(
                f"max_players={self.max_players} with players_per_table="
                f"{self.players_per_table} leaves a single unseated player"
            )

        if self.max_rebuys and not self.allow_rebuys:
            raise ValueError("max_rebuys requires allow_rebuys")
        return self
