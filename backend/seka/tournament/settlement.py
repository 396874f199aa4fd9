"""
Tournament Settlement Service.

토너먼트 종료 시 상금 자동 정산.

Features:
- 순위별 상금 계산 (payout_percentages 기반, 센트 단위 내림)
- AccountService 연동 자동 지급 (ledger "earned")
- 정산 결과 로깅

Usage:
    distributor = PrizeDistributor(AccountService(session))
    summary = await distributor.distribute(tournament, players, ranks)

Places beyond the payout curve win nothing; a curve summing below 100 leaves
the remainder in the pool (no renormalisation).
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal

from seka.logging_config import get_logger
from seka.models.base import CENT, utcnow
from seka.models.ledger import LedgerEntryType, ReferenceType
from seka.models.tournament import Tournament, TournamentPlayer
from seka.services.account import AccountService
from seka.tournament.config import TournamentConfig

logger = get_logger(__name__)

ZERO = Decimal("0")


def ordinal(n: int) -> str:
    """1 -> "1st", 2 -> "2nd", 11 -> "11th"."""
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def prize_share(prize_pool: Decimal, percentage: float) -> Decimal:
    """Pool share for one place, rounded down to the cent."""
    raw = prize_pool * Decimal(str(percentage)) / Decimal(100)
    return raw.quantize(CENT, rounding=ROUND_DOWN)


@dataclass
class PayoutResult:
    """정산 결과."""

    user_id: str
    rank: int
    percentage: float
    amount: Decimal
    ledger_entry_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "rank": self.rank,
            "percentage": self.percentage,
            "amount": str(self.amount),
            "ledger_entry_id": self.ledger_entry_id,
        }


@dataclass
class SettlementSummary:
    """정산 요약."""

    tournament_id: str
    prize_pool: Decimal
    total_paid: Decimal = ZERO
    payouts: list[PayoutResult] = field(default_factory=list)

    @property
    def undistributed(self) -> Decimal:
        return self.prize_pool - self.total_paid

    def to_dict(self) -> dict:
        return {
            "tournament_id": self.tournament_id,
            "prize_pool": str(self.prize_pool),
            "total_paid": str(self.total_paid),
            "undistributed": str(self.undistributed),
            "payouts": [p.to_dict() for p in self.payouts],
        }


@dataclass(frozen=True)
class PayoutEstimate:
    rank: int
    percentage: float
    amount: Decimal

    def to_dict(self) -> dict:
        return {
            "rank": self.rank,
            "percentage": self.percentage,
            "amount": str(self.amount),
        }


class PrizeDistributor:
    """
    토너먼트 상금 정산 서비스.

    Writes winnings onto participant rows and credits each paid place through
    the ledger, in the caller's transaction.
    """

    def __init__(self, accounts: AccountService):
        self.accounts = accounts

    async def distribute(
        self,
        tournament: Tournament,
        players: Sequence[TournamentPlayer],
        ranks: Mapping[str, int],
    ) -> SettlementSummary:
        """
        Pay the payout curve to the top finishers.

        Args:
            tournament: Completed tournament (locked by the caller)
            players: All participant rows
            ranks: user_id -> final rank, as produced by compute_final_ranks

        Returns:
            SettlementSummary
        """
        by_rank = sorted(players, key=lambda p: ranks[p.user_id])
        percentages = list(tournament.payout_percentages)
        summary = SettlementSummary(
            tournament_id=tournament.id,
            prize_pool=tournament.prize_pool,
        )

        for i in range(min(len(by_rank), len(percentages))):
            player = by_rank[i]
            rank = i + 1
            amount = prize_share(tournament.prize_pool, percentages[i])
            player.winnings = amount

            result = PayoutResult(
                user_id=player.user_id,
                rank=rank,
                percentage=percentages[i],
                amount=amount,
            )
            if amount > ZERO:
                entry = await self.accounts.credit(
                    player.user_id,
                    amount,
                    f"Tournament prize: {tournament.name} - finished {ordinal(rank)}",
                    entry_type=LedgerEntryType.EARNED,
                    reference_id=tournament.id,
                    reference_type=ReferenceType.TOURNAMENT,
                )
                result.ledger_entry_id = entry.id
                summary.total_paid += amount
            summary.payouts.append(result)

        tournament.settled_at = utcnow()

        logger.info(
            "tournament_settled",
            tournament_id=tournament.id,
            prize_pool=summary.prize_pool,
            total_paid=summary.total_paid,
            paid_places=sum(1 for p in summary.payouts if p.amount > ZERO),
        )
        return summary

    @staticmethod
    def estimate_payouts(
        config: TournamentConfig,
        player_count: int,
    ) -> list[PayoutEstimate]:
        """Payouts a field of ``player_count`` would produce (for display)."""
        pool = (config.buy_in * player_count).quantize(CENT)
        places = min(player_count, len(config.payout_percentages))
        return [
            PayoutEstimate(
                rank=i + 1,
                percentage=config.payout_percentages[i],
                amount=prize_share(pool, config.payout_percentages[i]),
            )
            for i in range(places)
        ]
