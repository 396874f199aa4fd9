"""Ledger entry model (platform score transactions).

The ledger is append-only: rows are never updated or deleted. A correction is
a new offsetting entry. Replaying a user's entries by ``sequence`` starting
from 0 reproduces ``users.balance`` exactly.
"""

from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import (
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from seka.models.base import MONEY, Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from seka.models.user import User


class LedgerEntryType(str, Enum):
    """Ledger entry kinds. The kind fixes the sign of ``amount``."""

    EARNED = "earned"
    SPENT = "spent"
    BONUS = "bonus"
    PENALTY = "penalty"
    REFUND = "refund"

    @property
    def is_credit(self) -> bool:
        return self in CREDIT_TYPES


CREDIT_TYPES = frozenset(
    {LedgerEntryType.EARNED, LedgerEntryType.BONUS, LedgerEntryType.REFUND}
)
DEBIT_TYPES = frozenset({LedgerEntryType.SPENT, LedgerEntryType.PENALTY})


class ReferenceType(str, Enum):
    """What a ledger entry's ``reference_id`` points at."""

    TOURNAMENT = "tournament"
    GAME = "game"
    LEDGER_ENTRY = "ledger_entry"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class LedgerEntry(Base, UUIDMixin, TimestampMixin):
    """One immutable balance change with its before/after snapshot."""

    __tablename__ = "ledger_entries"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Position in the user's chain (1..n), gap free
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    amount: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
        comment="Signed amount (+credit/-debit)",
    )
    balance_before: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
    )
    balance_after: Mapped[Decimal] = mapped_column(
        MONEY,
        nullable=False,
    )

    entry_type: Mapped[LedgerEntryType] = mapped_column(
        SQLEnum(
            LedgerEntryType,
            name="ledger_entry_type",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        index=True,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Optional reference (tournament id, game id, reversed entry id...)
    reference_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )
    reference_type: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
    )

    integrity_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 hash for tamper detection",
    )

    user: Mapped["User"] = relationship(
        "User", back_populates="ledger_entries", lazy="raise"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "sequence", name="uq_ledger_user_sequence"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.id[:8]}... #{self.sequence} "
            f"type={self.entry_type.value} amount={self.amount}>"
        )
