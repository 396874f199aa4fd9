"""User account model."""

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from seka.models.base import MONEY, Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from seka.models.ledger import LedgerEntry


class User(Base, UUIDMixin, TimestampMixin):
    """User account with its current balance projection.

    ``balance`` always equals ``balance_after`` of the user's latest ledger
    entry (0 with no entries). Only ``AccountService.append`` writes it.
    """

    __tablename__ = "users"

    nickname: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )

    # Platform score (Seka-Svara Score)
    balance: Mapped[Decimal] = mapped_column(
        MONEY,
        default=Decimal("0"),
        nullable=False,
    )

    # Optimistic concurrency counter, bumped on every balance write
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    ledger_entries: Mapped[list["LedgerEntry"]] = relationship(
        "LedgerEntry",
        back_populates="user",
        order_by="LedgerEntry.sequence",
        lazy="raise",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<User {self.nickname} balance={self.balance}>"
