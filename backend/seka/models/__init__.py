"""Database models."""

from seka.models.base import Base, TimestampMixin, UUIDMixin
from seka.models.ledger import LedgerEntry, LedgerEntryType, ReferenceType
from seka.models.tournament import (
    Tournament,
    TournamentKind,
    TournamentPlayer,
    TournamentStatus,
)
from seka.models.user import User

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # User
    "User",
    # Ledger
    "LedgerEntry",
    "LedgerEntryType",
    "ReferenceType",
    # Tournament
    "Tournament",
    "TournamentKind",
    "TournamentPlayer",
    "TournamentStatus",
]
