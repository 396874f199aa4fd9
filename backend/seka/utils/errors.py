"""Exception classes for tournament and ledger operations.

Every failure a caller can act on carries an error code, a message and a
details dict, so the HTTP or game layer can translate it without parsing text.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes."""

    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    INSUFFICIENT_PLAYERS = "INSUFFICIENT_PLAYERS"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INTEGRITY_FAULT = "INTEGRITY_FAULT"
    UPSTREAM_FAULT = "UPSTREAM_FAULT"


class ServiceError(Exception):
    """Base exception for tournament/ledger errors.

    Attributes:
        code: Error code for programmatic handling
        message: Human readable message
        details: Additional error details
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code if isinstance(code, str) else code.value
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "errorCode": self.code,
            "errorMessage": self.message,
            "details": self.details,
        }


class NotFoundError(ServiceError):
    """Raised when a tournament, participant, user or entry does not exist."""

    def __init__(self, entity: str, entity_id: str, **details: Any):
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{entity} not found: {entity_id}",
            details={"entity": entity, "id": entity_id, **details},
        )


class InvalidStateError(ServiceError):
    """Raised when an operation is illegal for the current lifecycle phase."""

    def __init__(self, message: str, status: str | None = None):
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message=message,
            details={"status": status} if status else {},
        )


class CapacityExceededError(ServiceError):
    """Raised when registering into a full tournament."""

    def __init__(self, tournament_id: str, max_players: int):
        super().__init__(
            code=ErrorCode.CAPACITY_EXCEEDED,
            message="Tournament is full",
            details={"tournamentId": tournament_id, "maxPlayers": max_players},
        )


class AlreadyRegisteredError(ServiceError):
    """Raised when a user registers twice for the same tournament."""

    def __init__(self, tournament_id: str, user_id: str):
        super().__init__(
            code=ErrorCode.ALREADY_REGISTERED,
            message="Player already registered",
            details={"tournamentId": tournament_id, "userId": user_id},
        )


class InsufficientPlayersError(ServiceError):
    """Raised when starting below the minimum player count."""

    def __init__(self, current: int, required: int):
        super().__init__(
            code=ErrorCode.INSUFFICIENT_PLAYERS,
            message=f"Need at least {required} players to start (have {current})",
            details={"current": current, "required": required},
        )


class InsufficientFundsError(ServiceError):
    """Raised when a debit would drive a balance below zero."""

    def __init__(self, user_id: str, required: Any, available: Any):
        super().__init__(
            code=ErrorCode.INSUFFICIENT_FUNDS,
            message=f"Insufficient balance: required {required}, available {available}",
            details={
                "userId": user_id,
                "required": str(required),
                "available": str(available),
            },
        )


class InvalidAmountError(ServiceError):
    """Raised when a ledger amount is zero, has the wrong sign or precision."""

    def __init__(self, message: str, amount: Any = None):
        super().__init__(
            code=ErrorCode.INVALID_AMOUNT,
            message=message,
            details={"amount": str(amount)} if amount is not None else {},
        )


class IntegrityFaultError(ServiceError):
    """Raised when bookkeeping reaches a state that correct use cannot produce."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.INTEGRITY_FAULT,
            message=message,
            details=details,
        )


class UpstreamFaultError(ServiceError):
    """Raised when the game session service fails during table formation."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            code=ErrorCode.UPSTREAM_FAULT,
            message=message,
            details=details,
        )
