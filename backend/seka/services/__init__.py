"""Business services."""

from seka.services.account import AccountService, LedgerAudit

__all__ = ["AccountService", "LedgerAudit"]
