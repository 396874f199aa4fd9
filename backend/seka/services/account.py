"""Account service: the only writer of user balances.

Every balance change is one appended ledger entry plus the matching update of
``users.balance``, flushed in the caller's transaction. Callers that need the
append to be atomic with other writes (registration, prize payout) pass their
own session; standalone callers wrap the call in ``run_in_transaction``.

Concurrency:
- The user row is read ``SELECT ... FOR UPDATE`` so appends for one user
  serialize and ``balance_before`` is never stale.
- ``users.version`` is an optimistic counter; a concurrent writer that slipped
  past the lock (databases without row locks) fails with StaleDataError and
  the surrounding transaction is retried.
"""

import hashlib
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from seka.logging_config import get_logger
from seka.models.base import CENT
from seka.models.ledger import (
    CREDIT_TYPES,
    DEBIT_TYPES,
    LedgerEntry,
    LedgerEntryType,
    ReferenceType,
)
from seka.models.user import User
from seka.utils.errors import (
    InsufficientFundsError,
    IntegrityFaultError,
    InvalidAmountError,
    InvalidStateError,
    NotFoundError,
)

logger = get_logger(__name__)

ZERO = Decimal("0")


def to_amount(value: Any) -> Decimal:
    """Convert to a two-decimal Decimal, rejecting sub-cent precision."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmountError(f"Not a number: {value!r}", value) from e
    if not amount.is_finite():
        raise InvalidAmountError("Amount must be finite", value)
    if amount != amount.quantize(CENT):
        raise InvalidAmountError("Amount has more than two decimal places", value)
    return amount.quantize(CENT)


def _money(value: Any) -> Decimal:
    """Round an aggregate (may come back as float on SQLite) to cents."""
    return Decimal(str(value or 0)).quantize(CENT)


def compute_integrity_hash(
    user_id: str,
    entry_type: LedgerEntryType,
    sequence: int,
    amount: Decimal,
    balance_before: Decimal,
    balance_after: Decimal,
) -> str:
    """SHA-256 over the fields that define an entry's effect on the balance."""
    data = (
        f"{user_id}:{entry_type.value}:{sequence}:"
        f"{amount.quantize(CENT)}:{balance_before.quantize(CENT)}:"
        f"{balance_after.quantize(CENT)}"
    )
    return hashlib.sha256(data.encode()).hexdigest()


def verify_integrity(entry: LedgerEntry) -> bool:
    """Verify an entry's integrity hash."""
    expected = compute_integrity_hash(
        user_id=entry.user_id,
        entry_type=entry.entry_type,
        sequence=entry.sequence,
        amount=entry.amount,
        balance_before=entry.balance_before,
        balance_after=entry.balance_after,
    )
    return entry.integrity_hash == expected


@dataclass
class LedgerAudit:
    """Result of replaying a user's ledger from a zero balance."""

    user_id: str
    entry_count: int = 0
    replayed_balance: Decimal = ZERO
    stored_balance: Decimal = ZERO
    errors: list[str] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.errors and self.replayed_balance == self.stored_balance

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "entry_count": self.entry_count,
            "replayed_balance": str(self.replayed_balance),
            "stored_balance": str(self.stored_balance),
            "is_consistent": self.is_consistent,
            "errors": list(self.errors),
        }


class AccountService:
    """Balance projection plus append-only ledger for user accounts."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_account(self, nickname: str) -> User:
        """Open a zero-balance account."""
        user = User(nickname=nickname, balance=ZERO)
        self.session.add(user)
        await self.session.flush()
        logger.info("account_created", user_id=user.id, nickname=nickname)
        return user

    async def get_balance(self, user_id: str) -> Decimal:
        user = await self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User", user_id)
        return user.balance

    async def append(
        self,
        user_id: str,
        amount: Any,
        entry_type: LedgerEntryType,
        description: str,
        *,
        reference_id: str | None = None,
        reference_type: ReferenceType | str | None = None,
    ) -> LedgerEntry:
        """Append one entry and move the balance projection with it.

        Args:
            user_id: Account owner
            amount: Signed amount (credits positive, debits negative)
            entry_type: Entry kind; must agree with the sign of ``amount``
            description: Free text shown in history
            reference_id: Optional related object id (tournament, game...)
            reference_type: What ``reference_id`` refers to

        Returns:
            The flushed LedgerEntry

        Raises:
            InvalidAmountError: zero amount, sign/kind mismatch, bad precision
            NotFoundError: unknown user
            InsufficientFundsError: debit would make the balance negative
            IntegrityFaultError: stored balance disagrees with the ledger tail
        """
        entry_type = LedgerEntryType(entry_type)
        amount = to_amount(amount)

        if amount == ZERO:
            raise InvalidAmountError("Amount cannot be zero", amount)
        if entry_type in CREDIT_TYPES and amount < ZERO:
            raise InvalidAmountError(
                f"{entry_type.value} entries must be positive", amount
            )
        if entry_type in DEBIT_TYPES and amount > ZERO:
            raise InvalidAmountError(
                f"{entry_type.value} entries must be negative", amount
            )

        user = await self._lock_user(user_id)
        last = await self._last_entry(user_id)

        balance_before = user.balance
        tail_balance = last.balance_after if last else ZERO
        if balance_before != tail_balance:
            logger.error(
                "ledger_projection_mismatch",
                user_id=user_id,
                stored_balance=balance_before,
                ledger_balance=tail_balance,
            )
            raise IntegrityFaultError(
                "Stored balance does not match the ledger",
                {
                    "userId": user_id,
                    "storedBalance": str(balance_before),
                    "ledgerBalance": str(tail_balance),
                },
            )

        balance_after = balance_before + amount
        if balance_after < ZERO:
            raise InsufficientFundsError(user_id, -amount, balance_before)

        sequence = (last.sequence if last else 0) + 1
        if isinstance(reference_type, ReferenceType):
            reference_type = reference_type.value

        entry = LedgerEntry(
            user_id=user_id,
            sequence=sequence,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            entry_type=entry_type,
            description=description,
            reference_id=reference_id,
            reference_type=reference_type,
            integrity_hash=compute_integrity_hash(
                user_id=user_id,
                entry_type=entry_type,
                sequence=sequence,
                amount=amount,
                balance_before=balance_before,
                balance_after=balance_after,
            ),
        )
        user.balance = balance_after
        self.session.add(entry)
        await self.session.flush()

        logger.info(
            "ledger_append",
            user_id=user_id,
            entry_type=entry_type.value,
            sequence=sequence,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            reference_id=reference_id,
        )
        return entry

    async def credit(
        self,
        user_id: str,
        amount: Any,
        description: str,
        *,
        entry_type: LedgerEntryType = LedgerEntryType.EARNED,
        reference_id: str | None = None,
        reference_type: ReferenceType | str | None = None,
    ) -> LedgerEntry:
        """Credit a positive amount."""
        if entry_type not in CREDIT_TYPES:
            raise InvalidAmountError(f"{entry_type.value} is not a credit type")
        return await self.append(
            user_id,
            abs(to_amount(amount)),
            entry_type,
            description,
            reference_id=reference_id,
            reference_type=reference_type,
        )

    async def debit(
        self,
        user_id: str,
        amount: Any,
        description: str,
        *,
        entry_type: LedgerEntryType = LedgerEntryType.SPENT,
        reference_id: str | None = None,
        reference_type: ReferenceType | str | None = None,
    ) -> LedgerEntry:
        """Debit a positive amount (stored negative)."""
        if entry_type not in DEBIT_TYPES:
            raise InvalidAmountError(f"{entry_type.value} is not a debit type")
        return await self.append(
            user_id,
            -abs(to_amount(amount)),
            entry_type,
            description,
            reference_id=reference_id,
            reference_type=reference_type,
        )

    async def reverse_entry(self, entry_id: str, reason: str) -> LedgerEntry:
        """Offset an entry with a new one; the original stays untouched.

        Credits are reversed with a penalty, debits with a refund. An entry can
        be reversed once.
        """
        original = await self.session.get(LedgerEntry, entry_id)
        if not original:
            raise NotFoundError("LedgerEntry", entry_id)

        existing = await self.session.execute(
            select(LedgerEntry.id).where(
                LedgerEntry.reference_type == ReferenceType.LEDGER_ENTRY.value,
                LedgerEntry.reference_id == entry_id,
            )
        )
        if existing.first() is not None:
            raise InvalidStateError(f"Ledger entry {entry_id} was already reversed")

        reversal_type = (
            LedgerEntryType.PENALTY
            if original.entry_type in CREDIT_TYPES
            else LedgerEntryType.REFUND
        )
        return await self.append(
            original.user_id,
            -original.amount,
            reversal_type,
            f"Reversal of #{original.sequence}: {reason}",
            reference_id=original.id,
            reference_type=ReferenceType.LEDGER_ENTRY,
        )

    async def get_history(
        self,
        user_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        entry_type: LedgerEntryType | None = None,
    ) -> tuple[list[LedgerEntry], int]:
        """Get a user's entries, newest first, with the total count."""
        conditions = [LedgerEntry.user_id == user_id]
        if entry_type:
            conditions.append(LedgerEntry.entry_type == entry_type)

        total = await self.session.scalar(
            select(func.count()).select_from(LedgerEntry).where(*conditions)
        )
        result = await self.session.execute(
            select(LedgerEntry)
            .where(*conditions)
            .order_by(LedgerEntry.sequence.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total or 0

    async def get_statistics(self) -> dict:
        """Platform-wide totals."""
        total_users = await self.session.scalar(select(func.count()).select_from(User))
        total_balance = await self.session.scalar(select(func.sum(User.balance)))
        total_credited = await self.session.scalar(
            select(func.sum(LedgerEntry.amount)).where(
                LedgerEntry.entry_type.in_(
                    [LedgerEntryType.EARNED, LedgerEntryType.BONUS]
                )
            )
        )
        total_spent = await self.session.scalar(
            select(func.sum(LedgerEntry.amount)).where(
                LedgerEntry.entry_type == LedgerEntryType.SPENT
            )
        )
        total_entries = await self.session.scalar(
            select(func.count()).select_from(LedgerEntry)
        )
        return {
            "total_users": total_users or 0,
            "total_balance": _money(total_balance),
            "total_earned": _money(total_credited),
            "total_spent": abs(_money(total_spent)),
            "total_entries": total_entries or 0,
        }

    async def verify_history(self, user_id: str) -> LedgerAudit:
        """Replay a user's ledger from zero and compare with the stored balance."""
        user = await self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User", user_id)

        result = await self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.user_id == user_id)
            .order_by(LedgerEntry.sequence)
        )
        entries = list(result.scalars().all())

        audit = LedgerAudit(
            user_id=user_id,
            entry_count=len(entries),
            stored_balance=user.balance,
        )
        running = ZERO
        for expected_seq, entry in enumerate(entries, 1):
            if entry.sequence != expected_seq:
                audit.errors.append(
                    f"#{entry.sequence}: expected sequence {expected_seq}"
                )
            if entry.balance_before != running:
                audit.errors.append(
                    f"#{entry.sequence}: balance_before {entry.balance_before} "
                    f"!= running balance {running}"
                )
            if entry.balance_after != entry.balance_before + entry.amount:
                audit.errors.append(
                    f"#{entry.sequence}: balance_after != balance_before + amount"
                )
            if (entry.entry_type in CREDIT_TYPES) != (entry.amount > ZERO):
                audit.errors.append(
                    f"#{entry.sequence}: sign does not match {entry.entry_type.value}"
                )
            if not verify_integrity(entry):
                audit.errors.append(f"#{entry.sequence}: integrity hash mismatch")
            running += entry.amount

        audit.replayed_balance = running
        if not audit.is_consistent:
            logger.warning("ledger_audit_failed", **audit.to_dict())
        return audit

    async def _lock_user(self, user_id: str) -> User:
        result = await self.session.execute(
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError("User", user_id)
        return user

    async def _last_entry(self, user_id: str) -> LedgerEntry | None:
        result = await self.session.execute(
            select(LedgerEntry)
            .where(LedgerEntry.user_id == user_id)
            .order_by(LedgerEntry.sequence.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
