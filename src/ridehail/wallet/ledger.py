"""Wallet balances and the append-only ledger.

Every balance change is a conditional UPDATE guarded by the account's version
counter, paired with exactly one ledger entry in the same transaction. The
ledger never commits; callers own the transaction boundary.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ridehail.core.exceptions import (
    ConcurrentModificationError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from ridehail.core.retry import RetryConfig, with_retry_sync
from ridehail.db.schema import Account
from ridehail.db.schema import LedgerEntry as LedgerEntryRow
from ridehail.db.transaction import savepoint
from ridehail.db.utils import utc_now
from ridehail.metrics import prometheus_exporter as metrics

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50
MAX_HISTORY_LIMIT = 500


class LedgerEntryType(str, Enum):
    RIDE_PAYMENT = "ride_payment"
    RIDE_EARNING = "ride_earning"
    WALLET_ADD = "wallet_add"
    WALLET_WITHDRAW = "wallet_withdraw"
    REFUND = "refund"


class LedgerEntryStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class LedgerEntry(BaseModel):
    """Immutable record of one balance change."""

    model_config = ConfigDict(frozen=True)

    id: int
    entry_id: str
    account_id: str
    type: LedgerEntryType
    amount: int
    balance_before: int
    balance_after: int
    ride_id: str | None = None
    description: str = ""
    status: LedgerEntryStatus = LedgerEntryStatus.COMPLETED
    created_at: datetime


class EarningsSummary(BaseModel):
    account_id: str
    today: int = 0
    week: int = 0
    month: int = 0
    total: int = 0
    rides_today: int = 0


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(
            "Amount must be a positive integer", details={"amount": repr(amount)}
        )


class WalletLedger:
    """Debit, credit and transfer operations over account wallets."""

    def __init__(
        self,
        session: Session,
        retry_config: RetryConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session = session
        self._clock = clock
        self._retry_config = retry_config or RetryConfig(
            max_attempts=5,
            base_delay=0.01,
            max_delay=0.2,
            retryable_exceptions=(ConcurrentModificationError,),
        )

    def get_balance(self, account_id: str) -> int:
        balance = self.session.execute(
            select(Account.wallet_balance).where(Account.id == account_id)
        ).scalar_one_or_none()
        if balance is None:
            raise NotFoundError(
                f"Account {account_id} not found", details={"account_id": account_id}
            )
        return int(balance)

    def debit(
        self,
        account_id: str,
        amount: int,
        entry_type: LedgerEntryType,
        description: str = "",
        ride_id: str | None = None,
    ) -> LedgerEntry:
        """Remove amount from the wallet. Raises InsufficientFundsError on shortfall."""
        _validate_amount(amount)
        return self._post(account_id, -amount, entry_type, description, ride_id)

    def credit(
        self,
        account_id: str,
        amount: int,
        entry_type: LedgerEntryType,
        description: str = "",
        ride_id: str | None = None,
    ) -> LedgerEntry:
        _validate_amount(amount)
        return self._post(account_id, amount, entry_type, description, ride_id)

    def transfer(
        self,
        from_id: str,
        to_id: str,
        amount: int,
        ride_id: str | None = None,
        fee: int = 0,
        debit_type: LedgerEntryType = LedgerEntryType.RIDE_PAYMENT,
        credit_type: LedgerEntryType = LedgerEntryType.RIDE_EARNING,
        description: str = "",
    ) -> tuple[LedgerEntry, LedgerEntry]:
        """Move amount out of from_id and amount - fee into to_id atomically.

        The fee stays with the platform. If either leg fails, neither is applied.
        """
        _validate_amount(amount)
        if isinstance(fee, bool) or not isinstance(fee, int) or fee < 0 or fee >= amount:
            raise ValidationError(
                "Fee must be a non-negative integer below the amount",
                details={"amount": amount, "fee": repr(fee)},
            )
        if from_id == to_id:
            raise ValidationError(
                "Cannot transfer to the same account", details={"account_id": from_id}
            )

        with savepoint(self.session):
            debit_entry = self._post(from_id, -amount, debit_type, description, ride_id)
            credit_entry = self._post(to_id, amount - fee, credit_type, description, ride_id)
        return debit_entry, credit_entry

    def add_funds(
        self,
        account_id: str,
        amount: int,
        max_amount: int = 10_000,
    ) -> LedgerEntry:
        """Simulated top-up; no external payment is involved."""
        _validate_amount(amount)
        if amount > max_amount:
            raise ValidationError(
                f"Top-up amount must not exceed {max_amount}",
                details={"amount": amount, "max_amount": max_amount},
            )
        return self._post(
            account_id, amount, LedgerEntryType.WALLET_ADD, "Wallet top-up", None
        )

    def history(
        self,
        account_id: str,
        limit: int = DEFAULT_HISTORY_LIMIT,
        before_id: int | None = None,
    ) -> list[LedgerEntry]:
        """Ledger entries, most recent first. Pass the last id seen as before_id to page."""
        self.get_balance(account_id)
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))

        stmt = select(LedgerEntryRow).where(LedgerEntryRow.account_id == account_id)
        if before_id is not None:
            stmt = stmt.where(LedgerEntryRow.id < before_id)
        stmt = stmt.order_by(LedgerEntryRow.id.desc()).limit(limit)

        return [self._to_domain(row) for row in self.session.execute(stmt).scalars().all()]

    def earnings_summary(self, account_id: str, now: datetime | None = None) -> EarningsSummary:
        """Ride earnings for today, the last 7 days, this month and all time."""
        self.get_balance(account_id)
        now = now or self._clock()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        start_of_month = start_of_day.replace(day=1)

        today, rides_today = self._earnings_since(account_id, start_of_day)
        week, _ = self._earnings_since(account_id, now - timedelta(days=7))
        month, _ = self._earnings_since(account_id, start_of_month)
        total, _ = self._earnings_since(account_id, None)

        return EarningsSummary(
            account_id=account_id,
            today=today,
            week=week,
            month=month,
            total=total,
            rides_today=rides_today,
        )

    def _earnings_since(self, account_id: str, since: datetime | None) -> tuple[int, int]:
        stmt = select(func.coalesce(func.sum(LedgerEntryRow.amount), 0), func.count()).where(
            LedgerEntryRow.account_id == account_id,
            LedgerEntryRow.type == LedgerEntryType.RIDE_EARNING.value,
            LedgerEntryRow.status == LedgerEntryStatus.COMPLETED.value,
        )
        if since is not None:
            stmt = stmt.where(LedgerEntryRow.created_at >= since)
        amount, count = self.session.execute(stmt).one()
        return int(amount), int(count)

    def _post(
        self,
        account_id: str,
        signed_amount: int,
        entry_type: LedgerEntryType,
        description: str,
        ride_id: str | None,
    ) -> LedgerEntry:
        def attempt() -> LedgerEntry:
            return self._apply(account_id, signed_amount, entry_type, description, ride_id)

        return with_retry_sync(
            attempt,
            self._retry_config,
            operation_name=f"ledger {entry_type.value} for {account_id}",
        )

    def _apply(
        self,
        account_id: str,
        signed_amount: int,
        entry_type: LedgerEntryType,
        description: str,
        ride_id: str | None,
    ) -> LedgerEntry:
        current = self.session.execute(
            select(Account.wallet_balance, Account.version).where(Account.id == account_id)
        ).one_or_none()
        if current is None:
            raise NotFoundError(
                f"Account {account_id} not found", details={"account_id": account_id}
            )

        balance_before = int(current.wallet_balance)
        if signed_amount < 0 and balance_before < -signed_amount:
            raise InsufficientFundsError(account_id, -signed_amount, balance_before)

        now = self._clock()
        stmt = update(Account).where(
            Account.id == account_id, Account.version == current.version
        )
        if signed_amount < 0:
            stmt = stmt.where(Account.wallet_balance >= -signed_amount)
        result = self.session.execute(
            stmt.values(
                wallet_balance=Account.wallet_balance + signed_amount,
                version=Account.version + 1,
                updated_at=now,
            )
        )
        if not result.rowcount:  # type: ignore[attr-defined]
            raise ConcurrentModificationError(
                f"Wallet of account {account_id} changed concurrently",
                details={"account_id": account_id, "version": current.version},
            )

        row = LedgerEntryRow(
            entry_id=str(uuid4()),
            account_id=account_id,
            type=entry_type.value,
            amount=signed_amount,
            balance_before=balance_before,
            balance_after=balance_before + signed_amount,
            ride_id=ride_id,
            description=description,
            status=LedgerEntryStatus.COMPLETED.value,
            created_at=now,
        )
        self.session.add(row)
        self.session.flush()

        metrics.ridehail_ledger_entries_total.labels(entry_type=entry_type.value).inc()
        logger.debug(
            f"Ledger {entry_type.value} of {signed_amount} on {account_id}, "
            f"balance {balance_before} -> {row.balance_after}"
        )
        return self._to_domain(row)

    @staticmethod
    def _to_domain(row: LedgerEntryRow) -> LedgerEntry:
        return LedgerEntry(
            id=row.id,
            entry_id=row.entry_id,
            account_id=row.account_id,
            type=LedgerEntryType(row.type),
            amount=row.amount,
            balance_before=row.balance_before,
            balance_after=row.balance_after,
            ride_id=row.ride_id,
            description=row.description,
            status=LedgerEntryStatus(row.status),
            created_at=row.created_at,
        )
