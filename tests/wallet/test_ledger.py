"""Tests for wallet ledger operations."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select

from ridehail.core.exceptions import (
    ConcurrentModificationError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from ridehail.db.schema import LedgerEntry as LedgerEntryRow
from ridehail.db.transaction import transaction
from ridehail.wallet.ledger import LedgerEntryType, WalletLedger


def entry_count(session_factory, account_id: str) -> int:
    with session_factory() as session:
        return session.execute(
            select(func.count())
            .select_from(LedgerEntryRow)
            .where(LedgerEntryRow.account_id == account_id)
        ).scalar_one()


@pytest.mark.unit
class TestDebitCredit:
    def test_credit_records_entry(self, session_factory, make_account, clock):
        make_account("a1")
        with session_factory() as session, transaction(session):
            entry = WalletLedger(session, clock=clock).credit(
                "a1", 250, LedgerEntryType.WALLET_ADD, "Top-up"
            )

        assert entry.amount == 250
        assert entry.balance_before == 0
        assert entry.balance_after == 250
        assert entry.created_at == clock()
        assert entry.entry_id

    def test_debit_reduces_balance(self, session_factory, make_account, balance_of):
        make_account("a1", balance=500)
        with session_factory() as session, transaction(session):
            entry = WalletLedger(session).debit(
                "a1", 118, LedgerEntryType.RIDE_PAYMENT, ride_id="ride_1"
            )

        assert entry.amount == -118
        assert entry.balance_after == 382
        assert entry.ride_id == "ride_1"
        assert balance_of("a1") == 382

    def test_insufficient_funds_leaves_state_unchanged(
        self, session_factory, make_account, balance_of
    ):
        make_account("a1", balance=100)
        with (  # noqa: SIM117
            session_factory() as session,
            pytest.raises(InsufficientFundsError) as exc_info,
        ):
            with transaction(session):
                WalletLedger(session).debit("a1", 101, LedgerEntryType.RIDE_PAYMENT)

        assert exc_info.value.required == 101
        assert exc_info.value.available == 100
        assert balance_of("a1") == 100
        assert entry_count(session_factory, "a1") == 1

    def test_debit_entire_balance(self, session_factory, make_account, balance_of):
        make_account("a1", balance=100)
        with session_factory() as session, transaction(session):
            WalletLedger(session).debit("a1", 100, LedgerEntryType.WALLET_WITHDRAW)

        assert balance_of("a1") == 0

    @pytest.mark.parametrize("amount", [0, -5, 1.5, True])
    def test_rejects_invalid_amounts(self, session_factory, make_account, amount):
        make_account("a1", balance=100)
        with session_factory() as session, pytest.raises(ValidationError):
            WalletLedger(session).credit("a1", amount, LedgerEntryType.WALLET_ADD)

    def test_unknown_account(self, session_factory):
        with session_factory() as session:
            ledger = WalletLedger(session)
            with pytest.raises(NotFoundError):
                ledger.get_balance("ghost")
            with pytest.raises(NotFoundError):
                ledger.credit("ghost", 10, LedgerEntryType.WALLET_ADD)


@pytest.mark.unit
class TestTransfer:
    def test_transfer_with_fee_conserves_money(
        self, session_factory, make_account, balance_of
    ):
        make_account("customer", balance=500)
        make_account("driver")
        with session_factory() as session, transaction(session):
            debit, credit = WalletLedger(session).transfer(
                "customer", "driver", 118, ride_id="ride_1", fee=18
            )

        assert debit.type == LedgerEntryType.RIDE_PAYMENT
        assert debit.amount == -118
        assert credit.type == LedgerEntryType.RIDE_EARNING
        assert credit.amount == 100
        assert balance_of("customer") == 382
        assert balance_of("driver") == 100

    def test_failed_credit_rolls_back_debit(
        self, session_factory, make_account, balance_of
    ):
        make_account("customer", balance=500)
        with session_factory() as session, transaction(session):
            ledger = WalletLedger(session)
            with pytest.raises(NotFoundError):
                ledger.transfer("customer", "ghost", 118)
            assert ledger.get_balance("customer") == 500

        assert balance_of("customer") == 500
        assert entry_count(session_factory, "customer") == 1

    @pytest.mark.parametrize("fee", [-1, 118, 200])
    def test_rejects_invalid_fee(self, session_factory, make_account, fee):
        make_account("customer", balance=500)
        make_account("driver")
        with session_factory() as session, pytest.raises(ValidationError):
            WalletLedger(session).transfer("customer", "driver", 118, fee=fee)

    def test_rejects_self_transfer(self, session_factory, make_account):
        make_account("customer", balance=500)
        with session_factory() as session, pytest.raises(ValidationError):
            WalletLedger(session).transfer("customer", "customer", 50)


@pytest.mark.unit
class TestAddFunds:
    def test_add_funds(self, session_factory, make_account, balance_of):
        make_account("a1")
        with session_factory() as session, transaction(session):
            entry = WalletLedger(session).add_funds("a1", 10_000)

        assert entry.type == LedgerEntryType.WALLET_ADD
        assert balance_of("a1") == 10_000

    @pytest.mark.parametrize("amount", [0, 10_001])
    def test_add_funds_bounds(self, session_factory, make_account, amount):
        make_account("a1")
        with session_factory() as session, pytest.raises(ValidationError):
            WalletLedger(session).add_funds("a1", amount)


@pytest.mark.unit
class TestHistory:
    def test_history_newest_first_with_cursor(self, session_factory, make_account):
        make_account("a1")
        with session_factory() as session, transaction(session):
            ledger = WalletLedger(session)
            for amount in (10, 20, 30, 40):
                ledger.credit("a1", amount, LedgerEntryType.WALLET_ADD)

        with session_factory() as session:
            ledger = WalletLedger(session)
            first_page = ledger.history("a1", limit=2)
            second_page = ledger.history("a1", limit=2, before_id=first_page[-1].id)

        assert [e.amount for e in first_page] == [40, 30]
        assert [e.amount for e in second_page] == [20, 10]

    def test_history_is_per_account(self, session_factory, make_account):
        make_account("a1", balance=10)
        make_account("a2", balance=20)
        with session_factory() as session:
            entries = WalletLedger(session).history("a2")

        assert [e.account_id for e in entries] == ["a2"]


@pytest.mark.unit
class TestEarningsSummary:
    def test_buckets_by_period(self, session_factory, make_account, clock):
        make_account("customer", balance=5000)
        make_account("driver")

        def settle(amount: int, ride_id: str) -> None:
            with session_factory() as session, transaction(session):
                WalletLedger(session, clock=clock).transfer(
                    "customer", "driver", amount, ride_id=ride_id
                )

        # Three weeks ago, then four days ago (same month), then today
        clock.now = clock.now - timedelta(days=21)
        settle(300, "r_old")
        clock.advance(timedelta(days=17).total_seconds())
        settle(200, "r_week")
        clock.advance(timedelta(days=4).total_seconds())
        settle(100, "r_today")

        with session_factory() as session:
            summary = WalletLedger(session, clock=clock).earnings_summary("driver")

        assert summary.today == 100
        assert summary.rides_today == 1
        assert summary.week == 300
        assert summary.month == 300
        assert summary.total == 600


@pytest.mark.unit
class TestConcurrentModification:
    @patch("ridehail.core.retry.time.sleep")
    def test_lost_race_is_retried(self, mock_sleep, session_factory, make_account, balance_of):
        make_account("a1", balance=100)
        with session_factory() as session, transaction(session):
            ledger = WalletLedger(session)
            real_apply = ledger._apply
            attempts = []

            def flaky(*args):
                attempts.append(args)
                if len(attempts) == 1:
                    raise ConcurrentModificationError("lost race")
                return real_apply(*args)

            with patch.object(ledger, "_apply", side_effect=flaky):
                ledger.debit("a1", 40, LedgerEntryType.RIDE_PAYMENT)

        assert len(attempts) == 2
        assert mock_sleep.call_count == 1
        assert balance_of("a1") == 60

    @patch("ridehail.core.retry.time.sleep")
    def test_gives_up_after_max_attempts(self, mock_sleep, session_factory, make_account):
        make_account("a1", balance=100)
        with session_factory() as session:
            ledger = WalletLedger(session)
            with (
                patch.object(
                    ledger, "_apply", side_effect=ConcurrentModificationError("lost race")
                ) as mock_apply,
                pytest.raises(ConcurrentModificationError),
            ):
                ledger.debit("a1", 40, LedgerEntryType.RIDE_PAYMENT)

        assert mock_apply.call_count == 5
