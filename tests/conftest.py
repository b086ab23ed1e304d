import os

# Credential fields have no defaults (services must fail without secrets).
# Provide test values so Settings() can be constructed in tests.
os.environ.setdefault("API_KEY", "test-api-key")

from collections.abc import Callable

import pytest

from ridehail.db.database import init_database
from ridehail.db.repositories import AccountRepository
from ridehail.db.schema import Account
from ridehail.db.transaction import transaction
from ridehail.events.sink import InMemoryEventSink
from ridehail.fare import FareCalculator
from ridehail.matching.driver_geospatial_index import DriverGeospatialIndex
from ridehail.matching.notification_dispatch import NotificationDispatch
from ridehail.rides.lifecycle import RideLifecycle
from ridehail.settings import APISettings, MatchingSettings, Settings
from ridehail.wallet.ledger import LedgerEntryType, WalletLedger

from tests.factories import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def session_factory(tmp_path):
    """File-backed SQLite database so concurrent sessions see each other's commits."""
    return init_database(f"sqlite:///{tmp_path / 'ridehail.db'}")


@pytest.fixture
def settings() -> Settings:
    return Settings(api=APISettings(key="test-api-key"))


@pytest.fixture
def event_sink() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def notifications(event_sink, clock) -> NotificationDispatch:
    return NotificationDispatch(event_sink, clock)


@pytest.fixture
def geo_index(session_factory, notifications, clock) -> DriverGeospatialIndex:
    return DriverGeospatialIndex(
        session_factory,
        notifications,
        h3_resolution=7,
        availability_ttl_seconds=300,
        clock=clock,
    )


@pytest.fixture
def fare_calculator(settings) -> FareCalculator:
    return FareCalculator(settings.fare)


@pytest.fixture
def lifecycle(session_factory, fare_calculator, geo_index, notifications, settings, clock):
    return RideLifecycle(
        session_factory,
        fare_calculator,
        geo_index,
        notifications,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def manual_lifecycle(session_factory, fare_calculator, geo_index, notifications, clock):
    """Lifecycle that offers rides to drivers instead of auto-assigning."""
    settings = Settings(
        api=APISettings(key="test-api-key"),
        matching=MatchingSettings(matching_auto_assign=False),
    )
    return RideLifecycle(
        session_factory,
        fare_calculator,
        geo_index,
        notifications,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def make_account(session_factory, clock) -> Callable[..., str]:
    """Create an account, optionally funded through the ledger."""

    def _make(account_id: str, balance: int = 0, **kwargs) -> str:
        with session_factory() as session, transaction(session):
            AccountRepository(session).create(account_id, kwargs.pop("name", account_id), **kwargs)
            if balance:
                WalletLedger(session, clock=clock).credit(
                    account_id, balance, LedgerEntryType.WALLET_ADD, "Seed balance"
                )
        return account_id

    return _make


@pytest.fixture
def make_driver(make_account) -> Callable[..., str]:
    def _make(driver_id: str, **kwargs) -> str:
        kwargs.setdefault("is_driver", True)
        kwargs.setdefault("vehicle_type", "car")
        kwargs.setdefault("vehicle_plate", f"WB-{driver_id.upper()}")
        return make_account(driver_id, **kwargs)

    return _make


@pytest.fixture
def customer(make_account) -> str:
    return make_account("customer_1", balance=1000, name="Asha", phone="+91 98300 12345")


@pytest.fixture
def driver(make_driver) -> str:
    return make_driver("driver_1", name="Rahul")


@pytest.fixture
def get_account(session_factory) -> Callable[[str], Account]:
    def _get(account_id: str) -> Account:
        with session_factory(expire_on_commit=False) as session:
            account = session.get(Account, account_id)
            assert account is not None
            session.expunge(account)
            return account

    return _get


@pytest.fixture
def balance_of(session_factory) -> Callable[[str], int]:
    def _balance(account_id: str) -> int:
        with session_factory() as session:
            return WalletLedger(session).get_balance(account_id)

    return _balance
