"""Account repository: role flags, driver status and rating counters."""

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ridehail.core.exceptions import NotFoundError
from ridehail.fare import round_half_up
from ridehail.ride import PartySummary

from ..schema import Account
from ..utils import utc_now

DRIVER_OFFLINE = "offline"
DRIVER_ONLINE = "online"
DRIVER_ON_RIDE = "on_ride"


class AccountRepository:
    """Repository for account reads and the non-monetary account writes.

    Wallet balances are never written here; see WalletLedger.
    """

    def __init__(self, session: Session):
        self.session = session

    def create(
        self,
        account_id: str,
        name: str,
        phone: str | None = None,
        is_customer: bool = True,
        is_driver: bool = False,
        is_manager: bool = False,
        is_admin: bool = False,
        is_placeholder: bool = False,
        vehicle_type: str | None = None,
        vehicle_plate: str | None = None,
    ) -> Account:
        now = utc_now()
        account = Account(
            id=account_id,
            name=name,
            phone=phone,
            is_customer=is_customer,
            is_driver=is_driver,
            is_manager=is_manager,
            is_admin=is_admin,
            is_placeholder=is_placeholder,
            driver_status=DRIVER_OFFLINE,
            vehicle_type=vehicle_type,
            vehicle_plate=vehicle_plate,
            wallet_balance=0,
            version=0,
            rating_sum=0,
            rating_count=0,
            driver_rating=5.0,
            total_rides_completed=0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(account)
        self.session.flush()
        return account

    def get(self, account_id: str) -> Account | None:
        return self.session.get(Account, account_id)

    def require(self, account_id: str) -> Account:
        """Get account by ID or raise NotFoundError."""
        account = self.session.get(Account, account_id)
        if account is None:
            raise NotFoundError(
                f"Account {account_id} not found", details={"account_id": account_id}
            )
        return account

    def set_driver_status(
        self,
        driver_id: str,
        status: str,
        unless_status: str | None = None,
    ) -> bool:
        """Set driver_status, optionally leaving rows in unless_status untouched."""
        stmt = update(Account).where(Account.id == driver_id, Account.is_driver.is_(True))
        if unless_status is not None:
            stmt = stmt.where(Account.driver_status != unless_status)
        result = self.session.execute(
            stmt.values(driver_status=status, updated_at=utc_now())
        )
        return bool(result.rowcount)  # type: ignore[attr-defined]

    def increment_completed_rides(self, driver_id: str) -> None:
        self.session.execute(
            update(Account)
            .where(Account.id == driver_id)
            .values(
                total_rides_completed=Account.total_rides_completed + 1,
                updated_at=utc_now(),
            )
        )

    def record_driver_rating(self, driver_id: str, rating: int) -> float:
        """Add a rating to the driver's running totals and return the new average."""
        self.session.execute(
            update(Account)
            .where(Account.id == driver_id)
            .values(
                rating_sum=Account.rating_sum + rating,
                rating_count=Account.rating_count + 1,
            )
        )
        row = self.session.execute(
            select(Account.rating_sum, Account.rating_count).where(Account.id == driver_id)
        ).one()
        average = round_half_up(row.rating_sum / row.rating_count, 1)
        self.session.execute(
            update(Account)
            .where(Account.id == driver_id)
            .values(driver_rating=average, updated_at=utc_now())
        )
        return average

    def summary(self, account_id: str | None) -> PartySummary | None:
        """Public profile embedded in ride snapshots."""
        if account_id is None:
            return None
        account = self.session.get(Account, account_id)
        if account is None:
            return None
        return PartySummary(
            account_id=account.id,
            name=account.name,
            phone=account.phone,
            rating=account.driver_rating if account.is_driver else None,
            vehicle_type=account.vehicle_type,
            vehicle_plate=account.vehicle_plate,
        )
