from fastapi import APIRouter, Depends, Query

from ridehail.api.auth import verify_api_key
from ridehail.api.dependencies import AccountIdDep, SessionFactoryDep, SettingsDep
from ridehail.api.models.wallet import (
    AddFundsRequest,
    AddFundsResponse,
    BalanceResponse,
    TransactionsResponse,
)
from ridehail.db.transaction import transaction
from ridehail.wallet.ledger import WalletLedger

router = APIRouter(dependencies=[Depends(verify_api_key)])


@router.get("/balance", response_model=BalanceResponse)
def get_balance(account_id: AccountIdDep, session_factory: SessionFactoryDep) -> BalanceResponse:
    with session_factory() as session:
        balance = WalletLedger(session).get_balance(account_id)
    return BalanceResponse(account_id=account_id, balance=balance)


@router.post("/add-funds", response_model=AddFundsResponse)
def add_funds(
    body: AddFundsRequest,
    account_id: AccountIdDep,
    session_factory: SessionFactoryDep,
    settings: SettingsDep,
) -> AddFundsResponse:
    """Simulated top-up; no payment provider is contacted."""
    with session_factory() as session, transaction(session):
        entry = WalletLedger(session).add_funds(
            account_id, body.amount, max_amount=settings.wallet.max_top_up
        )
    return AddFundsResponse(
        message="Funds added successfully",
        balance=entry.balance_after,
        transaction=entry,
    )


@router.get("/transactions", response_model=TransactionsResponse)
def get_transactions(
    account_id: AccountIdDep,
    session_factory: SessionFactoryDep,
    limit: int = Query(default=50, ge=1, le=500),
    before_id: int | None = Query(default=None, ge=1),
) -> TransactionsResponse:
    with session_factory() as session:
        entries = WalletLedger(session).history(account_id, limit=limit, before_id=before_id)
    next_before_id = entries[-1].id if len(entries) == limit else None
    return TransactionsResponse(transactions=entries, next_before_id=next_before_id)
