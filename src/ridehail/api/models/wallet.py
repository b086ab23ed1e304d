"""Request and response models for wallet endpoints."""

from pydantic import BaseModel, Field

from ridehail.wallet.ledger import LedgerEntry


class BalanceResponse(BaseModel):
    account_id: str
    balance: int


class AddFundsRequest(BaseModel):
    amount: int = Field(gt=0)


class AddFundsResponse(BaseModel):
    message: str
    balance: int
    transaction: LedgerEntry


class TransactionsResponse(BaseModel):
    transactions: list[LedgerEntry]
    next_before_id: int | None = Field(
        default=None, description="Pass as before_id to fetch the next page"
    )
