from datetime import datetime
from typing import ClassVar, Literal

from pydantic import BaseModel, Field

TABLE = "loyalty_transactions"

TransactionType = Literal["earned", "redeemed", "expired", "manual_add", "manual_remove"]

CREDIT_TYPES = ("earned", "manual_add")
DEBIT_TYPES = ("redeemed", "manual_remove", "expired")


class CoinTransaction(BaseModel):
    table_name: ClassVar[str] = TABLE

    id: str | None = None
    user_id: str
    transaction_type: TransactionType
    coins_amount: int  # positive = credit, negative = debit
    reference_type: str | None = None  # order, referral, offer
    reference_id: str | None = None
    order_id: str | None = None
    product_id: str | None = None
    product_name: str | None = None
    description: str | None = None
    admin_notes: str | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None

    def to_row(self) -> dict:
        from storeops.backend.base import timestamp

        row = self.model_dump(mode="json", exclude_none=True)
        # same fixed-width format the backend stamps, so range filters compare as strings
        for key in ("expires_at", "created_at"):
            value = getattr(self, key)
            if value is not None:
                row[key] = timestamp(value)
        return row


class LedgerTotals(BaseModel):
    earned: int = 0
    used: int = 0

    @property
    def available(self) -> int:
        return self.earned - self.used
