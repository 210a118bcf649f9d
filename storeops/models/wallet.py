from datetime import datetime
from typing import ClassVar

from pydantic import BaseModel, Field

TABLE = "loyalty_coins_wallet"


class Wallet(BaseModel):
    """Per-user coin aggregate; a cache of the ledger.

    available_coins == total_coins_earned - total_coins_used, never negative.
    """

    table_name: ClassVar[str] = TABLE

    id: str | None = None
    user_id: str
    total_coins_earned: int = Field(default=0, ge=0)
    total_coins_used: int = Field(default=0, ge=0)
    available_coins: int = Field(default=0, ge=0)
    last_updated: datetime | None = None
    created_at: datetime | None = None

    def is_consistent(self) -> bool:
        return self.available_coins == self.total_coins_earned - self.total_coins_used
