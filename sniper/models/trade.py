"""Trade model: one row per attempted on-chain swap."""

from datetime import datetime, timezone
from enum import Enum

from sqlmodel import SQLModel, Field


class TradeType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TradeStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class Trade(SQLModel, table=True):
    __tablename__ = "trade"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    wallet_id: int = Field(foreign_key="wallet.id", index=True)
    token_address: str = Field(index=True)
    trade_type: str  # TradeType value
    amount_sol: float  # Gross requested amount in SOL
    amount_tokens: float | None = None
    price_per_token_sol: float | None = None
    transaction_signature: str | None = Field(default=None, unique=True)
    transaction_fee_sol: float | None = None
    platform_fee_sol: float | None = None
    slippage_bps: int = 500
    status: str = Field(default=TradeStatus.PENDING.value, index=True)
    error_message: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    submitted_at: datetime | None = None  # Set when claimed for submission
    confirmed_at: datetime | None = None
