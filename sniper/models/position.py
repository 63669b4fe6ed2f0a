"""Position model: holding acquired by one entry trade, tracked until closed."""

from datetime import datetime, timezone
from enum import Enum

from sqlmodel import SQLModel, Field


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"
    LIQUIDATED = "LIQUIDATED"


class CloseReason(str, Enum):
    MANUAL = "MANUAL"
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"
    LIQUIDATION = "LIQUIDATION"


class Position(SQLModel, table=True):
    __tablename__ = "position"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    wallet_id: int = Field(foreign_key="wallet.id", index=True)
    token_address: str = Field(index=True)
    entry_price: float  # SOL per token
    amount: float = 0.0  # Token amount
    amount_sol: float  # SOL committed on entry
    take_profit_percent: float | None = None
    stop_loss_percent: float | None = None  # Magnitude; triggers at -stop_loss_percent
    status: str = Field(default=PositionStatus.OPEN.value, index=True)
    entry_trade_id: int | None = Field(default=None, foreign_key="trade.id", unique=True)
    entry_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    # Set while an exit trade is in flight; only the claimant may sell
    closing_started_at: datetime | None = None

    # Set together, exactly once, when the position closes
    exit_price: float | None = None
    pnl_percent: float | None = None
    pnl_sol: float | None = None
    close_reason: str | None = None
    exit_trade_id: int | None = Field(default=None, foreign_key="trade.id")
    exit_date: datetime | None = None
