"""User model: owner of wallets, trades and positions, with aggregate trade stats."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    username: str = Field(unique=True, index=True)
    is_active: bool = Field(default=True)
    total_trades: int = 0
    total_volume_sol: float = 0.0
    total_profit_sol: float = 0.0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
