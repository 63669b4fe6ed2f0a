"""SniperConfig model: per-user trading defaults, speed tier and fee overrides."""

from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


class SniperConfig(SQLModel, table=True):
    __tablename__ = "sniper_config"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    wallet_id: int | None = Field(default=None, foreign_key="wallet.id")
    is_active: bool = True
    auto_snipe_enabled: bool = False

    # Sizing
    min_liquidity_sol: float = 5.0
    max_buy_amount_sol: float = 0.5
    slippage_bps: int = 500

    # Exit levels applied to new positions
    take_profit_percentage: float | None = 200.0
    stop_loss_percentage: float | None = 30.0

    rug_check_enabled: bool = True

    # Speed controls; None overrides fall back to the tier preset
    mev_protection: bool = False
    transaction_speed: str = "standard"  # "standard", "fast", "ultra"
    jito_tip_lamports: int | None = None
    compute_unit_price_micro_lamports: int | None = None
    compute_unit_limit: int | None = None
    use_private_rpc: bool = False

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
