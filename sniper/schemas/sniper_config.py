"""Pydantic schema for SniperConfig partial updates."""

from typing import Literal

from pydantic import BaseModel, Field

from sniper.utils.constants import MAX_COMPUTE_UNIT_LIMIT


class SniperConfigUpdate(BaseModel):
    """Partial update: fields left as None keep their stored value."""

    wallet_id: int | None = None
    is_active: bool | None = None
    auto_snipe_enabled: bool | None = None
    min_liquidity_sol: float | None = Field(default=None, ge=0)
    max_buy_amount_sol: float | None = Field(default=None, gt=0)
    slippage_bps: int | None = Field(default=None, ge=0, le=10000)
    take_profit_percentage: float | None = Field(default=None, ge=0, le=10000)
    stop_loss_percentage: float | None = Field(default=None, ge=0, le=100)
    rug_check_enabled: bool | None = None
    mev_protection: bool | None = None
    transaction_speed: Literal["standard", "fast", "ultra"] | None = None
    jito_tip_lamports: int | None = Field(default=None, ge=0)
    compute_unit_price_micro_lamports: int | None = Field(default=None, ge=0)
    compute_unit_limit: int | None = Field(default=None, gt=0, le=MAX_COMPUTE_UNIT_LIMIT)
    use_private_rpc: bool | None = None

    def changes(self) -> dict:
        """Fields that should overwrite the stored config."""
        return self.model_dump(exclude_none=True)
