"""Pydantic schemas for position creation and level updates."""

from pydantic import BaseModel, Field, field_validator

from sniper.schemas.trade import validate_solana_address


class PositionCreate(BaseModel):
    user_id: int
    wallet_id: int
    token_address: str
    entry_price: float = Field(gt=0)
    amount: float = Field(default=0.0, ge=0)
    amount_sol: float = Field(gt=0)
    take_profit_percent: float | None = Field(default=None, ge=0, le=10000)
    stop_loss_percent: float | None = Field(default=None, ge=0, le=100)
    entry_trade_id: int | None = None

    @field_validator("token_address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        return validate_solana_address(value)


class PositionLevelsUpdate(BaseModel):
    """Replacement exit levels; None disables that trigger."""

    take_profit_percent: float | None = Field(default=None, ge=0, le=10000)
    stop_loss_percent: float | None = Field(default=None, ge=0, le=100)
