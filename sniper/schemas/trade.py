"""Pydantic schemas for trade requests."""

import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from sniper.utils.constants import MAX_COMPUTE_UNIT_LIMIT

_BASE58_ADDRESS_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def validate_solana_address(value: str) -> str:
    address = value.strip()
    if not _BASE58_ADDRESS_RE.fullmatch(address):
        raise ValueError("must be a base58 Solana address")
    return address


class TradeIntent(BaseModel):
    """A request to buy or sell one token for one user's wallet."""

    user_id: int
    wallet_id: int
    token_address: str
    trade_type: Literal["BUY", "SELL"]
    amount_sol: float = Field(gt=0)  # Gross amount in SOL, before the platform fee
    slippage_bps: int = Field(default=500, ge=0, le=10000)
    use_mev_protection: bool = False
    transaction_speed: Literal["standard", "fast", "ultra"] = "standard"
    jito_tip_lamports: int | None = Field(default=None, ge=0)
    compute_unit_price: int | None = Field(default=None, ge=0)  # micro-lamports per CU
    compute_unit_limit: int | None = Field(default=None, gt=0, le=MAX_COMPUTE_UNIT_LIMIT)
    use_private_rpc: bool = False
    # Tokens to sell when the holding is known; SELLs without it are sized in SOL
    token_amount: float | None = Field(default=None, gt=0)

    @field_validator("token_address")
    @classmethod
    def _validate_address(cls, value: str) -> str:
        return validate_solana_address(value)
