"""Database models."""

from sniper.models.user import User
from sniper.models.wallet import Wallet
from sniper.models.sniper_config import SniperConfig
from sniper.models.trade import Trade, TradeStatus, TradeType
from sniper.models.position import Position, PositionStatus, CloseReason

__all__ = [
    "User",
    "Wallet",
    "SniperConfig",
    "Trade",
    "TradeStatus",
    "TradeType",
    "Position",
    "PositionStatus",
    "CloseReason",
]
