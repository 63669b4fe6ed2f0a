"""Per-user sniper configuration: read, partial update, snipe intents."""

import logging
from datetime import datetime, timezone

from sqlmodel import Session, select

from sniper.database import engine
from sniper.errors import ValidationError
from sniper.models.sniper_config import SniperConfig
from sniper.schemas.sniper_config import SniperConfigUpdate
from sniper.schemas.trade import TradeIntent

logger = logging.getLogger(__name__)


def get_sniper_config(user_id: int) -> SniperConfig | None:
    """Most recent config for the user, or None."""
    with Session(engine) as session:
        return session.exec(
            select(SniperConfig)
            .where(SniperConfig.user_id == user_id)
            .order_by(SniperConfig.created_at.desc(), SniperConfig.id.desc())
        ).first()


def save_sniper_config(user_id: int, update: SniperConfigUpdate) -> SniperConfig:
    """Apply a partial update; creates the config with defaults when absent."""
    changes = update.changes()
    with Session(engine) as session:
        config = session.exec(
            select(SniperConfig)
            .where(SniperConfig.user_id == user_id)
            .order_by(SniperConfig.created_at.desc(), SniperConfig.id.desc())
        ).first()

        if config is None:
            config = SniperConfig(user_id=user_id, **changes)
            logger.info(f"Created sniper config for user {user_id}")
        else:
            for field_name, value in changes.items():
                setattr(config, field_name, value)
            config.updated_at = datetime.now(timezone.utc)

        session.add(config)
        session.commit()
        session.refresh(config)
    return config


def build_snipe_intent(config: SniperConfig, token_address: str) -> TradeIntent:
    """BUY intent for a newly detected token, sized and tuned from the config."""
    if config.wallet_id is None:
        raise ValidationError(f"Sniper config for user {config.user_id} has no wallet")

    return TradeIntent(
        user_id=config.user_id,
        wallet_id=config.wallet_id,
        token_address=token_address,
        trade_type="BUY",
        amount_sol=config.max_buy_amount_sol,
        slippage_bps=config.slippage_bps,
        use_mev_protection=config.mev_protection,
        transaction_speed=config.transaction_speed,
        jito_tip_lamports=config.jito_tip_lamports,
        compute_unit_price=config.compute_unit_price_micro_lamports,
        compute_unit_limit=config.compute_unit_limit,
        use_private_rpc=config.use_private_rpc,
    )
