"""Trade ledger: one row per attempted trade, from PENDING to a terminal state.

State changes are conditional on the row still being in the expected state,
so a trade is settled at most once and a cancelled trade is never submitted.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func
from sqlmodel import Session, select

from sniper.config import settings
from sniper.database import engine
from sniper.errors import NotFound, ValidationError
from sniper.models.trade import Trade, TradeStatus, TradeType
from sniper.models.user import User
from sniper.schemas.trade import TradeIntent

logger = logging.getLogger(__name__)


def create_trade(intent: TradeIntent) -> Trade:
    """Record a trade in PENDING before any network call."""
    with Session(engine) as session:
        trade = Trade(
            user_id=intent.user_id,
            wallet_id=intent.wallet_id,
            token_address=intent.token_address,
            trade_type=intent.trade_type,
            amount_sol=intent.amount_sol,
            slippage_bps=intent.slippage_bps,
        )
        session.add(trade)
        session.commit()
        session.refresh(trade)
    return trade


def get_trade(trade_id: int, user_id: int | None = None) -> Trade:
    with Session(engine) as session:
        trade = session.get(Trade, trade_id)
    if trade is None or (user_id is not None and trade.user_id != user_id):
        raise NotFound(f"Trade {trade_id} not found")
    return trade


def claim_for_submission(trade_id: int) -> bool:
    """Mark a PENDING trade as handed to the network. False if it was cancelled."""
    with Session(engine) as session:
        trade = session.exec(
            select(Trade)
            .where(
                Trade.id == trade_id,
                Trade.status == TradeStatus.PENDING.value,
                Trade.submitted_at == None,  # noqa: E711
            )
            .with_for_update()
        ).first()
        if trade is None:
            return False
        trade.submitted_at = datetime.now(timezone.utc)
        session.add(trade)
        session.commit()
    return True


def cancel_trade(trade_id: int, user_id: int) -> Trade:
    """Cancel a trade that has not yet been claimed for submission."""
    with Session(engine) as session:
        trade = session.exec(
            select(Trade)
            .where(Trade.id == trade_id, Trade.user_id == user_id)
            .with_for_update()
        ).first()
        if trade is None:
            raise NotFound(f"Trade {trade_id} not found")
        if trade.status != TradeStatus.PENDING.value or trade.submitted_at is not None:
            raise ValidationError(f"Trade {trade_id} can no longer be cancelled (status {trade.status})")

        trade.status = TradeStatus.CANCELLED.value
        session.add(trade)
        session.commit()
        session.refresh(trade)

    logger.info(f"Trade {trade_id} cancelled by user {user_id}")
    return trade


def mark_success(
    trade_id: int,
    signature: str,
    amount_tokens: float | None,
    price_per_token_sol: float | None,
    transaction_fee_sol: float,
    platform_fee_sol: float,
) -> Trade:
    """Settle a PENDING trade as SUCCESS and bump the owner's aggregate stats."""
    with Session(engine) as session:
        trade = session.exec(
            select(Trade)
            .where(Trade.id == trade_id, Trade.status == TradeStatus.PENDING.value)
            .with_for_update()
        ).first()
        if trade is None:
            raise NotFound(f"Trade {trade_id} is not pending")

        trade.status = TradeStatus.SUCCESS.value
        trade.transaction_signature = signature
        trade.amount_tokens = amount_tokens
        trade.price_per_token_sol = price_per_token_sol
        trade.transaction_fee_sol = transaction_fee_sol
        trade.platform_fee_sol = platform_fee_sol
        trade.confirmed_at = datetime.now(timezone.utc)
        session.add(trade)

        user = session.get(User, trade.user_id)
        if user is not None:
            user.total_trades += 1
            user.total_volume_sol += trade.amount_sol
            session.add(user)

        session.commit()
        session.refresh(trade)
    return trade


def mark_failed(trade_id: int, error_message: str) -> bool:
    """Settle a PENDING trade as FAILED. False if it was already terminal."""
    with Session(engine) as session:
        trade = session.exec(
            select(Trade)
            .where(Trade.id == trade_id, Trade.status == TradeStatus.PENDING.value)
            .with_for_update()
        ).first()
        if trade is None:
            logger.warning(f"Trade {trade_id} already terminal; not marking failed")
            return False
        trade.status = TradeStatus.FAILED.value
        trade.error_message = error_message[:1000]
        session.add(trade)
        session.commit()
    return True


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def get_trading_history(
    user_id: int,
    limit: int = 50,
    offset: int = 0,
    token_address: str | None = None,
    trade_type: str | None = None,
    status: str | None = TradeStatus.SUCCESS.value,
) -> list[Trade]:
    """User's trades, newest first. Pass status=None for every status."""
    query = select(Trade).where(Trade.user_id == user_id)
    if token_address:
        query = query.where(Trade.token_address == token_address)
    if trade_type:
        query = query.where(Trade.trade_type == trade_type)
    if status:
        query = query.where(Trade.status == status)
    query = query.order_by(Trade.created_at.desc(), Trade.id.desc()).offset(offset).limit(limit)

    with Session(engine) as session:
        return list(session.exec(query).all())


def get_total_fees_collected() -> dict:
    """Platform fee totals over successful trades."""
    with Session(engine) as session:
        total_fees, total_trades, unique_users = session.exec(
            select(
                func.coalesce(func.sum(Trade.platform_fee_sol), 0.0),
                func.count(Trade.id),
                func.count(func.distinct(Trade.user_id)),
            ).where(Trade.status == TradeStatus.SUCCESS.value, Trade.platform_fee_sol > 0)
        ).one()

    return {
        "total_fees_collected": float(total_fees),
        "total_trades": int(total_trades),
        "unique_users": int(unique_users),
        "fee_wallet_address": settings.fee_collection_wallet,
        "fee_percentage": settings.transaction_fee_percentage,
    }


def calculate_profit_loss(user_id: int, token_address: str, current_price_sol: float | None) -> dict:
    """Average-cost P/L for one token over the user's successful trades.

    Realized P/L is sell proceeds minus the cost of the tokens sold;
    unrealized P/L values what is left at current_price_sol.
    """
    with Session(engine) as session:
        trades = session.exec(
            select(Trade)
            .where(
                Trade.user_id == user_id,
                Trade.token_address == token_address,
                Trade.status == TradeStatus.SUCCESS.value,
            )
            .order_by(Trade.created_at, Trade.id)
        ).all()

    total_buy_sol = total_sell_sol = 0.0
    bought_tokens = sold_tokens = 0.0
    for trade in trades:
        if trade.trade_type == TradeType.BUY.value:
            total_buy_sol += trade.amount_sol
            bought_tokens += trade.amount_tokens or 0.0
        else:
            total_sell_sol += trade.amount_sol
            sold_tokens += trade.amount_tokens or 0.0

    remaining_tokens = max(bought_tokens - sold_tokens, 0.0)
    avg_cost = total_buy_sol / bought_tokens if bought_tokens > 0 else 0.0
    current_value = remaining_tokens * (current_price_sol or 0.0)

    realized = total_sell_sol - sold_tokens * avg_cost
    unrealized = current_value - remaining_tokens * avg_cost
    total = realized + unrealized

    return {
        "total_buy_sol": total_buy_sol,
        "total_sell_sol": total_sell_sol,
        "remaining_tokens": remaining_tokens,
        "current_value_sol": current_value,
        "realized_pnl_sol": realized,
        "unrealized_pnl_sol": unrealized,
        "total_pnl_sol": total,
        "roi_percent": (total / total_buy_sol) * 100 if total_buy_sol > 0 else 0.0,
    }
