"""Position lifecycle: open on a confirmed BUY, live P/L, close through a SELL.

A position moves OPEN -> CLOSED exactly once. Before selling, a close
claims the row in the store (closing_started_at); any other close, in this
process or another, sees the claim and backs off without selling. The
final transition re-checks the row is still OPEN.
"""

import logging
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_
from sqlmodel import Session, select

from sniper.config import settings
from sniper.database import engine
from sniper.errors import EngineError, NotFound, OracleUnavailable, ValidationError
from sniper.models.position import CloseReason, Position, PositionStatus
from sniper.models.user import User
from sniper.schemas.position import PositionCreate, PositionLevelsUpdate
from sniper.schemas.trade import TradeIntent

logger = logging.getLogger(__name__)


def calculate_pnl(entry_price: float, current_price: float, amount_sol: float) -> tuple[float, float]:
    """(pnl_percent, pnl_sol) for a move from entry_price to current_price."""
    if entry_price <= 0:
        raise ValidationError(f"Entry price must be positive, got {entry_price}")
    pnl_percent = (current_price - entry_price) / entry_price * 100
    return pnl_percent, amount_sol * pnl_percent / 100


# ---------------------------------------------------------------------------
# Store operations
# ---------------------------------------------------------------------------

def create_position(data: PositionCreate) -> Position:
    """Record a new OPEN position for a confirmed entry trade."""
    with Session(engine) as session:
        if data.entry_trade_id is not None:
            existing = session.exec(
                select(Position).where(Position.entry_trade_id == data.entry_trade_id)
            ).first()
            if existing:
                raise ValidationError(f"Trade {data.entry_trade_id} already has position {existing.id}")

        position = Position(**data.model_dump())
        session.add(position)
        session.commit()
        session.refresh(position)

    logger.info(
        f"Opened position {position.id}: {position.amount} of {position.token_address} "
        f"at {position.entry_price} SOL (TP {position.take_profit_percent}%, "
        f"SL {position.stop_loss_percent}%)"
    )
    return position


def get_position(position_id: int, user_id: int) -> Position:
    with Session(engine) as session:
        position = session.exec(
            select(Position).where(Position.id == position_id, Position.user_id == user_id)
        ).first()
    if position is None:
        raise NotFound(f"Position {position_id} not found")
    return position


def get_open_positions(user_id: int) -> list[Position]:
    with Session(engine) as session:
        return list(session.exec(
            select(Position)
            .where(Position.user_id == user_id, Position.status == PositionStatus.OPEN.value)
            .order_by(Position.created_at.desc(), Position.id.desc())
        ).all())


def get_positions_with_triggers(user_id: int | None = None) -> list[Position]:
    """OPEN positions with a take-profit or stop-loss level set."""
    query = select(Position).where(
        Position.status == PositionStatus.OPEN.value,
        or_(Position.take_profit_percent != None, Position.stop_loss_percent != None),  # noqa: E711
    )
    if user_id is not None:
        query = query.where(Position.user_id == user_id)
    with Session(engine) as session:
        return list(session.exec(query.order_by(Position.id)).all())


def update_position_levels(
    position_id: int,
    user_id: int,
    take_profit_percent: float | None = None,
    stop_loss_percent: float | None = None,
) -> Position:
    """Replace both exit levels of an OPEN position. None disables a level."""
    try:
        levels = PositionLevelsUpdate(
            take_profit_percent=take_profit_percent,
            stop_loss_percent=stop_loss_percent,
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid exit levels: {e}") from e

    with Session(engine) as session:
        position = session.exec(
            select(Position)
            .where(
                Position.id == position_id,
                Position.user_id == user_id,
                Position.status == PositionStatus.OPEN.value,
            )
            .with_for_update()
        ).first()
        if position is None:
            raise NotFound(f"Position {position_id} not found or already closed")

        position.take_profit_percent = levels.take_profit_percent
        position.stop_loss_percent = levels.stop_loss_percent
        position.updated_at = datetime.now(timezone.utc)
        session.add(position)
        session.commit()
        session.refresh(position)
    return position


def _claim_is_live(started_at: datetime | None, now: datetime) -> bool:
    if started_at is None:
        return False
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    return now - started_at < timedelta(seconds=settings.close_claim_timeout_seconds)


def claim_for_close(position_id: int, user_id: int) -> Position | None:
    """Mark an OPEN position as closing. None if another close holds a live claim.

    Raises NotFound if the position is missing, foreign or no longer OPEN.
    """
    now = datetime.now(timezone.utc)
    with Session(engine) as session:
        position = session.exec(
            select(Position)
            .where(
                Position.id == position_id,
                Position.user_id == user_id,
                Position.status == PositionStatus.OPEN.value,
            )
            .with_for_update()
        ).first()
        if position is None:
            raise NotFound(f"Position {position_id} not found or already closed")
        if _claim_is_live(position.closing_started_at, now):
            return None

        if position.closing_started_at is not None:
            logger.warning(
                f"Position {position_id}: taking over close claim from {position.closing_started_at}"
            )
        position.closing_started_at = now
        session.add(position)
        session.commit()
        session.refresh(position)
    return position


def release_close_claim(position_id: int) -> None:
    """Drop the close claim of a position whose exit did not happen."""
    with Session(engine) as session:
        position = session.exec(
            select(Position)
            .where(Position.id == position_id, Position.status == PositionStatus.OPEN.value)
            .with_for_update()
        ).first()
        if position is None:
            return
        position.closing_started_at = None
        session.add(position)
        session.commit()


def _mark_closed(
    position_id: int,
    exit_price: float,
    pnl_percent: float,
    pnl_sol: float,
    reason: CloseReason,
    exit_trade_id: int | None,
) -> Position | None:
    """OPEN -> CLOSED with every exit field set together. None if no longer OPEN."""
    now = datetime.now(timezone.utc)
    with Session(engine) as session:
        position = session.exec(
            select(Position)
            .where(Position.id == position_id, Position.status == PositionStatus.OPEN.value)
            .with_for_update()
        ).first()
        if position is None:
            return None

        position.status = PositionStatus.CLOSED.value
        position.exit_price = exit_price
        position.pnl_percent = pnl_percent
        position.pnl_sol = pnl_sol
        position.close_reason = reason.value
        position.exit_trade_id = exit_trade_id
        position.exit_date = now
        position.closing_started_at = None
        position.updated_at = now
        session.add(position)

        user = session.get(User, position.user_id)
        if user is not None:
            user.total_profit_sol += pnl_sol
            session.add(user)

        session.commit()
        session.refresh(position)
    return position


# ---------------------------------------------------------------------------
# Lifecycle manager
# ---------------------------------------------------------------------------

class PositionManager:
    """Closes positions through the trade executor and reports live P/L.

    Public methods return {"success": ..., ...} dicts and never raise.
    """

    def __init__(self, executor, oracle):
        self.executor = executor
        self.oracle = oracle

    def open_position(self, data: PositionCreate | dict) -> dict:
        try:
            if isinstance(data, dict):
                data = PositionCreate.model_validate(data)
            position = create_position(data)
        except PydanticValidationError as e:
            return {"success": False, "error": f"Invalid position: {e}"}
        except EngineError as e:
            return {"success": False, "error": str(e)}
        return {"success": True, "position": position}

    def update_levels(
        self,
        position_id: int,
        user_id: int,
        take_profit_percent: float | None = None,
        stop_loss_percent: float | None = None,
    ) -> dict:
        try:
            position = update_position_levels(
                position_id, user_id, take_profit_percent, stop_loss_percent
            )
        except EngineError as e:
            return {"success": False, "error": str(e)}
        return {"success": True, "position": position}

    async def _current_price(self, position: Position) -> float:
        """Oracle price in SOL, or the entry price when the oracle has none."""
        try:
            return (await self.oracle.get_token_price(position.token_address)).price_sol
        except OracleUnavailable as e:
            logger.warning(f"Position {position.id}: {e}; using entry price")
            return position.entry_price

    async def close_position(
        self,
        position_id: int,
        user_id: int,
        reason: CloseReason | str = CloseReason.MANUAL,
    ) -> dict:
        """Sell the position and mark it CLOSED. A failed sell leaves it OPEN."""
        try:
            reason = CloseReason(reason)
        except ValueError:
            return {"success": False, "error": f"Unknown close reason '{reason}'"}

        try:
            position = claim_for_close(position_id, user_id)
        except NotFound as e:
            return {"success": False, "error": str(e)}
        if position is None:
            logger.info(f"Position {position_id} is already being closed; skipping")
            return {"success": False, "error": f"Position {position_id} is already being closed"}

        try:
            current_price = await self._current_price(position)
            intent = TradeIntent(
                user_id=position.user_id,
                wallet_id=position.wallet_id,
                token_address=position.token_address,
                trade_type="SELL",
                amount_sol=position.amount_sol,
                slippage_bps=settings.exit_slippage_bps,
                use_mev_protection=True,
                token_amount=position.amount or None,
            )
            result = await self.executor.execute_trade(intent)
        except Exception as e:
            logger.error(f"Position {position_id} exit could not be prepared: {e}", exc_info=True)
            release_close_claim(position_id)
            return {"success": False, "error": f"Exit trade not submitted: {e}"}

        if not result.success:
            logger.error(f"Position {position_id} exit trade failed: {result.error}")
            release_close_claim(position_id)
            return {"success": False, "error": f"Exit trade failed: {result.error}"}

        try:
            pnl_percent, pnl_sol = calculate_pnl(
                position.entry_price, current_price, position.amount_sol
            )
            closed = _mark_closed(
                position_id, current_price, pnl_percent, pnl_sol, reason, result.trade_id
            )
        except Exception as e:
            logger.critical(
                f"Position {position_id} sold in trade {result.trade_id} "
                f"({result.signature}) but could not be marked closed: {e}",
                exc_info=True,
            )
            return {"success": False, "error": f"Exit trade landed but position was not closed: {e}"}

        if closed is None:
            logger.critical(
                f"Position {position_id} sold in trade {result.trade_id} "
                f"({result.signature}) but was no longer OPEN"
            )
            return {"success": False, "error": f"Position {position_id} was closed concurrently"}

        logger.info(
            f"Closed position {position_id} ({reason.value}): "
            f"{pnl_percent:.2f}% / {pnl_sol:.6f} SOL"
        )
        return {"success": True, "position": closed, "trade": result}

    async def get_position_with_live_data(self, position_id: int, user_id: int) -> dict:
        """Position plus current price and unrealized P/L. Read-only."""
        try:
            position = get_position(position_id, user_id)
        except NotFound as e:
            return {"success": False, "error": str(e)}

        try:
            price = await self.oracle.get_token_price(position.token_address)
        except OracleUnavailable as e:
            logger.warning(f"Position {position_id}: {e}; using entry price")
            price = None

        current_price = price.price_sol if price else position.entry_price
        pnl_percent, pnl_sol = calculate_pnl(position.entry_price, current_price, position.amount_sol)
        sol_usd = price.sol_usd if price else None

        live = position.model_dump()
        live.update({
            "current_price": current_price,
            "pnl_percent": pnl_percent,
            "pnl_sol": pnl_sol,
            "pnl_usd": pnl_sol * sol_usd if sol_usd is not None else None,
            "price_change_24h": price.price_change_24h if price else 0.0,
        })
        return {"success": True, "position": live}


# ---------------------------------------------------------------------------
# History and statistics
# ---------------------------------------------------------------------------

def _outcome(pnl_percent: float | None) -> str:
    if pnl_percent is not None and pnl_percent > 0:
        return "PROFIT"
    if pnl_percent is not None and pnl_percent < 0:
        return "LOSS"
    return "BREAKEVEN"


def get_position_history(user_id: int, limit: int = 50, offset: int = 0) -> list[dict]:
    """Closed positions, most recent exit first, labelled by outcome."""
    with Session(engine) as session:
        positions = session.exec(
            select(Position)
            .where(Position.user_id == user_id, Position.status == PositionStatus.CLOSED.value)
            .order_by(Position.exit_date.desc(), Position.id.desc())
            .offset(offset)
            .limit(limit)
        ).all()
    return [{**p.model_dump(), "outcome": _outcome(p.pnl_percent)} for p in positions]


def get_position_stats(user_id: int) -> dict:
    with Session(engine) as session:
        positions = session.exec(select(Position).where(Position.user_id == user_id)).all()

    closed = [p for p in positions if p.status == PositionStatus.CLOSED.value]
    pnls = [p.pnl_percent for p in closed if p.pnl_percent is not None]
    wins = sum(1 for pnl in pnls if pnl > 0)

    return {
        "open_positions": sum(1 for p in positions if p.status == PositionStatus.OPEN.value),
        "closed_positions": len(closed),
        "winning_trades": wins,
        "losing_trades": sum(1 for pnl in pnls if pnl < 0),
        "avg_pnl_percent": sum(pnls) / len(pnls) if pnls else None,
        "total_pnl_sol": sum(p.pnl_sol or 0.0 for p in closed),
        "best_trade_percent": max(pnls) if pnls else None,
        "worst_trade_percent": min(pnls) if pnls else None,
        "win_rate": round(wins / len(closed) * 100, 2) if closed else 0.0,
    }
