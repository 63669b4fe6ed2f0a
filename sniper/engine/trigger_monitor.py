"""Take-profit / stop-loss monitor.

APScheduler runs check_position_triggers on a fixed interval. Each sweep
prices every OPEN position that has a level set and closes the ones that
crossed it. One position failing never stops the sweep.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from sniper.config import settings
from sniper.errors import OracleUnavailable
from sniper.models.position import CloseReason
from sniper.services.position_manager import (
    PositionManager,
    calculate_pnl,
    get_positions_with_triggers,
)

logger = logging.getLogger(__name__)

JOB_ID = "position_triggers"


def evaluate_trigger(
    pnl_percent: float,
    take_profit_percent: float | None,
    stop_loss_percent: float | None,
) -> CloseReason | None:
    """Close reason for a P/L, or None. Take-profit is checked first."""
    if take_profit_percent is not None and pnl_percent >= take_profit_percent:
        return CloseReason.TAKE_PROFIT
    if stop_loss_percent is not None and pnl_percent <= -abs(stop_loss_percent):
        return CloseReason.STOP_LOSS
    return None


class TriggerMonitor:
    """Owns the recurring sweep job. start() and stop() are idempotent."""

    def __init__(self, manager: PositionManager, oracle, interval_seconds: int | None = None):
        self.manager = manager
        self.oracle = oracle
        self.interval_seconds = interval_seconds or settings.monitor_interval_seconds
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self):
        """Schedule the sweep. Must be called with an event loop running."""
        if self.running:
            return
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.check_position_triggers,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            name="Position triggers",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.interval_seconds,
        )
        self._scheduler.start()
        logger.info(f"Trigger monitor started (every {self.interval_seconds}s)")

    def stop(self):
        if not self.running:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Trigger monitor stopped")

    def status(self) -> dict:
        job = self._scheduler.get_job(JOB_ID) if self.running else None
        return {
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "next_run": str(job.next_run_time) if job and job.next_run_time else None,
        }

    async def check_position_triggers(self, user_id: int | None = None) -> dict:
        """One sweep over OPEN positions with levels set, optionally for one user."""
        try:
            positions = get_positions_with_triggers(user_id)
        except Exception as e:
            logger.error(f"Trigger sweep could not load positions: {e}", exc_info=True)
            return {"success": False, "error": str(e), "triggered": [], "checked": 0}

        triggered = []
        for position in positions:
            try:
                price = await self.oracle.get_token_price(position.token_address)
            except OracleUnavailable as e:
                logger.debug(f"Position {position.id}: no price this sweep ({e})")
                continue

            try:
                pnl_percent, _ = calculate_pnl(
                    position.entry_price, price.price_sol, position.amount_sol
                )
                reason = evaluate_trigger(
                    pnl_percent, position.take_profit_percent, position.stop_loss_percent
                )
                if reason is None:
                    continue

                logger.info(
                    f"Position {position.id} hit {reason.value} at {pnl_percent:.2f}% "
                    f"({position.token_address})"
                )
                result = await self.manager.close_position(position.id, position.user_id, reason)
                if not result["success"]:
                    logger.error(f"Position {position.id} {reason.value} close failed: {result['error']}")
                    continue

                triggered.append({
                    "position_id": position.id,
                    "reason": reason.value,
                    "pnl_percent": pnl_percent,
                })
            except Exception as e:
                logger.error(f"Position {position.id} trigger check failed: {e}", exc_info=True)

        if triggered:
            logger.info(f"Trigger sweep closed {len(triggered)} of {len(positions)} positions")
        return {"success": True, "triggered": triggered, "checked": len(positions)}
