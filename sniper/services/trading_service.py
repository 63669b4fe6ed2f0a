"""Trade execution: one intent in, one settled ledger row out.

Flow per trade:
1. Validate the intent and record it as PENDING
2. Load the signer, resolve the fee plan and take the platform fee off the top
3. Build the swap transaction and claim the trade for submission
4. Submit with retries, then settle the ledger row from the executed quote
5. Open a position for a successful BUY

Failures up to and including submission mark the trade FAILED and are
returned as a failed TradeResult; nothing is raised past execute_trade.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR

from pydantic import ValidationError as PydanticValidationError

from sniper.config import settings
from sniper.errors import ValidationError
from sniper.models.trade import Trade, TradeType
from sniper.schemas.position import PositionCreate
from sniper.schemas.trade import TradeIntent
from sniper.services import trade_ledger
from sniper.services.fees import (
    FeePlan,
    calculate_platform_fee,
    estimate_transaction_cost,
    get_speed_preset,
    resolve_fee_plan,
    sol_to_lamports,
)
from sniper.services.instruction_builder import BuiltTransaction, SwapInstructionBuilder, SwapRequest
from sniper.services.jupiter import JupiterClient
from sniper.services.position_manager import create_position
from sniper.services.price_oracle import DexScreenerOracle
from sniper.services.sniper_config import get_sniper_config
from sniper.services.solana_rpc import SolanaRpc, get_private_rpc, get_public_rpc
from sniper.services.submission import SubmissionPipeline, SubmitOptions
from sniper.services.wallet_service import get_wallet, get_wallet_keypair, record_balance
from sniper.utils.constants import LAMPORTS_PER_SOL, VALID_SPEEDS

logger = logging.getLogger(__name__)


@dataclass
class TradeResult:
    success: bool
    trade_id: int | None = None
    signature: str | None = None
    fee_collected: float | None = None
    fee_wallet: str | None = None
    amount_tokens: float | None = None
    price_per_token_sol: float | None = None
    position_id: int | None = None
    error: str | None = None


@dataclass
class _Submitted:
    signature: str
    built: BuiltTransaction
    fee_plan: FeePlan
    platform_fee_sol: float  # Exactly what the fee transfer moves
    net_lamports: int
    decimals: int


def _to_atomic(amount: float, decimals: int) -> int:
    scaled = Decimal(str(amount)) * (Decimal(10) ** decimals)
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


class TradeExecutor:
    """Runs trade intents through fee calculation, building and submission."""

    def __init__(
        self,
        builder: SwapInstructionBuilder,
        pipeline: SubmissionPipeline,
        rpc: SolanaRpc,
        oracle: DexScreenerOracle | None = None,
        fee_percentage: float | None = None,
        keypair_loader=None,
    ):
        self.builder = builder
        self.pipeline = pipeline
        self.rpc = rpc
        self.oracle = oracle
        self.fee_percentage = (
            fee_percentage if fee_percentage is not None else settings.transaction_fee_percentage
        )
        self._load_keypair = keypair_loader or get_wallet_keypair

    @property
    def fee_wallet(self) -> str:
        return str(self.builder.fee_wallet)

    async def execute_trade(self, intent: TradeIntent | dict) -> TradeResult:
        """Execute one BUY or SELL. Never raises."""
        if isinstance(intent, dict):
            try:
                intent = TradeIntent.model_validate(intent)
            except PydanticValidationError as e:
                return TradeResult(success=False, error=f"Invalid trade request: {e}")

        try:
            trade = trade_ledger.create_trade(intent)
        except Exception as e:
            logger.error(f"Could not record trade for user {intent.user_id}: {e}", exc_info=True)
            return TradeResult(success=False, error=str(e))

        logger.info(
            f"Trade {trade.id}: {intent.trade_type} {intent.amount_sol} SOL of "
            f"{intent.token_address} (speed={intent.transaction_speed}, "
            f"mev={intent.use_mev_protection})"
        )

        try:
            submitted = await self._submit(trade, intent)
        except Exception as e:
            logger.error(f"Trade {trade.id} failed: {e}")
            trade_ledger.mark_failed(trade.id, str(e))
            return TradeResult(success=False, trade_id=trade.id, error=str(e))

        return await self._settle(trade, intent, submitted)

    async def _submit(self, trade: Trade, intent: TradeIntent) -> _Submitted:
        signer = self._load_keypair(intent.wallet_id, intent.user_id)

        stats = await self.rpc.get_priority_fee_stats()
        fee_plan = resolve_fee_plan(
            intent.transaction_speed,
            stats,
            use_mev_protection=intent.use_mev_protection,
            compute_unit_price=intent.compute_unit_price,
            compute_unit_limit=intent.compute_unit_limit,
            tip_lamports=intent.jito_tip_lamports,
        )

        platform_fee_lamports = sol_to_lamports(
            calculate_platform_fee(intent.amount_sol, self.fee_percentage)
        )
        platform_fee_sol = platform_fee_lamports / LAMPORTS_PER_SOL
        net_lamports = sol_to_lamports(intent.amount_sol) - platform_fee_lamports
        if net_lamports <= 0:
            raise ValidationError(f"Trade amount {intent.amount_sol} SOL leaves nothing to swap")

        # Needed to settle from the quote; resolved before anything lands on-chain
        decimals = await self.rpc.get_token_decimals(intent.token_address)
        sell_token_atomic = None
        if intent.trade_type == TradeType.SELL.value and intent.token_amount:
            sell_token_atomic = _to_atomic(intent.token_amount, decimals)

        built = await self.builder.build(
            SwapRequest(
                direction=intent.trade_type,
                token_address=intent.token_address,
                net_lamports=net_lamports,
                slippage_bps=intent.slippage_bps,
                sell_token_atomic=sell_token_atomic,
            ),
            signer.pubkey(),
            fee_plan,
            platform_fee_lamports,
        )

        if not trade_ledger.claim_for_submission(trade.id):
            raise ValidationError(f"Trade {trade.id} was cancelled before submission")

        logger.info(
            f"Trade {trade.id}: fee {platform_fee_sol} SOL ({self.fee_percentage}%) -> "
            f"{self.fee_wallet}, priority {fee_plan.compute_unit_price} µlamports/CU "
            f"x {fee_plan.compute_unit_limit} CU"
        )
        signature = await self.pipeline.submit(
            built.instructions,
            signer,
            built.address_lookup_tables,
            SubmitOptions(use_private_rpc=intent.use_private_rpc),
        )
        return _Submitted(signature, built, fee_plan, platform_fee_sol, net_lamports, decimals)

    async def _settle(self, trade: Trade, intent: TradeIntent, submitted: _Submitted) -> TradeResult:
        """Record a confirmed trade. It already landed, so nothing here marks it FAILED."""
        amount_tokens, price = self._settlement_amounts(intent, submitted)

        try:
            trade = trade_ledger.mark_success(
                trade.id,
                submitted.signature,
                amount_tokens,
                price,
                transaction_fee_sol=submitted.fee_plan.cost.total_sol,
                platform_fee_sol=submitted.platform_fee_sol,
            )
        except Exception as e:
            logger.critical(
                f"Trade {trade.id} confirmed on-chain ({submitted.signature}) but could not be "
                f"recorded: {e}",
                exc_info=True,
            )
            return TradeResult(
                success=True,
                trade_id=trade.id,
                signature=submitted.signature,
                fee_collected=submitted.platform_fee_sol,
                fee_wallet=self.fee_wallet,
                error=f"Trade confirmed but not recorded: {e}",
            )

        logger.info(f"Trade {trade.id} confirmed: {submitted.signature}")

        position_id = None
        if intent.trade_type == TradeType.BUY.value:
            position_id = await self._open_position(trade, intent)

        return TradeResult(
            success=True,
            trade_id=trade.id,
            signature=submitted.signature,
            fee_collected=submitted.platform_fee_sol,
            fee_wallet=self.fee_wallet,
            amount_tokens=amount_tokens,
            price_per_token_sol=price,
            position_id=position_id,
        )

    @staticmethod
    def _settlement_amounts(intent: TradeIntent, submitted: _Submitted) -> tuple[float, float | None]:
        """Token amount and SOL price per token implied by the executed quote."""
        quote = submitted.built.quote
        scale = 10 ** submitted.decimals
        if intent.trade_type == TradeType.BUY.value:
            amount_tokens = quote.out_amount / scale
            sol_side = submitted.net_lamports / LAMPORTS_PER_SOL
        else:
            amount_tokens = quote.in_amount / scale
            sol_side = quote.out_amount / LAMPORTS_PER_SOL

        price = sol_side / amount_tokens if amount_tokens > 0 else None
        return amount_tokens, price

    async def _open_position(self, trade: Trade, intent: TradeIntent) -> int | None:
        """Open a position for a confirmed BUY. Failure here does not fail the trade."""
        try:
            entry_price = trade.price_per_token_sol
            if not entry_price and self.oracle is not None:
                entry_price = (await self.oracle.get_token_price(intent.token_address)).price_sol

            config = get_sniper_config(intent.user_id)
            if config is not None:
                take_profit = config.take_profit_percentage
                stop_loss = config.stop_loss_percentage
            else:
                take_profit = settings.default_take_profit_pct
                stop_loss = settings.default_stop_loss_pct

            position = create_position(PositionCreate(
                user_id=intent.user_id,
                wallet_id=intent.wallet_id,
                token_address=intent.token_address,
                entry_price=entry_price,
                amount=trade.amount_tokens or 0.0,
                amount_sol=intent.amount_sol,
                take_profit_percent=take_profit,
                stop_loss_percent=stop_loss,
                entry_trade_id=trade.id,
            ))
            return position.id
        except Exception as e:
            logger.error(f"Trade {trade.id} succeeded but position was not opened: {e}", exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Fee and wallet reporting
    # ------------------------------------------------------------------

    async def estimate_costs(
        self, use_mev_protection: bool = False, compute_unit_limit: int | None = None
    ) -> dict[str, dict]:
        """Speed presets and cost estimates for every tier at current network fees."""
        stats = await self.rpc.get_priority_fee_stats()
        options = {}
        for speed in VALID_SPEEDS:
            preset = get_speed_preset(speed, stats)
            cost = estimate_transaction_cost(speed, stats, use_mev_protection, compute_unit_limit)
            options[speed] = {
                "compute_unit_price": preset.compute_unit_price,
                "compute_unit_limit": compute_unit_limit or preset.compute_unit_limit,
                "tip_lamports": cost.protection_tip,
                "description": preset.description,
                "total_sol": cost.total_sol,
                "breakdown": cost.breakdown(),
            }
        return options

    async def get_fee_summary(self) -> dict:
        """Collected platform fees plus the fee wallet's current balance."""
        summary = trade_ledger.get_total_fees_collected()
        summary["fee_wallet_address"] = self.fee_wallet
        summary["fee_percentage"] = self.fee_percentage
        try:
            summary["current_fee_wallet_balance"] = await self.rpc.get_balance(self.fee_wallet)
        except Exception as e:
            logger.warning(f"Fee wallet balance unavailable: {e}")
            summary["current_fee_wallet_balance"] = None
        return summary

    async def refresh_wallet_balance(self, wallet_id: int, user_id: int) -> float:
        wallet = get_wallet(wallet_id, user_id)
        balance = await self.rpc.get_balance(wallet.public_key)
        record_balance(wallet.id, balance)
        return balance

    async def close(self):
        await self.builder.quote_provider.close()
        if self.oracle is not None:
            await self.oracle.close()
        await self.pipeline.public_rpc.close()
        if self.pipeline.private_rpc is not None:
            await self.pipeline.private_rpc.close()
        if self.rpc is not self.pipeline.public_rpc:
            await self.rpc.close()


_executor: TradeExecutor | None = None


def get_trade_executor() -> TradeExecutor:
    """Shared executor wired to the configured endpoints."""
    global _executor
    if _executor is None:
        public_rpc = get_public_rpc()
        _executor = TradeExecutor(
            builder=SwapInstructionBuilder(JupiterClient()),
            pipeline=SubmissionPipeline(public_rpc, get_private_rpc()),
            rpc=public_rpc,
            oracle=DexScreenerOracle(),
        )
    return _executor
