"""Swap instruction building for trade transactions.

Produces the full ordered instruction list for one trade:

1. Compute budget (limit + price) for the whole transaction
2. Swap leg from Jupiter (setup, swap, cleanup)
3. Platform fee transfer, always present
4. Jito tip, only with MEV protection and always last

No network access beyond the quote provider.
"""

import logging
from dataclasses import dataclass, field

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from sniper.config import settings
from sniper.errors import SwapUnavailable
from sniper.services.fees import FeePlan
from sniper.services.jupiter import JupiterClient, SwapLeg, SwapQuote
from sniper.utils.constants import JITO_TIP_ACCOUNTS, WSOL_MINT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SwapRequest:
    """Trade intent after the platform fee has been taken out."""
    direction: str  # "BUY" or "SELL"
    token_address: str
    net_lamports: int  # SOL side of the swap, net of platform fee
    slippage_bps: int
    sell_token_atomic: int | None = None  # Exact tokens to sell, when known


@dataclass
class BuiltTransaction:
    instructions: list[Instruction]
    quote: SwapQuote
    platform_fee_lamports: int
    tip_lamports: int = 0
    address_lookup_tables: list[str] = field(default_factory=list)


class SwapInstructionBuilder:
    """Builds ordered trade instructions around a Jupiter swap leg."""

    def __init__(
        self,
        quote_provider: JupiterClient,
        fee_wallet: str | None = None,
        tip_account: str | None = None,
    ):
        self.quote_provider = quote_provider
        self.fee_wallet = Pubkey.from_string(fee_wallet or settings.fee_collection_wallet)
        self.tip_account = tip_account if tip_account is not None else settings.jito_tip_account
        self._tip_account_index = 0

    def build_compute_budget_instructions(self, fee_plan: FeePlan) -> list[Instruction]:
        return [
            set_compute_unit_limit(fee_plan.compute_unit_limit),
            set_compute_unit_price(fee_plan.compute_unit_price),
        ]

    def build_fee_instruction(self, payer: Pubkey, lamports: int) -> Instruction:
        return transfer(
            TransferParams(from_pubkey=payer, to_pubkey=self.fee_wallet, lamports=lamports)
        )

    def build_tip_instruction(self, payer: Pubkey, lamports: int) -> Instruction:
        return transfer(
            TransferParams(
                from_pubkey=payer,
                to_pubkey=Pubkey.from_string(self._next_tip_account()),
                lamports=lamports,
            )
        )

    def _next_tip_account(self) -> str:
        """Configured tip account, else round-robin through the public ones."""
        if self.tip_account:
            return self.tip_account
        account = JITO_TIP_ACCOUNTS[self._tip_account_index]
        self._tip_account_index = (self._tip_account_index + 1) % len(JITO_TIP_ACCOUNTS)
        return account

    async def build_swap_leg(self, request: SwapRequest, payer: Pubkey) -> SwapLeg:
        """Quote and fetch the swap instructions for the requested direction."""
        if request.direction == "BUY":
            quote = await self.quote_provider.get_quote(
                WSOL_MINT, request.token_address, request.net_lamports, request.slippage_bps,
            )
        elif request.direction == "SELL":
            if request.sell_token_atomic:
                quote = await self.quote_provider.get_quote(
                    request.token_address, WSOL_MINT, request.sell_token_atomic,
                    request.slippage_bps,
                )
            else:
                quote = await self.quote_provider.get_quote(
                    request.token_address, WSOL_MINT, request.net_lamports,
                    request.slippage_bps, swap_mode="ExactOut",
                )
        else:
            raise SwapUnavailable(f"Unknown trade direction '{request.direction}'")

        return await self.quote_provider.get_swap_instructions(quote, str(payer))

    async def build(
        self,
        request: SwapRequest,
        payer: Pubkey,
        fee_plan: FeePlan,
        platform_fee_lamports: int,
    ) -> BuiltTransaction:
        """Build the full ordered instruction list for one trade."""
        try:
            leg = await self.build_swap_leg(request, payer)
        except SwapUnavailable:
            raise
        except Exception as e:
            raise SwapUnavailable(f"Failed to build swap for {request.token_address}: {e}") from e

        instructions = self.build_compute_budget_instructions(fee_plan)
        instructions.extend(leg.instructions)
        instructions.append(self.build_fee_instruction(payer, platform_fee_lamports))

        tip = fee_plan.tip_lamports if fee_plan.use_mev_protection else 0
        if tip > 0:
            instructions.append(self.build_tip_instruction(payer, tip))

        logger.debug(
            f"Built {request.direction} {request.token_address}: {len(instructions)} instructions, "
            f"fee={platform_fee_lamports} lamports, tip={tip} lamports"
        )
        return BuiltTransaction(
            instructions=instructions,
            quote=leg.quote,
            platform_fee_lamports=platform_fee_lamports,
            tip_lamports=tip,
            address_lookup_tables=leg.address_lookup_tables,
        )
