"""Jupiter aggregator client for swap quotes and swap instructions.

Wraps the Jupiter v6 HTTP API. Returns raw solders instructions so the
caller can bundle them with its own fee and tip instructions.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass, field

import aiohttp
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from sniper.config import settings
from sniper.errors import SwapUnavailable

logger = logging.getLogger(__name__)


@dataclass
class SwapQuote:
    input_mint: str
    output_mint: str
    in_amount: int  # Atomic units of input_mint
    out_amount: int  # Atomic units of output_mint
    slippage_bps: int
    swap_mode: str = "ExactIn"
    raw: dict = field(default_factory=dict, repr=False)


@dataclass
class SwapLeg:
    """Everything needed to place the swap inside a larger transaction."""
    quote: SwapQuote
    instructions: list[Instruction]
    address_lookup_tables: list[str] = field(default_factory=list)


def parse_instruction(payload: dict) -> Instruction:
    """Decode a Jupiter JSON instruction into a solders Instruction."""
    try:
        accounts = [
            AccountMeta(
                pubkey=Pubkey.from_string(acc["pubkey"]),
                is_signer=bool(acc["isSigner"]),
                is_writable=bool(acc["isWritable"]),
            )
            for acc in payload.get("accounts", [])
        ]
        return Instruction(
            program_id=Pubkey.from_string(payload["programId"]),
            data=base64.b64decode(payload.get("data", "")),
            accounts=accounts,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise SwapUnavailable(f"Malformed instruction from Jupiter: {e}") from e


class JupiterClient:
    """Async client for Jupiter quote and swap-instructions endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.base_url = (base_url or settings.jupiter_api_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self._session = session
        self._owns_session = session is None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        swap_mode: str = "ExactIn",
    ) -> SwapQuote:
        """Fetch the best route for a swap.

        Args:
            input_mint: Mint being spent.
            output_mint: Mint being received.
            amount: Atomic units; of input_mint for ExactIn, of output_mint for ExactOut.
            slippage_bps: Maximum slippage in basis points.
            swap_mode: "ExactIn" or "ExactOut".
        """
        if amount <= 0:
            raise SwapUnavailable(f"Swap amount must be positive, got {amount}")

        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(slippage_bps),
            "swapMode": swap_mode,
        }
        session = self._ensure_session()
        try:
            async with session.get(f"{self.base_url}/quote", params=params) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise SwapUnavailable(f"Jupiter quote failed: {resp.status} - {text[:200]}")
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SwapUnavailable(f"Jupiter quote request failed: {e}") from e

        if not data or "outAmount" not in data:
            raise SwapUnavailable(f"No route from {input_mint} to {output_mint}")

        quote = SwapQuote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=int(data.get("inAmount", amount)),
            out_amount=int(data["outAmount"]),
            slippage_bps=slippage_bps,
            swap_mode=swap_mode,
            raw=data,
        )
        logger.debug(
            f"Quote {swap_mode}: {quote.in_amount} {input_mint[:6]}… -> "
            f"{quote.out_amount} {output_mint[:6]}…"
        )
        return quote

    async def get_swap_instructions(self, quote: SwapQuote, user_public_key: str) -> SwapLeg:
        """Turn a quote into setup + swap + cleanup instructions for the user."""
        payload = {
            "quoteResponse": quote.raw,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
        }
        session = self._ensure_session()
        try:
            async with session.post(f"{self.base_url}/swap-instructions", json=payload) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise SwapUnavailable(
                        f"Jupiter swap instructions failed: {resp.status} - {text[:200]}"
                    )
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SwapUnavailable(f"Jupiter swap instructions request failed: {e}") from e

        if data.get("error"):
            raise SwapUnavailable(f"Jupiter swap instructions error: {data['error']}")
        swap_ix = data.get("swapInstruction")
        if not swap_ix:
            raise SwapUnavailable("No swap instruction in Jupiter response")

        instructions = [parse_instruction(ix) for ix in data.get("setupInstructions") or []]
        instructions.append(parse_instruction(swap_ix))
        if data.get("cleanupInstruction"):
            instructions.append(parse_instruction(data["cleanupInstruction"]))

        return SwapLeg(
            quote=quote,
            instructions=instructions,
            address_lookup_tables=list(data.get("addressLookupTableAddresses") or []),
        )

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
