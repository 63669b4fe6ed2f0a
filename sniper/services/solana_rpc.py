"""Solana RPC client wrapper for transaction submission and chain reads.

Wraps solana-py's AsyncClient. Every call carries a bounded timeout.
"""

import asyncio
import logging
from dataclasses import dataclass

import aiohttp
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import TransactionExpiredBlockheightExceededError
from solana.rpc.models import TxOpts
from solders.address_lookup_table_account import AddressLookupTable, AddressLookupTableAccount
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature

from sniper.config import settings
from sniper.services.fees import PriorityFeeStats
from sniper.utils.constants import LAMPORTS_PER_SOL

logger = logging.getLogger(__name__)

_BLOCKHASH_ERROR_MARKERS = ("blockhash not found", "block height exceeded", "blockhashnotfound")


class TransactionRejected(Exception):
    """The network accepted the transaction but it failed on-chain."""


@dataclass
class RecencyAnchor:
    blockhash: Hash
    last_valid_block_height: int


def is_blockhash_error(error: Exception) -> bool:
    """True when a failure means the transaction's blockhash is no longer usable."""
    if isinstance(error, TransactionExpiredBlockheightExceededError):
        return True
    text = str(error).lower()
    return any(marker in text for marker in _BLOCKHASH_ERROR_MARKERS)


class SolanaRpc:
    """Thin async wrapper around one Solana RPC endpoint."""

    def __init__(self, url: str, timeout: float | None = None):
        self.url = url
        self.timeout = timeout or settings.rpc_timeout_seconds
        self._client: AsyncClient | None = None
        self._decimals: dict[str, int] = {}

    def _ensure_client(self) -> AsyncClient:
        if self._client is None:
            self._client = AsyncClient(self.url, commitment=Confirmed, timeout=self.timeout)
        return self._client

    async def get_recency_anchor(self) -> RecencyAnchor:
        """Fetch the latest blockhash and the block height it stays valid until."""
        client = self._ensure_client()
        resp = await asyncio.wait_for(client.get_latest_blockhash(Confirmed), self.timeout)
        return RecencyAnchor(
            blockhash=resp.value.blockhash,
            last_valid_block_height=resp.value.last_valid_block_height,
        )

    async def send_raw_transaction(self, raw: bytes, skip_preflight: bool = False) -> str:
        """Send a signed transaction and return its signature."""
        client = self._ensure_client()
        opts = TxOpts(
            skip_preflight=skip_preflight,
            preflight_commitment=Confirmed,
            max_retries=2,
        )
        resp = await asyncio.wait_for(client.send_raw_transaction(raw, opts=opts), self.timeout)
        return str(resp.value)

    async def confirm_transaction(self, signature: str, anchor: RecencyAnchor | None = None) -> None:
        """Wait for confirmed commitment. Raises TransactionRejected on an on-chain error."""
        client = self._ensure_client()
        resp = await asyncio.wait_for(
            client.confirm_transaction(
                Signature.from_string(signature),
                Confirmed,
                last_valid_block_height=anchor.last_valid_block_height if anchor else None,
            ),
            self.timeout,
        )
        status = resp.value[0] if resp.value else None
        if status is None:
            raise TransactionRejected(f"No status for transaction {signature}")
        if status.err is not None:
            raise TransactionRejected(f"Transaction failed: {status.err}")

    async def get_lookup_tables(self, addresses: list[str]) -> list[AddressLookupTableAccount]:
        """Load address lookup tables referenced by a swap route."""
        client = self._ensure_client()
        tables = []
        for address in addresses:
            key = Pubkey.from_string(address)
            resp = await asyncio.wait_for(client.get_account_info(key), self.timeout)
            if resp.value is None:
                raise ValueError(f"Address lookup table {address} not found")
            table = AddressLookupTable.deserialize(bytes(resp.value.data))
            tables.append(AddressLookupTableAccount(key=key, addresses=list(table.addresses)))
        return tables

    async def get_token_decimals(self, mint: str) -> int:
        """Decimals of an SPL token mint (cached)."""
        if mint in self._decimals:
            return self._decimals[mint]
        client = self._ensure_client()
        resp = await asyncio.wait_for(
            client.get_token_supply(Pubkey.from_string(mint)), self.timeout
        )
        decimals = int(resp.value.decimals)
        self._decimals[mint] = decimals
        return decimals

    async def get_balance(self, public_key: str) -> float:
        """SOL balance of an account."""
        client = self._ensure_client()
        resp = await asyncio.wait_for(
            client.get_balance(Pubkey.from_string(public_key)), self.timeout
        )
        return resp.value / LAMPORTS_PER_SOL

    async def get_priority_fee_stats(self) -> PriorityFeeStats | None:
        """Summarize recent prioritization fees. Returns None when unavailable."""
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getRecentPrioritizationFees",
            "params": [],
        }
        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as session:
                async with session.post(self.url, json=payload) as resp:
                    if resp.status != 200:
                        logger.warning(f"Priority fee lookup returned {resp.status}")
                        return None
                    data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"Priority fee lookup failed: {e}")
            return None

        try:
            samples = [int(entry["prioritizationFee"]) for entry in data.get("result") or []]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Priority fee response malformed: {e}")
            return None
        return PriorityFeeStats.from_samples(samples)

    async def close(self):
        if self._client is not None:
            await self._client.close()
        self._client = None


_public_rpc: SolanaRpc | None = None
_private_rpc: SolanaRpc | None = None


def get_public_rpc() -> SolanaRpc:
    """Shared client for the public endpoint."""
    global _public_rpc
    if _public_rpc is None:
        _public_rpc = SolanaRpc(settings.solana_rpc_url)
    return _public_rpc


def get_private_rpc() -> SolanaRpc | None:
    """Shared client for the private endpoint, or None when not configured."""
    global _private_rpc
    if not settings.private_rpc_url:
        return None
    if _private_rpc is None:
        _private_rpc = SolanaRpc(settings.private_rpc_url)
    return _private_rpc
