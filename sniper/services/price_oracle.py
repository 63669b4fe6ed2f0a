"""Token price lookups from DexScreener.

Prices are quoted in SOL (the pair's native quote) so they compare directly
with trade settlement prices. USD figures are carried for display.
"""

import asyncio
import logging
from dataclasses import dataclass

import aiohttp

from sniper.config import settings
from sniper.errors import OracleUnavailable
from sniper.utils.constants import WSOL_MINT

logger = logging.getLogger(__name__)


@dataclass
class TokenPrice:
    token_address: str
    price_sol: float
    price_usd: float | None = None
    price_change_24h: float = 0.0
    liquidity_usd: float = 0.0
    pair_address: str | None = None

    @property
    def sol_usd(self) -> float | None:
        """Implied SOL/USD rate, when both quotes are present."""
        if self.price_usd is None or self.price_sol <= 0:
            return None
        return self.price_usd / self.price_sol


def _to_float(value) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def select_best_pair(pairs: list[dict]) -> dict | None:
    """Pick the most liquid Solana pair quoted in wrapped SOL."""
    candidates = [
        p for p in pairs
        if p.get("chainId") == "solana"
        and (p.get("quoteToken") or {}).get("address") == WSOL_MINT
        and (_to_float(p.get("priceNative")) or 0) > 0
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda p: _to_float((p.get("liquidity") or {}).get("usd")) or 0.0)


class DexScreenerOracle:
    """Async DexScreener client returning SOL-denominated token prices."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        self.base_url = (base_url or settings.dexscreener_api_url).rstrip("/")
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

    async def get_token_price(self, token_address: str) -> TokenPrice:
        """Best available price for a token. Raises OracleUnavailable."""
        session = self._ensure_session()
        try:
            async with session.get(f"{self.base_url}/tokens/{token_address}") as resp:
                if resp.status != 200:
                    raise OracleUnavailable(
                        f"DexScreener returned {resp.status} for {token_address}"
                    )
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise OracleUnavailable(f"DexScreener request failed for {token_address}: {e}") from e

        pair = select_best_pair((data or {}).get("pairs") or [])
        if pair is None:
            raise OracleUnavailable(f"No SOL-quoted pair for {token_address}")

        return TokenPrice(
            token_address=token_address,
            price_sol=float(pair["priceNative"]),
            price_usd=_to_float(pair.get("priceUsd")),
            price_change_24h=_to_float((pair.get("priceChange") or {}).get("h24")) or 0.0,
            liquidity_usd=_to_float((pair.get("liquidity") or {}).get("usd")) or 0.0,
            pair_address=pair.get("pairAddress"),
        )

    async def close(self):
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
