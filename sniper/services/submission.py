"""Transaction submission pipeline: sign, send, confirm, retry.

Either a confirmed signature is returned or SubmissionFailure is raised;
nothing in between is reported as success.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.transaction import VersionedTransaction
from tenacity import AsyncRetrying, before_sleep_log, stop_after_attempt, wait_incrementing

from sniper.config import settings
from sniper.errors import SubmissionFailure, ValidationError
from sniper.services.solana_rpc import RecencyAnchor, SolanaRpc, is_blockhash_error

logger = logging.getLogger(__name__)


@dataclass
class SubmitOptions:
    skip_preflight: bool = False
    use_private_rpc: bool = False
    max_retries: int = field(default_factory=lambda: settings.submit_max_retries)
    backoff_seconds: float = field(default_factory=lambda: settings.submit_backoff_seconds)


class SubmissionPipeline:
    """Signs and submits transactions, retrying with linear backoff.

    max_retries is the total number of send attempts. After attempt n fails
    the pipeline waits n × backoff_seconds before the next one.
    """

    def __init__(self, public_rpc: SolanaRpc, private_rpc: SolanaRpc | None = None, sleep=None):
        self.public_rpc = public_rpc
        self.private_rpc = private_rpc
        self._sleep = sleep or asyncio.sleep

    def choose_endpoint(self, use_private_rpc: bool) -> SolanaRpc:
        """Private endpoint only when requested and configured."""
        if use_private_rpc and self.private_rpc is not None:
            return self.private_rpc
        if use_private_rpc:
            logger.warning("Private RPC requested but not configured; using public endpoint")
        return self.public_rpc

    @staticmethod
    def sign(
        instructions: list[Instruction],
        signer: Keypair,
        anchor: RecencyAnchor,
        lookup_tables: list | None = None,
    ) -> bytes:
        """Compile a v0 message paid by the signer and return the signed bytes."""
        message = MessageV0.try_compile(
            payer=signer.pubkey(),
            instructions=instructions,
            address_lookup_table_accounts=lookup_tables or [],
            recent_blockhash=anchor.blockhash,
        )
        return bytes(VersionedTransaction(message, [signer]))

    async def submit(
        self,
        instructions: list[Instruction],
        signer: Keypair,
        lookup_table_addresses: list[str] | None = None,
        options: SubmitOptions | None = None,
    ) -> str:
        """Submit and confirm a transaction. Returns the confirmed signature."""
        options = options or SubmitOptions()
        if options.max_retries < 1:
            raise ValidationError(f"max_retries must be at least 1, got {options.max_retries}")

        rpc = self.choose_endpoint(options.use_private_rpc)

        try:
            lookup_tables = (
                await rpc.get_lookup_tables(lookup_table_addresses)
                if lookup_table_addresses else []
            )
            anchor = await rpc.get_recency_anchor()
            raw = self.sign(instructions, signer, anchor, lookup_tables)
        except Exception as e:
            raise SubmissionFailure(f"Could not prepare transaction: {e}", attempts=0) from e

        state = {"anchor": anchor, "raw": raw, "refresh": False}

        async def send_and_confirm() -> str:
            if state["refresh"]:
                state["anchor"] = await rpc.get_recency_anchor()
                state["raw"] = self.sign(instructions, signer, state["anchor"], lookup_tables)
                state["refresh"] = False
                logger.info("Re-signed transaction with a fresh blockhash")
            try:
                signature = await rpc.send_raw_transaction(
                    state["raw"], skip_preflight=options.skip_preflight
                )
                await rpc.confirm_transaction(signature, state["anchor"])
            except Exception as e:
                # An expired blockhash can never land, so re-signing cannot double-spend
                state["refresh"] = is_blockhash_error(e)
                raise
            return signature

        retrying = AsyncRetrying(
            stop=stop_after_attempt(options.max_retries),
            wait=wait_incrementing(start=options.backoff_seconds, increment=options.backoff_seconds),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            signature = await retrying(send_and_confirm)
        except Exception as e:
            attempts = retrying.statistics.get("attempt_number", options.max_retries)
            logger.error(f"Transaction failed after {attempts} attempts: {e}")
            raise SubmissionFailure(
                f"Transaction failed after {attempts} attempts: {e}", attempts=attempts
            ) from e

        logger.info(
            f"Transaction confirmed: {signature} (attempt {retrying.statistics['attempt_number']})"
        )
        return signature
