"""Tests for the sign/send/confirm retry loop."""

import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.system_program import TransferParams, transfer

from sniper.errors import SubmissionFailure, ValidationError
from sniper.services.solana_rpc import RecencyAnchor, TransactionRejected
from sniper.services.submission import SubmissionPipeline, SubmitOptions


def _rpc(send_side_effect=None, confirm_side_effect=None, anchors=None):
    anchors = anchors or [RecencyAnchor(Hash.default(), 100)]
    return SimpleNamespace(
        get_recency_anchor=AsyncMock(side_effect=list(anchors)),
        get_lookup_tables=AsyncMock(return_value=[]),
        send_raw_transaction=AsyncMock(side_effect=send_side_effect, return_value="sig-1"),
        confirm_transaction=AsyncMock(side_effect=confirm_side_effect, return_value=None),
    )


def _instructions(signer: Keypair):
    return [transfer(TransferParams(
        from_pubkey=signer.pubkey(), to_pubkey=Keypair().pubkey(), lamports=1_000,
    ))]


def _options(max_retries=3, backoff=1.0, **kwargs):
    return SubmitOptions(max_retries=max_retries, backoff_seconds=backoff, **kwargs)


# ---------------------------------------------------------------------------
# 1. Retry loop
# ---------------------------------------------------------------------------

class TestRetries:
    @pytest.mark.asyncio
    async def test_first_attempt_success_sends_once(self):
        rpc = _rpc()
        sleep = AsyncMock()
        signer = Keypair()
        pipeline = SubmissionPipeline(rpc, sleep=sleep)

        signature = await pipeline.submit(_instructions(signer), signer, options=_options())

        assert signature == "sig-1"
        assert rpc.send_raw_transaction.await_count == 1
        rpc.confirm_transaction.assert_awaited_once()
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exhausts_exactly_max_retries(self):
        rpc = _rpc(send_side_effect=ConnectionError("node unreachable"))
        sleep = AsyncMock()
        signer = Keypair()
        pipeline = SubmissionPipeline(rpc, sleep=sleep)

        with pytest.raises(SubmissionFailure, match="node unreachable") as exc_info:
            await pipeline.submit(_instructions(signer), signer, options=_options(max_retries=3))

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert rpc.send_raw_transaction.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self):
        rpc = _rpc(send_side_effect=[ConnectionError("timeout"), "sig-2"])
        sleep = AsyncMock()
        signer = Keypair()
        pipeline = SubmissionPipeline(rpc, sleep=sleep)

        signature = await pipeline.submit(_instructions(signer), signer, options=_options(backoff=0.5))

        assert signature == "sig-2"
        assert rpc.send_raw_transaction.await_count == 2
        sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_each_retry_logged_as_warning(self, caplog):
        rpc = _rpc(send_side_effect=[ConnectionError("reset"), ConnectionError("reset"), "sig-3"])
        signer = Keypair()
        pipeline = SubmissionPipeline(rpc, sleep=AsyncMock())

        with caplog.at_level(logging.WARNING, logger="sniper.services.submission"):
            await pipeline.submit(_instructions(signer), signer, options=_options())

        retries = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(retries) == 2

    @pytest.mark.asyncio
    async def test_confirmation_failure_is_retried(self):
        rpc = _rpc(confirm_side_effect=[TransactionRejected("custom program error"), None])
        signer = Keypair()
        pipeline = SubmissionPipeline(rpc, sleep=AsyncMock())

        assert await pipeline.submit(_instructions(signer), signer, options=_options()) == "sig-1"
        assert rpc.confirm_transaction.await_count == 2

    @pytest.mark.asyncio
    async def test_max_retries_below_one_rejected(self):
        signer = Keypair()
        pipeline = SubmissionPipeline(_rpc(), sleep=AsyncMock())
        with pytest.raises(ValidationError):
            await pipeline.submit(_instructions(signer), signer, options=_options(max_retries=0))

    @pytest.mark.asyncio
    async def test_anchor_failure_is_submission_failure(self):
        rpc = _rpc()
        rpc.get_recency_anchor = AsyncMock(side_effect=ConnectionError("rpc down"))
        signer = Keypair()
        pipeline = SubmissionPipeline(rpc, sleep=AsyncMock())

        with pytest.raises(SubmissionFailure) as exc_info:
            await pipeline.submit(_instructions(signer), signer, options=_options())
        assert exc_info.value.attempts == 0
        rpc.send_raw_transaction.assert_not_awaited()


# ---------------------------------------------------------------------------
# 2. Recency anchor refresh
# ---------------------------------------------------------------------------

class TestAnchorRefresh:
    @pytest.mark.asyncio
    async def test_anchor_kept_across_ordinary_failures(self):
        rpc = _rpc(send_side_effect=[ConnectionError("reset"), "sig-2"])
        signer = Keypair()
        pipeline = SubmissionPipeline(rpc, sleep=AsyncMock())

        await pipeline.submit(_instructions(signer), signer, options=_options())

        assert rpc.get_recency_anchor.await_count == 1
        first, second = [c.args[0] for c in rpc.send_raw_transaction.await_args_list]
        assert first == second

    @pytest.mark.asyncio
    async def test_blockhash_expiry_resigns_with_fresh_anchor(self):
        anchors = [RecencyAnchor(Hash.default(), 100), RecencyAnchor(Hash.new_unique(), 250)]
        rpc = _rpc(
            send_side_effect=[Exception("Blockhash not found"), "sig-2"],
            anchors=anchors,
        )
        signer = Keypair()
        pipeline = SubmissionPipeline(rpc, sleep=AsyncMock())

        assert await pipeline.submit(_instructions(signer), signer, options=_options()) == "sig-2"

        assert rpc.get_recency_anchor.await_count == 2
        first, second = [c.args[0] for c in rpc.send_raw_transaction.await_args_list]
        assert first != second
        assert rpc.confirm_transaction.await_args.args[1].last_valid_block_height == 250


# ---------------------------------------------------------------------------
# 3. Endpoint choice
# ---------------------------------------------------------------------------

class TestEndpointChoice:
    def test_private_only_when_requested_and_configured(self):
        public, private = _rpc(), _rpc()
        pipeline = SubmissionPipeline(public, private)
        assert pipeline.choose_endpoint(True) is private
        assert pipeline.choose_endpoint(False) is public

    def test_private_requested_but_missing_falls_back(self):
        public = _rpc()
        assert SubmissionPipeline(public, None).choose_endpoint(True) is public

    @pytest.mark.asyncio
    async def test_submit_uses_private_endpoint(self):
        public, private = _rpc(), _rpc()
        signer = Keypair()
        pipeline = SubmissionPipeline(public, private, sleep=AsyncMock())

        await pipeline.submit(_instructions(signer), signer, options=_options(use_private_rpc=True))

        private.send_raw_transaction.assert_awaited_once()
        public.send_raw_transaction.assert_not_awaited()
