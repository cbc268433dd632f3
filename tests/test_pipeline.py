"""
Tests for the submission pipeline (chain.pipeline): retries, freshness,
confirmation polling and the faucet cooldown.

All timing runs on FakeClock, so backoff and polling delays are asserted
from clock.sleeps without real waiting.
"""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest
from solders.pubkey import Pubkey

from prereq_client.chain.ledger_client import BlockReference, LedgerStatus
from prereq_client.chain.pipeline import Confirmation, ConfirmationStatus, SubmissionPipeline
from prereq_client.chain.transaction import build, sign, transfer_instruction
from prereq_client.errors import (
    DuplicateTransactionError,
    IncompleteSignatureError,
    InsufficientFundsError,
    LedgerRejectedError,
    NetworkTransientError,
    RateLimited,
    StaleFreshnessTokenError,
    Timeout,
)

RECIPIENT = Pubkey.from_string("9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka")


def _signed_transfer(pipeline, payer, lamports=1_000):
    ref = pipeline.fresh_block_reference()
    return sign(build([transfer_instruction(payer.pubkey(), RECIPIENT, lamports)], payer.pubkey(), ref), [payer])


# --- happy path ---


def test_submit_confirmed(pipeline, ledger, payer):
    """One send, one poll, Confirmed with the fee payer signature."""
    tx = _signed_transfer(pipeline, payer)
    conf = pipeline.submit(tx)
    assert conf.status is ConfirmationStatus.CONFIRMED
    assert conf.ok
    assert conf.signature == tx.signature
    assert conf.slot == 42
    assert len(ledger.sent) == 1
    assert conf.raise_for_status() is conf


def test_submit_finalized(pipeline, ledger, payer):
    ledger.statuses = [LedgerStatus("finalized", slot=50)]
    conf = pipeline.submit(_signed_transfer(pipeline, payer))
    assert conf.status is ConfirmationStatus.FINALIZED


def test_submit_polls_until_commitment(pipeline, ledger, clock, payer):
    """Unseen and processed statuses keep polling at the poll interval."""
    ledger.statuses = [None, LedgerStatus("processed", slot=40), LedgerStatus("confirmed", slot=41)]
    conf = pipeline.submit(_signed_transfer(pipeline, payer))
    assert conf.status is ConfirmationStatus.CONFIRMED
    assert ledger.status_calls == 3
    assert clock.sleeps == [1.0, 1.0]


def test_finalized_commitment_waits_past_confirmed(ledger, settings, clock, payer):
    """With commitment=finalized a confirmed status is not enough."""
    settings.commitment = "finalized"
    pipeline = SubmissionPipeline(ledger, settings, sleep=clock.sleep, clock=clock)
    ledger.statuses = [LedgerStatus("confirmed", slot=1), LedgerStatus("finalized", slot=2)]
    conf = pipeline.submit(_signed_transfer(pipeline, payer))
    assert conf.status is ConfirmationStatus.FINALIZED
    assert conf.slot == 2


def test_transient_poll_error_keeps_polling(pipeline, ledger, payer):
    ledger.statuses = [NetworkTransientError("read timeout"), LedgerStatus("confirmed", slot=3)]
    conf = pipeline.submit(_signed_transfer(pipeline, payer))
    assert conf.status is ConfirmationStatus.CONFIRMED


# --- refusals before send ---


def test_incomplete_signature_never_sends(pipeline, ledger, payer):
    """An unsigned transaction is refused without any network call."""
    tx = build([transfer_instruction(payer.pubkey(), RECIPIENT, 1)], payer.pubkey(), pipeline.fresh_block_reference())
    with pytest.raises(IncompleteSignatureError):
        pipeline.submit(tx)
    assert ledger.sent == []


def test_stale_block_reference_not_sent(pipeline, ledger, clock, payer):
    """A blockhash older than the freshness window fails without a send."""
    tx = _signed_transfer(pipeline, payer)
    clock.now += 61
    conf = pipeline.submit(tx)
    assert conf.status is ConfirmationStatus.FAILED
    assert isinstance(conf.error, StaleFreshnessTokenError)
    assert ledger.sent == []


# --- send failures ---


def test_node_reports_stale_no_retry(pipeline, ledger, clock, payer):
    ledger.send_errors = [StaleFreshnessTokenError("Blockhash not found")]
    conf = pipeline.submit(_signed_transfer(pipeline, payer))
    assert isinstance(conf.error, StaleFreshnessTokenError)
    assert len(ledger.sent) == 1
    assert clock.sleeps == []


def test_transient_errors_retried_with_backoff(pipeline, ledger, clock, payer):
    """Backoff doubles from retry_backoff_sec; the third attempt succeeds."""
    ledger.send_errors = [NetworkTransientError("reset"), NetworkTransientError("reset")]
    conf = pipeline.submit(_signed_transfer(pipeline, payer))
    assert conf.status is ConfirmationStatus.CONFIRMED
    assert len(ledger.sent) == 3
    assert clock.sleeps == [0.5, 1.0]


def test_retries_exhausted(pipeline, ledger, clock, payer):
    ledger.send_errors = [NetworkTransientError("reset")] * 3
    conf = pipeline.submit(_signed_transfer(pipeline, payer))
    assert conf.status is ConfirmationStatus.FAILED
    assert isinstance(conf.error, NetworkTransientError)
    assert len(ledger.sent) == 3
    assert clock.sleeps == [0.5, 1.0]
    with pytest.raises(NetworkTransientError):
        conf.raise_for_status()


def test_rpc_rate_limit_honours_retry_after(pipeline, ledger, clock, payer):
    ledger.send_errors = [RateLimited("too many requests", retry_after=2.0)]
    conf = pipeline.submit(_signed_transfer(pipeline, payer))
    assert conf.ok
    assert clock.sleeps == [2.0]


def test_insufficient_funds_not_retried(pipeline, ledger, payer):
    ledger.send_errors = [InsufficientFundsError("insufficient lamports")]
    conf = pipeline.submit(_signed_transfer(pipeline, payer))
    assert isinstance(conf.error, InsufficientFundsError)
    assert len(ledger.sent) == 1
    assert ledger.status_calls == 0


def test_duplicate_on_first_attempt_fails(pipeline, ledger, payer):
    ledger.send_errors = [DuplicateTransactionError("AlreadyProcessed")]
    conf = pipeline.submit(_signed_transfer(pipeline, payer))
    assert isinstance(conf.error, DuplicateTransactionError)
    assert ledger.status_calls == 0


def test_duplicate_after_retry_polls_known_signature(pipeline, ledger, payer):
    """A duplicate after a transient failure means the earlier send landed."""
    ledger.send_errors = [NetworkTransientError("read timeout"), DuplicateTransactionError("AlreadyProcessed")]
    tx = _signed_transfer(pipeline, payer)
    conf = pipeline.submit(tx)
    assert conf.status is ConfirmationStatus.CONFIRMED
    assert conf.signature == tx.signature
    assert len(ledger.sent) == 2


# --- confirmation outcomes ---


def test_failed_on_chain(pipeline, ledger, payer):
    ledger.statuses = [LedgerStatus("confirmed", slot=9, err="InstructionError(0, Custom(6000))")]
    conf = pipeline.submit(_signed_transfer(pipeline, payer))
    assert conf.status is ConfirmationStatus.FAILED
    assert isinstance(conf.error, LedgerRejectedError)
    assert "Custom(6000)" in str(conf.error)


def test_confirmation_timeout(pipeline, ledger, clock, payer):
    """No status before the deadline: Failed(Timeout), outcome unknown."""
    ledger.statuses = [None]
    conf = pipeline.submit(_signed_transfer(pipeline, payer), timeout=3.0)
    assert conf.status is ConfirmationStatus.FAILED
    assert isinstance(conf.error, Timeout)
    assert conf.timed_out
    assert clock.sleeps == [1.0, 1.0, 1.0]


def test_stop_event_stops_waiting(pipeline, ledger, payer):
    """A set stop_event returns Submitted without polling."""
    stop = threading.Event()
    stop.set()
    conf = pipeline.submit(_signed_transfer(pipeline, payer), stop_event=stop)
    assert conf.status is ConfirmationStatus.SUBMITTED
    assert conf.error is None
    assert ledger.status_calls == 0
    assert len(ledger.sent) == 1


def test_confirmation_failed_helper():
    conf = Confirmation.failed(Timeout("late"), "sig")
    assert not conf.ok
    assert conf.signature == "sig"


# --- blockhash ---


def test_fresh_block_reference_retries(settings, clock):
    ref = BlockReference(blockhash=MagicMock(), fetched_at=clock())
    ledger = MagicMock()
    ledger.get_recent_block_reference.side_effect = [NetworkTransientError("reset"), ref]
    pipeline = SubmissionPipeline(ledger, settings, sleep=clock.sleep, clock=clock)
    assert pipeline.fresh_block_reference() is ref
    assert clock.sleeps == [0.5]


# --- faucet ---


def test_airdrop_confirmed(pipeline, ledger, payer):
    conf = pipeline.request_airdrop(payer.pubkey(), 2_000_000_000)
    assert conf.ok
    assert ledger.faucet_calls == [(str(payer.pubkey()), 2_000_000_000)]


def test_airdrop_transient_retried(pipeline, ledger, clock, payer):
    ledger.faucet_errors = [NetworkTransientError("502")]
    conf = pipeline.request_airdrop(payer.pubkey(), 1)
    assert conf.ok
    assert len(ledger.faucet_calls) == 2
    assert clock.sleeps == [0.5]


def test_airdrop_rate_limited_opens_cooldown(pipeline, ledger, clock, payer):
    """A faucet limit is not retried; later requests inside the cooldown make no call."""
    ledger.faucet_errors = [RateLimited("airdrop limit reached")]
    first = pipeline.request_airdrop(payer.pubkey(), 1)
    assert isinstance(first.error, RateLimited)
    assert len(ledger.faucet_calls) == 1
    assert clock.sleeps == []

    clock.now += 10
    second = pipeline.request_airdrop(payer.pubkey(), 1)
    assert isinstance(second.error, RateLimited)
    assert second.error.retry_after == 20.0
    assert len(ledger.faucet_calls) == 1

    clock.now += 21
    third = pipeline.request_airdrop(payer.pubkey(), 1)
    assert third.ok
    assert len(ledger.faucet_calls) == 2


def test_airdrop_cooldown_is_per_address(pipeline, ledger, payer, other_signer):
    ledger.faucet_errors = [RateLimited("airdrop limit reached")]
    pipeline.request_airdrop(payer.pubkey(), 1)
    conf = pipeline.request_airdrop(other_signer.pubkey(), 1)
    assert conf.ok


def test_airdrop_cooldown_uses_retry_after(pipeline, ledger, clock, payer):
    ledger.faucet_errors = [RateLimited("429", retry_after=120.0)]
    pipeline.request_airdrop(payer.pubkey(), 1)
    clock.now += 31
    conf = pipeline.request_airdrop(payer.pubkey(), 1)
    assert isinstance(conf.error, RateLimited)
    assert len(ledger.faucet_calls) == 1
