"""
Submission pipeline: Built -> Signed -> Submitted -> {Confirmed, Finalized, Failed}.

- submit() refuses (IncompleteSignatureError) before touching the network if
  any required signer is missing.
- A block reference older than freshness_window_sec fails as stale without a send.
- NetworkTransientError (including RateLimited from the RPC node) is retried
  with exponential backoff: retry_backoff_sec * 2**attempt, retry_attempts total.
- Stale blockhash, insufficient funds, duplicate and node rejections fail
  immediately. A duplicate on a retry means an earlier attempt landed, so the
  known signature is polled instead.
- Confirmation is polled until the configured commitment, an on-chain error,
  the deadline (Failed(Timeout): outcome unknown, the tx may still land) or
  stop_event (local waiting stops; status stays SUBMITTED).
- request_airdrop() follows the same split, but a faucet RateLimited is never
  retried in-loop: it opens a per-address cooldown and every request for that
  address inside the cooldown fails RateLimited without an RPC call.
"""

from __future__ import annotations

import enum
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from solders.pubkey import Pubkey

from prereq_client.chain.ledger_client import BlockReference, LedgerStatus
from prereq_client.chain.transaction import Transaction, serialize
from prereq_client.config.settings import Settings
from prereq_client.errors import (
    DuplicateTransactionError,
    LedgerError,
    LedgerRejectedError,
    NetworkTransientError,
    RateLimited,
    StaleFreshnessTokenError,
    Timeout,
)
from prereq_client.logging import get_logger

logger = get_logger(__name__)

_COMMITMENT_RANK = {"processed": 0, "confirmed": 1, "finalized": 2}


class ConfirmationStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FINALIZED = "finalized"
    FAILED = "failed"


@dataclass(frozen=True)
class Confirmation:
    signature: str | None
    status: ConfirmationStatus
    error: LedgerError | None = None
    slot: int | None = None

    @property
    def ok(self) -> bool:
        return self.status in (ConfirmationStatus.CONFIRMED, ConfirmationStatus.FINALIZED)

    @property
    def timed_out(self) -> bool:
        return isinstance(self.error, Timeout)

    def raise_for_status(self) -> "Confirmation":
        """Raise the carried error if the transaction failed; otherwise return self."""
        if self.error is not None:
            raise self.error
        return self

    @classmethod
    def failed(cls, error: LedgerError, signature: str | None = None) -> "Confirmation":
        return cls(signature=signature, status=ConfirmationStatus.FAILED, error=error)


class SubmissionPipeline:
    """
    Send signed transactions and faucet requests through a ledger client and wait for confirmation.

    ledger is a SolanaLedgerClient or any object with get_recent_block_reference,
    submit_transaction, get_transaction_status and request_faucet_credit.
    """

    def __init__(
        self,
        ledger: Any,
        settings: Settings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ledger = ledger
        self._settings = settings or Settings()
        self._sleep = sleep
        self._clock = clock
        self._faucet_cooldown_until: dict[str, float] = {}
        self._faucet_lock = threading.Lock()

    @property
    def ledger(self) -> Any:
        return self._ledger

    # --- transactions ---

    def fresh_block_reference(self) -> BlockReference:
        """Latest blockhash, with the same transient retry policy as sends."""
        return self._with_retry("blockhash_fetch", self._ledger.get_recent_block_reference)

    def submit(
        self,
        transaction: Transaction,
        *,
        timeout: float | None = None,
        stop_event: threading.Event | None = None,
    ) -> Confirmation:
        raw = serialize(transaction)  # IncompleteSignatureError before any network I/O
        signature = transaction.signature

        age = self._clock() - transaction.block_reference.fetched_at
        if age > self._settings.freshness_window_sec:
            logger.warning(
                "tx_stale_blockhash",
                signature=signature,
                blockhash=str(transaction.blockhash),
                age_sec=round(age, 1),
                window_sec=self._settings.freshness_window_sec,
            )
            return Confirmation.failed(
                StaleFreshnessTokenError(
                    "blockhash older than validity window",
                    signature=signature,
                    age_sec=round(age, 1),
                ),
                signature,
            )

        attempts = 0

        def send() -> str:
            nonlocal attempts
            attempts += 1
            return self._ledger.submit_transaction(raw)

        try:
            sent = self._with_retry("tx_send", send, signature=signature)
        except DuplicateTransactionError as e:
            if attempts <= 1:
                logger.error("tx_rejected", signature=signature, error_class=type(e).__name__, error=str(e))
                return Confirmation.failed(e, signature)
            logger.info("tx_already_processed", signature=signature)
            sent = signature
        except LedgerError as e:
            logger.error("tx_rejected", signature=signature, error_class=type(e).__name__, error=str(e))
            return Confirmation.failed(e, signature)

        signature = sent or signature
        logger.info("tx_sent", signature=signature, instruction_count=len(transaction.instructions))
        return self.wait_for_confirmation(signature, timeout=timeout, stop_event=stop_event)

    def wait_for_confirmation(
        self,
        signature: str,
        *,
        timeout: float | None = None,
        stop_event: threading.Event | None = None,
    ) -> Confirmation:
        """Poll the signature until the configured commitment, an on-chain error, timeout or stop_event."""
        timeout = self._settings.confirm_timeout_sec if timeout is None else timeout
        interval = self._settings.confirm_poll_interval_sec
        target = _COMMITMENT_RANK[self._settings.commitment]
        start = self._clock()
        deadline = start + timeout
        last: LedgerStatus | None = None

        while True:
            if stop_event is not None and stop_event.is_set():
                logger.info("tx_confirm_wait_cancelled", signature=signature)
                return Confirmation(signature, ConfirmationStatus.SUBMITTED, slot=last.slot if last else None)
            try:
                st = self._ledger.get_transaction_status(signature)
            except NetworkTransientError as e:
                logger.warning("tx_confirm_poll_error", signature=signature, error=str(e))
                st = None
            except LedgerError as e:
                logger.error("tx_confirm_poll_failed", signature=signature, error=str(e))
                return Confirmation.failed(e, signature)

            if st is not None:
                last = st
                if st.err is not None:
                    logger.error("tx_failed_on_chain", signature=signature, err=st.err, slot=st.slot)
                    return Confirmation.failed(
                        LedgerRejectedError("transaction failed on chain", signature=signature, err=st.err),
                        signature,
                    )
                rank = _COMMITMENT_RANK.get(st.confirmation_status or "", -1)
                if rank >= target:
                    status = ConfirmationStatus.FINALIZED if rank == 2 else ConfirmationStatus.CONFIRMED
                    logger.info(
                        "tx_confirmed",
                        signature=signature,
                        confirmation_status=st.confirmation_status,
                        slot=st.slot,
                        elapsed_sec=round(self._clock() - start, 2),
                    )
                    return Confirmation(signature, status, slot=st.slot)

            now = self._clock()
            if now >= deadline:
                break
            delay = min(interval, max(0.0, deadline - now))
            if stop_event is not None:
                stop_event.wait(delay)
            else:
                self._sleep(delay)

        logger.warning(
            "tx_confirm_timeout",
            signature=signature,
            last_status=last.confirmation_status if last else None,
            timeout_sec=timeout,
        )
        return Confirmation.failed(
            Timeout("confirmation not observed before deadline", signature=signature, timeout_sec=timeout),
            signature,
        )

    # --- faucet ---

    def request_airdrop(self, address: Pubkey, lamports: int, *, timeout: float | None = None) -> Confirmation:
        key = str(address)
        now = self._clock()
        with self._faucet_lock:
            until = self._faucet_cooldown_until.get(key)
            if until is not None and now < until:
                remaining = round(until - now, 1)
                logger.warning("faucet_cooldown_active", address=key, remaining_sec=remaining)
                return Confirmation.failed(
                    RateLimited(
                        "faucet cooldown active",
                        retry_after=remaining,
                        address=key,
                        lamports=lamports,
                    )
                )

        try:
            signature = self._with_retry(
                "faucet_request",
                lambda: self._ledger.request_faucet_credit(address, lamports),
                retry_rate_limited=False,
                address=key,
                lamports=lamports,
            )
        except RateLimited as e:
            cooldown = e.retry_after if e.retry_after is not None else self._settings.faucet_cooldown_sec
            with self._faucet_lock:
                self._faucet_cooldown_until[key] = self._clock() + cooldown
            logger.warning("faucet_rate_limited", address=key, lamports=lamports, cooldown_sec=cooldown)
            return Confirmation.failed(e)
        except LedgerError as e:
            logger.error("faucet_request_failed", address=key, lamports=lamports, error=str(e))
            return Confirmation.failed(e)

        logger.info("faucet_credit_requested", address=key, lamports=lamports, signature=signature)
        return self.wait_for_confirmation(signature, timeout=timeout)

    # --- retry ---

    def _with_retry(
        self,
        event: str,
        call: Callable[[], Any],
        *,
        retry_rate_limited: bool = True,
        **context: Any,
    ) -> Any:
        attempts = self._settings.retry_attempts
        for attempt in range(attempts):
            try:
                return call()
            except NetworkTransientError as e:
                if isinstance(e, RateLimited) and not retry_rate_limited:
                    raise
                if attempt == attempts - 1:
                    logger.error(f"{event}_retries_exhausted", attempts=attempts, error=str(e), **context)
                    raise
                backoff = self._backoff(attempt)
                if isinstance(e, RateLimited) and e.retry_after:
                    backoff = max(backoff, e.retry_after)
            logger.warning(f"{event}_retry", attempt=attempt + 1, backoff_sec=round(backoff, 2), **context)
            self._sleep(backoff)
        raise AssertionError("unreachable")

    def _backoff(self, attempt: int) -> float:
        return self._settings.retry_backoff_sec * (2**attempt)

    def __repr__(self) -> str:
        return f"SubmissionPipeline(commitment={self._settings.commitment!r})"

