"""
Ledger client: the only module that talks JSON-RPC.

Thin adapter over solana.rpc.api.Client. Every RPC failure is translated into
the prereq_client.errors taxonomy so the submission pipeline can decide
retry vs. fail without knowing about httpx or solders response types:

- transport errors, 5xx, "node is behind"          -> NetworkTransientError
- HTTP 429 / faucet limit messages                  -> RateLimited
- BlockhashNotFound / block height exceeded         -> StaleFreshnessTokenError
- insufficient funds / AccountNotFound (no balance) -> InsufficientFundsError
- AlreadyProcessed                                  -> DuplicateTransactionError
- anything else the node rejects                    -> LedgerRejectedError

The pipeline accepts any object with the same methods; tests pass an in-memory fake.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

import httpx
from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Commitment
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from prereq_client.config.settings import Settings
from prereq_client.errors import (
    DuplicateTransactionError,
    InsufficientFundsError,
    LedgerError,
    LedgerRejectedError,
    NetworkTransientError,
    RateLimited,
    StaleFreshnessTokenError,
)
from prereq_client.logging import get_logger

logger = get_logger(__name__)

_STALE_MARKERS = ("blockhashnotfound", "blockhash not found", "block height exceeded", "blockheightexceeded")
_FUNDS_MARKERS = (
    "insufficientfunds",
    "insufficient funds",
    "insufficient lamports",
    "accountnotfound",
    "no record of a prior credit",
)
_DUPLICATE_MARKERS = ("alreadyprocessed", "already been processed")
_RATE_LIMIT_MARKERS = ("code: 429", "\"code\": 429", "'code': 429", "too many requests", "rate limit", "airdrop limit")
_TRANSIENT_MARKERS = ("node is behind", "node is unhealthy", "-32005", "service unavailable")

_CONFIRMATION_NAMES = (
    (TransactionConfirmationStatus.Processed, "processed"),
    (TransactionConfirmationStatus.Confirmed, "confirmed"),
    (TransactionConfirmationStatus.Finalized, "finalized"),
)


@dataclass(frozen=True)
class BlockReference:
    """Recent blockhash plus when it was fetched (monotonic clock) for the freshness check."""

    blockhash: Hash
    last_valid_block_height: int = 0
    fetched_at: float = field(default_factory=time.monotonic)

    def age(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) - self.fetched_at


@dataclass(frozen=True)
class LedgerStatus:
    """Signature status as seen by the node. err is the on-chain error (stringified) or None."""

    confirmation_status: str | None
    slot: int | None = None
    err: str | None = None


def classify_rpc_error(message: str, **context: Any) -> LedgerError:
    """Map a node error message onto the taxonomy."""
    text = message.lower()
    if any(m in text for m in _STALE_MARKERS):
        return StaleFreshnessTokenError(message, **context)
    if any(m in text for m in _DUPLICATE_MARKERS):
        return DuplicateTransactionError(message, **context)
    if any(m in text for m in _FUNDS_MARKERS):
        return InsufficientFundsError(message, **context)
    if any(m in text for m in _RATE_LIMIT_MARKERS):
        return RateLimited(message, **context)
    if any(m in text for m in _TRANSIENT_MARKERS):
        return NetworkTransientError(message, **context)
    return LedgerRejectedError(message, **context)


def _retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("retry-after")
    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


def _from_http_error(exc: BaseException, **context: Any) -> LedgerError:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 429:
            return RateLimited("rate limited by RPC node", retry_after=_retry_after(exc.response), status=status, **context)
        if status >= 500:
            return NetworkTransientError("RPC node error", status=status, **context)
        return LedgerRejectedError("RPC request rejected", status=status, **context)
    if isinstance(exc, httpx.TransportError):
        return NetworkTransientError(f"transport error: {type(exc).__name__}", **context)
    return NetworkTransientError(str(exc) or type(exc).__name__, **context)


@contextmanager
def _translate_errors(operation: str, **context: Any) -> Iterator[None]:
    try:
        yield
    except LedgerError:
        raise
    except RPCException as e:
        err = classify_rpc_error(str(e), operation=operation, **context)
        logger.debug("ledger_rpc_error", operation=operation, error_class=type(err).__name__, error=str(e))
        raise err from e
    except SolanaRpcException as e:
        # solana-py wraps the underlying httpx error
        err = _from_http_error(e.__cause__ or e, operation=operation, **context)
        logger.debug("ledger_transport_error", operation=operation, error_class=type(err).__name__)
        raise err from e
    except httpx.HTTPError as e:
        raise _from_http_error(e, operation=operation, **context) from e


def _confirmation_name(status: Any) -> str | None:
    for member, name in _CONFIRMATION_NAMES:
        if status == member:
            return name
    return None


def _value(resp: Any, operation: str, **context: Any) -> Any:
    value = getattr(resp, "value", None)
    if value is None:
        raise classify_rpc_error(f"{operation} returned no value: {resp}", operation=operation, **context)
    return value


class SolanaLedgerClient:
    """
    JSON-RPC access for the pipeline: blockhash, send, status, faucet, balance, fee.

    One instance owns one solana.rpc.api.Client (httpx connection pool) and is
    safe to share between threads that submit independent transactions.
    """

    def __init__(self, settings: Settings | None = None, client: Any | None = None) -> None:
        self._settings = settings or Settings()
        self._commitment = Commitment(self._settings.commitment)
        self._client = client or Client(
            self._settings.rpc_url,
            commitment=self._commitment,
            timeout=self._settings.request_timeout_sec,
        )

    @property
    def rpc_url(self) -> str:
        return self._settings.rpc_url

    def get_recent_block_reference(self) -> BlockReference:
        with _translate_errors("get_latest_blockhash"):
            resp = self._client.get_latest_blockhash(self._commitment)
        value = _value(resp, "get_latest_blockhash")
        ref = BlockReference(blockhash=value.blockhash, last_valid_block_height=value.last_valid_block_height)
        logger.debug(
            "ledger_blockhash_fetched",
            blockhash=str(ref.blockhash),
            last_valid_block_height=ref.last_valid_block_height,
        )
        return ref

    def submit_transaction(self, raw: bytes) -> str:
        """Send signed wire bytes; return the transaction signature (base58). Confirmation is polled separately."""
        opts = TxOpts(
            skip_confirmation=True,
            skip_preflight=self._settings.skip_preflight,
            preflight_commitment=self._commitment,
        )
        with _translate_errors("send_raw_transaction", size=len(raw)):
            resp = self._client.send_raw_transaction(raw, opts=opts)
        return str(_value(resp, "send_raw_transaction"))

    def get_transaction_status(self, signature: str) -> LedgerStatus | None:
        """Status for one signature, or None if the node has not seen it (yet)."""
        with _translate_errors("get_signature_statuses", signature=signature):
            resp = self._client.get_signature_statuses([Signature.from_string(signature)])
        statuses = _value(resp, "get_signature_statuses", signature=signature)
        st = statuses[0] if statuses else None
        if st is None:
            return None
        err = getattr(st, "err", None)
        return LedgerStatus(
            confirmation_status=_confirmation_name(getattr(st, "confirmation_status", None)),
            slot=getattr(st, "slot", None),
            err=None if err is None else str(err),
        )

    def request_faucet_credit(self, address: Pubkey, lamports: int) -> str:
        """Ask the cluster faucet for lamports; return the airdrop transaction signature."""
        with _translate_errors("request_airdrop", address=str(address), lamports=lamports):
            resp = self._client.request_airdrop(address, lamports, self._commitment)
        return str(_value(resp, "request_airdrop", address=str(address), lamports=lamports))

    def get_balance(self, address: Pubkey) -> int:
        with _translate_errors("get_balance", address=str(address)):
            resp = self._client.get_balance(address, self._commitment)
        return int(_value(resp, "get_balance", address=str(address)))

    def get_fee_for_message(self, message: Message) -> int:
        """Fee in lamports for a compiled message; its blockhash must still be valid."""
        with _translate_errors("get_fee_for_message"):
            resp = self._client.get_fee_for_message(message, self._commitment)
        fee = getattr(resp, "value", None)
        if fee is None:
            raise StaleFreshnessTokenError("fee unavailable: blockhash expired", operation="get_fee_for_message")
        return int(fee)
