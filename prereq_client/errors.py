"""
Error taxonomy for key handling, PDA derivation, IDL encoding, transaction
building and ledger submission.

Every error carries a ``context`` dict (method, address, lamports, signature, ...)
so callers can log it with structlog without parsing the message.

Encoding and building errors are programmer errors and propagate immediately.
LedgerError subclasses are produced by the ledger client; the submission
pipeline retries NetworkTransientError and reports the rest in
Confirmation.error.
"""

from __future__ import annotations

from typing import Any


class PrereqClientError(Exception):
    """Base class for all prereq-client errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


# --- keys and addresses ---


class MalformedKeyError(PrereqClientError, ValueError):
    """Secret key has the wrong length or its public half does not match."""


class InvalidSeedsError(PrereqClientError, ValueError):
    """PDA seeds exceed the count or length limits or are not bytes."""


class NoValidBumpError(PrereqClientError):
    """No bump in [0, 255] puts the derived address off the curve."""


# --- IDL and encoding ---


class IdlError(PrereqClientError, ValueError):
    """IDL document is malformed or uses an unsupported type."""


class UnknownMethodError(PrereqClientError, KeyError):
    """Method name (or discriminator) is not declared in the IDL."""

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return PrereqClientError.__str__(self)


class ArgumentMismatchError(PrereqClientError, TypeError):
    """Argument or account list does not conform to the IDL declaration."""


# --- signing ---


class MissingSignerError(PrereqClientError):
    """A required signer still lacks a signature after signing."""


class IncompleteSignatureError(PrereqClientError):
    """Submission attempted before every required signer has signed."""


# --- ledger ---


class LedgerError(PrereqClientError):
    """Error reported by, or while talking to, the ledger."""

    retryable = False


class StaleFreshnessTokenError(LedgerError):
    """Recent blockhash is older than the ledger's validity window."""


class InsufficientFundsError(LedgerError):
    """Fee payer (or source account) cannot cover the amount plus fees."""


class DuplicateTransactionError(LedgerError):
    """The ledger has already processed this exact transaction."""


class LedgerRejectedError(LedgerError):
    """Non-transient rejection: preflight simulation or on-chain program error."""


class Timeout(LedgerError):
    """Confirmation not observed before the deadline. Outcome unknown, not rolled back."""


class NetworkTransientError(LedgerError):
    """Connection reset, read timeout, 5xx: safe to retry with backoff."""

    retryable = True


class RateLimited(NetworkTransientError):
    """HTTP 429 or faucet limit. Retry only after ``retry_after`` seconds."""

    def __init__(self, message: str, retry_after: float | None = None, **context: Any) -> None:
        super().__init__(message, **context)
        self.retry_after = retry_after
