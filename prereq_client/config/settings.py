"""
Typed settings for the ledger client and submission pipeline.

Defaults come from the environment (see prereq_client.config.env); explicit
keyword arguments win. A Settings instance is threaded through constructors,
there is no process-wide client.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from prereq_client.config.env import get_solana_network, get_solana_rpc_url, parse_bool_env

DEFAULT_COMMITMENT = "confirmed"
DEFAULT_CONFIRM_TIMEOUT_SEC = 60.0
DEFAULT_CONFIRM_POLL_INTERVAL_SEC = 1.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SEC = 1.0
# Blockhashes expire after 150 blocks (~60-90s); stay well inside that
DEFAULT_FRESHNESS_WINDOW_SEC = 60.0
DEFAULT_FAUCET_COOLDOWN_SEC = 30.0
DEFAULT_REQUEST_TIMEOUT_SEC = 10.0
MAX_RETRY_ATTEMPTS = 10

_COMMITMENTS = ("processed", "confirmed", "finalized")


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass
class Settings:
    """Settings for RPC access, retries and confirmation (env or explicit)."""

    rpc_url: str = field(default_factory=get_solana_rpc_url)
    network: str = field(default_factory=get_solana_network)
    commitment: str = field(default_factory=lambda: (os.getenv("SOLANA_COMMITMENT") or DEFAULT_COMMITMENT).strip().lower())
    confirm_timeout_sec: float = field(default_factory=lambda: _float_env("CONFIRM_TIMEOUT_SEC", DEFAULT_CONFIRM_TIMEOUT_SEC))
    confirm_poll_interval_sec: float = field(default_factory=lambda: _float_env("CONFIRM_POLL_INTERVAL_SEC", DEFAULT_CONFIRM_POLL_INTERVAL_SEC))
    retry_attempts: int = field(default_factory=lambda: _int_env("RETRY_ATTEMPTS", DEFAULT_RETRY_ATTEMPTS))
    retry_backoff_sec: float = field(default_factory=lambda: _float_env("RETRY_BACKOFF_SEC", DEFAULT_RETRY_BACKOFF_SEC))
    freshness_window_sec: float = field(default_factory=lambda: _float_env("FRESHNESS_WINDOW_SEC", DEFAULT_FRESHNESS_WINDOW_SEC))
    faucet_cooldown_sec: float = field(default_factory=lambda: _float_env("FAUCET_COOLDOWN_SEC", DEFAULT_FAUCET_COOLDOWN_SEC))
    request_timeout_sec: float = field(default_factory=lambda: _float_env("RPC_REQUEST_TIMEOUT_SEC", DEFAULT_REQUEST_TIMEOUT_SEC))
    skip_preflight: bool = field(default_factory=lambda: parse_bool_env("SKIP_PREFLIGHT", False))

    def __post_init__(self) -> None:
        if self.commitment not in _COMMITMENTS:
            self.commitment = DEFAULT_COMMITMENT
        if self.confirm_timeout_sec <= 0:
            self.confirm_timeout_sec = DEFAULT_CONFIRM_TIMEOUT_SEC
        if self.confirm_poll_interval_sec <= 0:
            self.confirm_poll_interval_sec = DEFAULT_CONFIRM_POLL_INTERVAL_SEC
        self.retry_attempts = max(1, min(MAX_RETRY_ATTEMPTS, self.retry_attempts))
        if self.retry_backoff_sec < 0:
            self.retry_backoff_sec = 0.0
        if self.freshness_window_sec <= 0:
            self.freshness_window_sec = DEFAULT_FRESHNESS_WINDOW_SEC
        if self.faucet_cooldown_sec < 0:
            self.faucet_cooldown_sec = 0.0
        if self.request_timeout_sec <= 0:
            self.request_timeout_sec = DEFAULT_REQUEST_TIMEOUT_SEC


def get_settings(**overrides: object) -> Settings:
    """
    Return settings built from the environment.

    Keyword overrides replace individual fields, e.g. get_settings(rpc_url="http://localhost:8899").
    """
    return Settings(**overrides)  # type: ignore[arg-type]
