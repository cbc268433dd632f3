"""
Pytest fixtures for prereq-client tests.

FakeLedger stands in for SolanaLedgerClient: it records raw sends, replays
scripted errors and signature statuses, and shares a FakeClock with the
pipeline so retries, backoff, polling and faucet cooldowns run instantly.
"""

from __future__ import annotations

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.transaction import Transaction as WireTransaction

from prereq_client.chain.ledger_client import BlockReference, LedgerStatus
from prereq_client.chain.pipeline import SubmissionPipeline
from prereq_client.config.settings import Settings


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeLedger:
    """In-memory ledger. Queue errors/statuses on the lists before calling the pipeline."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.blockhash = Hash.new_unique()
        self.sent: list[bytes] = []
        self.send_errors: list[Exception] = []
        # Each poll pops one entry; the last entry repeats. Entries: LedgerStatus, None or an exception.
        self.statuses: list[object] = [LedgerStatus("confirmed", slot=42)]
        self.status_calls = 0
        self.faucet_errors: list[Exception] = []
        self.faucet_calls: list[tuple[str, int]] = []
        self.balance = 0
        self.fee = 5000
        self.fee_messages: list[object] = []

    def get_recent_block_reference(self) -> BlockReference:
        return BlockReference(blockhash=self.blockhash, last_valid_block_height=150, fetched_at=self.clock())

    def submit_transaction(self, raw: bytes) -> str:
        self.sent.append(raw)
        if self.send_errors:
            raise self.send_errors.pop(0)
        return str(WireTransaction.from_bytes(raw).signatures[0])

    def get_transaction_status(self, signature: str) -> LedgerStatus | None:
        self.status_calls += 1
        if not self.statuses:
            return None
        item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(item, Exception):
            raise item
        return item  # type: ignore[return-value]

    def request_faucet_credit(self, address, lamports: int) -> str:
        self.faucet_calls.append((str(address), lamports))
        if self.faucet_errors:
            raise self.faucet_errors.pop(0)
        return str(Keypair().sign_message(b"airdrop"))

    def get_balance(self, address) -> int:
        return self.balance

    def get_fee_for_message(self, message) -> int:
        self.fee_messages.append(message)
        return self.fee


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger(clock) -> FakeLedger:
    return FakeLedger(clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        rpc_url="http://127.0.0.1:8899",
        network="devnet",
        commitment="confirmed",
        confirm_timeout_sec=5.0,
        confirm_poll_interval_sec=1.0,
        retry_attempts=3,
        retry_backoff_sec=0.5,
        freshness_window_sec=60.0,
        faucet_cooldown_sec=30.0,
        request_timeout_sec=5.0,
        skip_preflight=False,
    )


@pytest.fixture
def pipeline(ledger, settings, clock) -> SubmissionPipeline:
    return SubmissionPipeline(ledger, settings, sleep=clock.sleep, clock=clock)


@pytest.fixture
def payer() -> Keypair:
    return Keypair.from_seed(bytes([7] * 32))


@pytest.fixture
def other_signer() -> Keypair:
    return Keypair.from_seed(bytes([9] * 32))
