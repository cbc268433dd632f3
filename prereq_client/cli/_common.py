"""Shared CLI plumbing: settings, pipeline, wallet loading and result printing."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from solders.keypair import Keypair

from prereq_client.chain.ledger_client import SolanaLedgerClient
from prereq_client.chain.pipeline import Confirmation, SubmissionPipeline
from prereq_client.config.env import explorer_tx_url, get_wallet_path
from prereq_client.config.settings import Settings
from prereq_client.utils.wallet_utils import read_wallet_file

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UNKNOWN = 3


def add_network_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--rpc-url", help="RPC endpoint (default: SOLANA_RPC_URL or the network's public endpoint)")
    parser.add_argument(
        "--commitment",
        choices=("processed", "confirmed", "finalized"),
        help="Commitment to wait for (default: SOLANA_COMMITMENT or confirmed)",
    )
    parser.add_argument("--timeout", type=float, help="Seconds to wait for confirmation")


def add_wallet_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--wallet", type=Path, help="Wallet JSON file (default: WALLET_PATH or ./dev-wallet.json)")


def settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {}
    if getattr(args, "rpc_url", None):
        overrides["rpc_url"] = args.rpc_url
    if getattr(args, "commitment", None):
        overrides["commitment"] = args.commitment
    if getattr(args, "timeout", None):
        overrides["confirm_timeout_sec"] = args.timeout
    return Settings(**overrides)


def pipeline_from_settings(settings: Settings) -> SubmissionPipeline:
    return SubmissionPipeline(SolanaLedgerClient(settings), settings)


def load_wallet(args: argparse.Namespace) -> Keypair:
    return read_wallet_file(getattr(args, "wallet", None) or get_wallet_path())


def report(confirmation: Confirmation, settings: Settings, action: str) -> int:
    """Print the outcome; return the process exit code."""
    sig = confirmation.signature
    if confirmation.ok:
        print(f"{action} {confirmation.status.value}: {sig}")
        print(explorer_tx_url(sig, settings.network))
        return EXIT_OK
    if confirmation.timed_out:
        print(f"{action} not confirmed before timeout; it may still land: {sig}", file=sys.stderr)
        print(explorer_tx_url(sig, settings.network), file=sys.stderr)
        return EXIT_UNKNOWN
    if confirmation.error is None:
        # stop requested: submitted but not awaited
        print(f"{action} submitted: {sig}")
        return EXIT_UNKNOWN
    print(f"{action} failed: {confirmation.error}", file=sys.stderr)
    return EXIT_FAILED
