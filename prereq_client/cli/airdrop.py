#!/usr/bin/env python3
"""
Request devnet SOL from the faucet for a wallet.

Usage:
  prereq-airdrop [--wallet dev-wallet.json] [--sol 2]
"""

from __future__ import annotations

import argparse
import sys

from prereq_client.cli._common import (
    EXIT_FAILED,
    add_network_args,
    add_wallet_arg,
    load_wallet,
    pipeline_from_settings,
    report,
    settings_from_args,
)
from prereq_client.errors import PrereqClientError
from prereq_client.workflows import request_airdrop, sol_to_lamports


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Request devnet SOL for a wallet.")
    add_wallet_arg(parser)
    add_network_args(parser)
    parser.add_argument("--sol", type=float, default=2.0, help="Amount in SOL (default: 2)")
    args = parser.parse_args(argv)
    if args.sol <= 0:
        parser.error("--sol must be positive")

    settings = settings_from_args(args)
    if settings.network == "mainnet":
        print("error: the faucet is not available on mainnet", file=sys.stderr)
        return EXIT_FAILED
    try:
        kp = load_wallet(args)
        conf = request_airdrop(pipeline_from_settings(settings), kp.pubkey(), sol_to_lamports(args.sol))
    except (PrereqClientError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILED
    return report(conf, settings, "airdrop")


if __name__ == "__main__":
    raise SystemExit(main())
