#!/usr/bin/env python3
"""
Transfer SOL from the wallet to a recipient, or drain the wallet with --all.

Usage:
  prereq-transfer RECIPIENT [--sol 0.1] [--wallet dev-wallet.json]
  prereq-transfer RECIPIENT --all
"""

from __future__ import annotations

import argparse
import sys

from solders.pubkey import Pubkey

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
from prereq_client.utils.wallet_utils import is_valid_wallet
from prereq_client.workflows import drain, sol_to_lamports, transfer


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Transfer SOL to another wallet.")
    parser.add_argument("recipient", help="Recipient address (base58)")
    add_wallet_arg(parser)
    add_network_args(parser)
    amount = parser.add_mutually_exclusive_group()
    amount.add_argument("--sol", type=float, default=0.1, help="Amount in SOL (default: 0.1)")
    amount.add_argument("--all", action="store_true", help="Send the whole balance minus the fee")
    args = parser.parse_args(argv)
    if not is_valid_wallet(args.recipient):
        parser.error(f"invalid recipient address: {args.recipient}")
    if not args.all and args.sol <= 0:
        parser.error("--sol must be positive")

    settings = settings_from_args(args)
    recipient = Pubkey.from_string(args.recipient.strip())
    try:
        kp = load_wallet(args)
        pipeline = pipeline_from_settings(settings)
        if args.all:
            conf = drain(pipeline, kp, recipient)
        else:
            conf = transfer(pipeline, kp, recipient, sol_to_lamports(args.sol))
    except (PrereqClientError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_FAILED
    return report(conf, settings, "transfer")


if __name__ == "__main__":
    raise SystemExit(main())
