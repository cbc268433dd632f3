#!/usr/bin/env python3
"""
Convert a secret key between base58 (wallet apps) and the JSON byte array (Solana CLI).

Usage:
  prereq-convert to-wallet BASE58_SECRET
  prereq-convert to-base58 wallet.json
"""

from __future__ import annotations

import argparse
import json
import sys

from prereq_client.chain import keypairs
from prereq_client.errors import MalformedKeyError
from prereq_client.utils.wallet_utils import base58_to_wallet, read_wallet_file


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Convert wallet secret key formats.")
    sub = parser.add_subparsers(dest="command", required=True)
    to_wallet = sub.add_parser("to-wallet", help="base58 secret -> JSON byte array")
    to_wallet.add_argument("secret", help="base58 secret key")
    to_b58 = sub.add_parser("to-base58", help="wallet JSON file -> base58 secret")
    to_b58.add_argument("path", help="wallet JSON file")
    args = parser.parse_args(argv)

    try:
        if args.command == "to-wallet":
            print(json.dumps(base58_to_wallet(args.secret)))
        else:
            print(keypairs.to_base58(read_wallet_file(args.path)))
    except (MalformedKeyError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
