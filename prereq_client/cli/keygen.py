#!/usr/bin/env python3
"""
Generate a new wallet keypair and save it in Solana CLI JSON format.

Usage:
  prereq-keygen [--out dev-wallet.json] [--force] [--print-secret]
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from prereq_client.chain import keypairs
from prereq_client.config.env import get_wallet_path
from prereq_client.logging import bind_address
from prereq_client.utils.wallet_utils import write_wallet_file


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Generate a new Solana wallet.")
    parser.add_argument("--out", type=Path, help="Wallet file to write (default: WALLET_PATH or ./dev-wallet.json)")
    parser.add_argument("--force", action="store_true", help="Overwrite an existing wallet file")
    parser.add_argument("--print-secret", action="store_true", help="Also print the secret key byte array")
    args = parser.parse_args(argv)

    kp = keypairs.generate()
    path = args.out or get_wallet_path()
    try:
        write_wallet_file(path, kp, overwrite=args.force)
    except FileExistsError as e:
        print(f"error: {e} (use --force)", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"error: cannot write wallet: {e}", file=sys.stderr)
        return 1
    bind_address(str(kp.pubkey())).info("wallet_generated", path=str(path))

    print(f"You've generated a new Solana wallet: {kp.pubkey()}")
    print(f"Saved to {path}")
    if args.print_secret:
        print(json.dumps(keypairs.to_wallet_bytes(kp)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
