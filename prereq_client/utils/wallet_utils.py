"""Wallet file and address helpers (Solana CLI JSON format, base58)."""

from __future__ import annotations

import json
import os
from collections.abc import Sequence
from pathlib import Path

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from prereq_client.chain import keypairs
from prereq_client.errors import MalformedKeyError


def is_valid_wallet(w: str) -> bool:
    """Return True if w is a valid Solana wallet (Pubkey) address."""
    try:
        Pubkey.from_string(w.strip())
        return True
    except ValueError:
        return False


def read_wallet_file(path: str | Path) -> Keypair:
    """Load a keypair from a JSON array of 64 byte values."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise MalformedKeyError("wallet file is not valid JSON", path=str(path)) from e
    if not isinstance(data, list):
        raise MalformedKeyError("wallet file must contain a JSON array", path=str(path))
    return keypairs.load(data)


def write_wallet_file(path: str | Path, keypair: Keypair, *, overwrite: bool = False) -> Path:
    """Write the keypair as a JSON byte array, readable by the owner only."""
    path = Path(path)
    if path.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing wallet: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(keypairs.to_wallet_bytes(keypair), f)
    return path


def base58_to_wallet(text: str) -> list[int]:
    """Convert a base58 secret to the wallet byte array."""
    return keypairs.to_wallet_bytes(keypairs.from_base58(text))


def wallet_to_base58(values: Sequence[int]) -> str:
    """Convert a wallet byte array to a base58 secret."""
    return keypairs.to_base58(keypairs.load(values))
