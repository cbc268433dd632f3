"""
Keypair provider: generate or load an ed25519 signing identity.

A Solana secret key is 64 bytes: the 32-byte seed followed by the 32-byte
public key. load() checks that the public half really is the key derived from
the seed, so a corrupted or hand-edited wallet fails here instead of producing
signatures the ledger rejects. No disk or network access; see
prereq_client.utils.wallet_utils for wallet files.
"""

from __future__ import annotations

from collections.abc import Sequence

import base58
from solders.keypair import Keypair

from prereq_client.errors import MalformedKeyError

SECRET_KEY_LEN = 64
SEED_LEN = 32


def generate() -> Keypair:
    """Fresh keypair from the OS CSPRNG."""
    return Keypair()


def load(secret: bytes | Sequence[int]) -> Keypair:
    """
    Load a keypair from 64 secret bytes (bytes or a list of ints as stored in wallet JSON).
    Raises MalformedKeyError on wrong length, non-byte values or an inconsistent pair.
    """
    if isinstance(secret, (bytes, bytearray)):
        raw = bytes(secret)
    else:
        values = list(secret)
        if not all(isinstance(v, int) and not isinstance(v, bool) and 0 <= v <= 255 for v in values):
            raise MalformedKeyError("secret key must contain only byte values 0-255")
        raw = bytes(values)
    if len(raw) != SECRET_KEY_LEN:
        raise MalformedKeyError("secret key must be 64 bytes", length=len(raw))

    expected = Keypair.from_seed(raw[:SEED_LEN]).pubkey()
    if bytes(expected) != raw[SEED_LEN:]:
        raise MalformedKeyError("public key half does not match secret seed")
    return Keypair.from_bytes(raw)


def from_base58(text: str) -> Keypair:
    """Load from a base58 secret (the format wallet apps such as Phantom export)."""
    try:
        raw = base58.b58decode(text.strip())
    except ValueError as e:
        raise MalformedKeyError("secret key is not valid base58") from e
    return load(raw)


def to_base58(keypair: Keypair) -> str:
    return base58.b58encode(bytes(keypair)).decode("ascii")


def to_wallet_bytes(keypair: Keypair) -> list[int]:
    """Secret key as a list of ints, the Solana CLI wallet file layout."""
    return list(bytes(keypair))
