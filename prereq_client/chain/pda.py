"""
Program derived addresses (PDAs).

A PDA is sha256(seed_0 || ... || seed_n || bump || program_id || "ProgramDerivedAddress")
where the result must NOT be a valid ed25519 point, so no private key can sign
for it. The canonical bump is the largest one in [0, 255] that lands off the
curve, scanning down from 255; Anchor's `seeds = [...], bump` constraint
checks exactly that bump, so derive() must agree with Pubkey.find_program_address.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from dataclasses import dataclass

from solders.pubkey import Pubkey

from prereq_client.errors import InvalidSeedsError, NoValidBumpError

PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEED_LEN = 32
# 16 seeds per derivation, one of them is the bump
MAX_SEEDS = 16
MAX_BUMP = 255


@dataclass(frozen=True)
class ProgramDerivedAddress:
    address: Pubkey
    bump: int

    def __iter__(self):
        # Unpacks like find_program_address: address, bump = derive(...)
        yield self.address
        yield self.bump


def _is_on_curve(candidate: bytes) -> bool:
    return Pubkey(candidate).is_on_curve()


def _validate_seeds(seeds: Sequence[bytes], max_seeds: int) -> list[bytes]:
    if isinstance(seeds, (bytes, bytearray, str)):
        raise InvalidSeedsError("seeds must be a sequence of byte strings, not a single value")
    out: list[bytes] = []
    for i, seed in enumerate(seeds):
        if isinstance(seed, Pubkey):
            seed = bytes(seed)
        if not isinstance(seed, (bytes, bytearray)):
            raise InvalidSeedsError("seed must be bytes", index=i, type=type(seed).__name__)
        if len(seed) > MAX_SEED_LEN:
            raise InvalidSeedsError("seed longer than 32 bytes", index=i, length=len(seed))
        out.append(bytes(seed))
    if len(out) > max_seeds:
        raise InvalidSeedsError("too many seeds", count=len(out), max_seeds=max_seeds)
    return out


def _candidate(seeds: list[bytes], program_id: Pubkey) -> bytes:
    h = hashlib.sha256()
    for seed in seeds:
        h.update(seed)
    h.update(bytes(program_id))
    h.update(PDA_MARKER)
    return h.digest()


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    """Single-step derivation; the bump (if any) is already the last seed. Raises if on curve."""
    checked = _validate_seeds(seeds, MAX_SEEDS)
    candidate = _candidate(checked, program_id)
    if _is_on_curve(candidate):
        raise NoValidBumpError("derived address is on the ed25519 curve", program_id=str(program_id))
    return Pubkey(candidate)


def derive(seeds: Sequence[bytes], program_id: Pubkey) -> ProgramDerivedAddress:
    """
    Find the canonical PDA for seeds under program_id.

    Pure: identical inputs always give the identical (address, bump).
    Raises InvalidSeedsError for bad seeds, NoValidBumpError if all 256 bumps land on the curve.
    """
    checked = _validate_seeds(seeds, MAX_SEEDS - 1)
    for bump in range(MAX_BUMP, -1, -1):
        candidate = _candidate(checked + [bytes([bump])], program_id)
        if not _is_on_curve(candidate):
            return ProgramDerivedAddress(Pubkey(candidate), bump)
    raise NoValidBumpError(
        "no bump in [0, 255] yields an off-curve address",
        program_id=str(program_id),
        seed_count=len(checked),
    )
