"""
Tests for IDL-driven instruction encoding (chain.encoder).
"""

from __future__ import annotations

import hashlib
import struct

import pytest
from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID

from prereq_client.chain.encoder import ProgramInterface, decode, discriminator, encode
from prereq_client.chain.idl import load_idl
from prereq_client.config.env import DEFAULT_IDL_PATH
from prereq_client.errors import ArgumentMismatchError, IdlError, UnknownMethodError

PROGRAM_ID = Pubkey.from_string("HC2oqz2p6DEWfrahenqdq2moUcga9c9biqRBcdK3XKU1")
SIGNER = Pubkey.from_string("9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka")

TYPED_IDL = {
    "name": "typed",
    "instructions": [
        {
            "name": "configure",
            "accounts": [{"name": "authority", "isMut": False, "isSigner": True}],
            "args": [
                {"name": "amount", "type": "u64"},
                {"name": "delta", "type": "i16"},
                {"name": "enabled", "type": "bool"},
                {"name": "label", "type": "string"},
                {"name": "owner", "type": "publicKey"},
                {"name": "limit", "type": {"option": "u32"}},
                {"name": "tags", "type": {"vec": "u8"}},
                {"name": "hash", "type": {"array": ["u8", 4]}},
                {"name": "params", "type": {"defined": "Params"}},
                {"name": "mode", "type": {"defined": "Mode"}},
                {"name": "ratio", "type": "f32"},
            ],
        },
        {"name": "ping", "accounts": [], "args": []},
        {
            "name": "depositFor",
            "accounts": [
                {"name": "payer", "isMut": True, "isSigner": True},
                {
                    "name": "vault",
                    "isMut": True,
                    "isSigner": False,
                    "pda": {
                        "seeds": [
                            {"kind": "const", "type": "string", "value": "vault"},
                            {"kind": "account", "type": "publicKey", "path": "owner"},
                            {"kind": "arg", "type": "u64", "path": "index"},
                        ]
                    },
                },
                {"name": "owner", "isMut": False, "isSigner": False},
                {"name": "feeAccount", "isMut": True, "isSigner": False, "isOptional": True},
                {"name": "systemProgram", "isMut": False, "isSigner": False},
            ],
            "args": [{"name": "index", "type": "u64"}],
        },
    ],
    "types": [
        {
            "name": "Params",
            "type": {"kind": "struct", "fields": [{"name": "rate", "type": "u8"}, {"name": "cap", "type": "u16"}]},
        },
        {
            "name": "Mode",
            "type": {
                "kind": "enum",
                "variants": [{"name": "Off"}, {"name": "On"}, {"name": "Custom", "fields": [{"name": "level", "type": "u8"}]}],
            },
        },
    ],
    "metadata": {"address": "HC2oqz2p6DEWfrahenqdq2moUcga9c9biqRBcdK3XKU1"},
}


def _configure_args(**overrides):
    args = {
        "amount": 1_000,
        "delta": -2,
        "enabled": True,
        "label": "hi",
        "owner": SIGNER,
        "limit": None,
        "tags": [1, 2],
        "hash": b"\x00\x01\x02\x03",
        "params": {"rate": 5, "cap": 300},
        "mode": "On",
        "ratio": 0.5,
    }
    args.update(overrides)
    return args


@pytest.fixture
def prereq_idl():
    return load_idl(DEFAULT_IDL_PATH)


@pytest.fixture
def typed_idl():
    return load_idl(TYPED_IDL)


def test_discriminator_is_anchor_sighash():
    """sha256("global:<snake_case>")[:8]."""
    assert discriminator("complete") == hashlib.sha256(b"global:complete").digest()[:8]
    assert discriminator("depositFor") == hashlib.sha256(b"global:deposit_for").digest()[:8]


def test_encode_complete(prereq_idl):
    """The enrollment instruction: discriminator, u32 length, github bytes."""
    data = encode("complete", [b"octocat"], prereq_idl)
    expected = hashlib.sha256(b"global:complete").digest()[:8] + struct.pack("<I", 7) + b"octocat"
    assert data == expected


def test_encode_accepts_mapping_and_path(prereq_idl):
    """Keyword args and an IDL path give the same bytes as positional args and a model."""
    assert encode("complete", {"github": b"octocat"}, DEFAULT_IDL_PATH) == encode("complete", [b"octocat"], prereq_idl)


def test_encode_is_deterministic(typed_idl):
    """Same method and args always give the same bytes."""
    assert encode("configure", _configure_args(), typed_idl) == encode("configure", _configure_args(), typed_idl)


def test_encode_typed_layout(typed_idl):
    """Fields are serialised little-endian in declared order."""
    data = encode("configure", _configure_args(), typed_idl)
    expected = (
        discriminator("configure")
        + struct.pack("<Q", 1_000)
        + struct.pack("<h", -2)
        + b"\x01"
        + struct.pack("<I", 2)
        + b"hi"
        + bytes(SIGNER)
        + b"\x00"
        + struct.pack("<I", 2)
        + b"\x01\x02"
        + b"\x00\x01\x02\x03"
        + b"\x05"
        + struct.pack("<H", 300)
        + b"\x01"
        + struct.pack("<f", 0.5)
    )
    assert data == expected


def test_encode_option_some_and_struct_variant(typed_idl):
    """Some(x) carries a 1 tag; struct variants carry index then fields."""
    data = encode("configure", _configure_args(limit=7, mode={"Custom": {"level": 9}}), typed_idl)
    assert b"\x01" + struct.pack("<I", 7) in data
    assert data.endswith(b"\x02\x09" + struct.pack("<f", 0.5))


def test_decode_round_trip(typed_idl):
    """decode() returns the method name and the original values."""
    args = _configure_args(limit=7)
    name, decoded = decode(encode("configure", args, typed_idl), typed_idl)
    assert name == "configure"
    assert decoded["amount"] == 1_000
    assert decoded["delta"] == -2
    assert decoded["enabled"] is True
    assert decoded["label"] == "hi"
    assert decoded["owner"] == SIGNER
    assert decoded["limit"] == 7
    assert list(decoded["tags"]) == [1, 2]
    assert decoded["params"] == {"rate": 5, "cap": 300}
    assert decoded["ratio"] == 0.5


def test_decode_no_args_and_unknown(typed_idl):
    """Arg-less instructions decode to {}; unknown discriminators raise."""
    assert decode(encode("ping", [], typed_idl), typed_idl) == ("ping", {})
    with pytest.raises(UnknownMethodError):
        decode(b"\x00" * 8, typed_idl)


def test_decode_truncated_data(prereq_idl):
    """Data cut short inside an argument raises ArgumentMismatchError."""
    data = encode("complete", [b"octocat"], prereq_idl)
    with pytest.raises(ArgumentMismatchError):
        decode(data[:-3], prereq_idl)


def test_decode_trailing_bytes(prereq_idl, typed_idl):
    """Bytes left over after the declared arguments are rejected."""
    with pytest.raises(ArgumentMismatchError):
        decode(encode("complete", [b"octocat"], prereq_idl) + b"\xff\xff", prereq_idl)
    with pytest.raises(ArgumentMismatchError):
        decode(encode("ping", [], typed_idl) + b"\x00", typed_idl)


def test_f32_infinity_is_encoded(typed_idl):
    """Non-finite floats are valid f32 values; only finite overflow is rejected."""
    data = encode("configure", _configure_args(ratio=float("inf")), typed_idl)
    assert data.endswith(struct.pack("<f", float("inf")))


def test_unknown_method(prereq_idl):
    with pytest.raises(UnknownMethodError):
        encode("withdraw", [], prereq_idl)


@pytest.mark.parametrize(
    "args",
    [
        [],
        [b"a", b"b"],
        ["octocat"],
        [None],
        {"github": b"x", "extra": 1},
        {"gh": b"x"},
        b"octocat",
    ],
)
def test_argument_mismatch(prereq_idl, args):
    """Wrong arity, wrong type or undeclared keys raise ArgumentMismatchError."""
    with pytest.raises(ArgumentMismatchError):
        encode("complete", args, prereq_idl)


@pytest.mark.parametrize(
    "override",
    [
        {"amount": -1},
        {"amount": 2**64},
        {"delta": 2**15},
        {"amount": True},
        {"enabled": 1},
        {"owner": str(SIGNER)},
        {"hash": b"\x00\x01"},
        {"params": {"rate": 1}},
        {"params": {"rate": 1, "cap": 2, "extra": 3}},
        {"mode": "Sideways"},
        {"mode": {"Off": {"level": 1}}},
        {"tags": [256]},
        {"ratio": 1e40},
        {"ratio": -1e39},
        {"ratio": 10**400},
        {"ratio": "0.5"},
    ],
)
def test_typed_argument_mismatch(typed_idl, override):
    """Range, type, fixed length, struct keys and enum variants are all checked."""
    with pytest.raises(ArgumentMismatchError):
        encode("configure", _configure_args(**override), typed_idl)


def test_program_interface_accounts(prereq_idl):
    """complete: signer, derived prereq PDA and the system program, with IDL flags."""
    program = ProgramInterface(prereq_idl)
    assert program.program_id == PROGRAM_ID
    metas = program.accounts_for("complete", {"signer": SIGNER})
    prereq, _ = Pubkey.find_program_address([b"prereq", bytes(SIGNER)], PROGRAM_ID)
    assert [m.pubkey for m in metas] == [SIGNER, prereq, SYS_PROGRAM_ID]
    assert [(m.is_signer, m.is_writable) for m in metas] == [(True, True), (False, True), (False, False)]


def test_program_interface_instruction(prereq_idl):
    """instruction() combines program id, encoded data and account metas."""
    program = ProgramInterface(prereq_idl)
    ix = program.instruction("complete", [b"octocat"], {"signer": SIGNER})
    assert ix.program_id == PROGRAM_ID
    assert bytes(ix.data) == encode("complete", [b"octocat"], prereq_idl)
    assert ix.accounts[0].pubkey == SIGNER
    assert program.decode(bytes(ix.data)) == ("complete", {"github": b"octocat"})


def test_program_interface_overrides_program_id(prereq_idl):
    """An explicit program id replaces the IDL address everywhere, including PDAs."""
    other = Pubkey.from_string("Stake11111111111111111111111111111111111111")
    program = ProgramInterface(prereq_idl, program_id=str(other))
    metas = program.accounts_for("complete", {"signer": SIGNER})
    assert metas[1].pubkey == Pubkey.find_program_address([b"prereq", bytes(SIGNER)], other)[0]


def test_program_interface_requires_address():
    """No program id and no IDL address raises IdlError."""
    doc = dict(TYPED_IDL)
    doc.pop("metadata")
    with pytest.raises(IdlError):
        ProgramInterface(doc)


def test_accounts_seed_from_later_account_and_arg(typed_idl):
    """PDA seeds may reference accounts declared later and instruction args; optional accounts default to the program id."""
    program = ProgramInterface(typed_idl)
    payer = Pubkey.from_string("Vote111111111111111111111111111111111111111")
    metas = program.accounts_for("deposit_for", {"payer": payer, "owner": SIGNER}, [3])
    vault, _ = Pubkey.find_program_address([b"vault", bytes(SIGNER), struct.pack("<Q", 3)], PROGRAM_ID)
    assert [m.pubkey for m in metas] == [payer, vault, SIGNER, PROGRAM_ID, SYS_PROGRAM_ID]


def test_accounts_missing_or_undeclared(prereq_idl):
    """Missing required accounts and unknown account names raise ArgumentMismatchError."""
    program = ProgramInterface(prereq_idl)
    with pytest.raises(ArgumentMismatchError):
        program.accounts_for("complete", {})
    with pytest.raises(ArgumentMismatchError):
        program.accounts_for("complete", {"signer": SIGNER, "mystery": SIGNER})
