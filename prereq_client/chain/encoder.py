"""
IDL-driven instruction encoding (Anchor / Borsh).

Instruction data = 8-byte discriminator ++ Borsh-serialised args in declared order.
The discriminator is the IDL's explicit one when present, otherwise the first
8 bytes of sha256("global:<snake_case_name>").

Arguments are checked against the IDL before anything is serialised: arity,
Python type, integer range, fixed array length, and no undeclared fields
(mapping args and struct dicts must have exactly the declared keys). Layouts
are built with borsh-construct; checked values are shaped for it.

Supported types: u8-u128, i8-i128, bool, f32, f64, string, bytes,
publicKey/pubkey, {vec}, {option}, {array: [T, n]}, {defined} structs and
enums (unit and named-field variants).
"""

from __future__ import annotations

import hashlib
import math
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from borsh_construct import (
    F32,
    F64,
    I8,
    I16,
    I32,
    I64,
    I128,
    U8,
    U16,
    U32,
    U64,
    U128,
    Bool,
    Bytes,
    CStruct,
    Enum,
    Option,
    String,
    Vec,
)
from construct import ConstructError
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID

from prereq_client.chain import pda
from prereq_client.chain.idl import Idl, IdlAccountItem, IdlField, IdlInstruction, IdlSeed, load_idl, snake_case
from prereq_client.errors import ArgumentMismatchError, IdlError, UnknownMethodError
from prereq_client.logging import get_logger

logger = get_logger(__name__)

DISCRIMINATOR_LEN = 8
PUBKEY_LEN = 32

_INT_LAYOUTS = {
    "u8": (U8, 0, 2**8 - 1),
    "u16": (U16, 0, 2**16 - 1),
    "u32": (U32, 0, 2**32 - 1),
    "u64": (U64, 0, 2**64 - 1),
    "u128": (U128, 0, 2**128 - 1),
    "i8": (I8, -(2**7), 2**7 - 1),
    "i16": (I16, -(2**15), 2**15 - 1),
    "i32": (I32, -(2**31), 2**31 - 1),
    "i64": (I64, -(2**63), 2**63 - 1),
    "i128": (I128, -(2**127), 2**127 - 1),
}
_SIMPLE_LAYOUTS = {"bool": Bool, "f32": F32, "f64": F64, "string": String, "bytes": Bytes}
F32_MAX = 3.4028234663852886e38

# Program accounts an IDL may name without an address (legacy IDLs never carry one)
WELL_KNOWN_ACCOUNTS = {
    "system_program": SYS_PROGRAM_ID,
    "token_program": Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"),
    "associated_token_program": Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"),
    "rent": Pubkey.from_string("SysvarRent111111111111111111111111111111111"),
}


def discriminator(method_name: str, namespace: str = "global") -> bytes:
    """Anchor sighash: sha256("<namespace>:<snake_case name>")[:8]."""
    return hashlib.sha256(f"{namespace}:{snake_case(method_name)}".encode("utf-8")).digest()[:DISCRIMINATOR_LEN]


def _instruction_discriminator(ix: IdlInstruction) -> bytes:
    if ix.discriminator:
        return bytes(ix.discriminator)
    return discriminator(ix.name)


def _type_key(idl_type: Any) -> str:
    if isinstance(idl_type, str):
        return "pubkey" if idl_type == "publicKey" else idl_type
    if isinstance(idl_type, dict) and len(idl_type) == 1:
        return next(iter(idl_type))
    raise IdlError("unsupported IDL type", type=repr(idl_type))


def _defined_name(idl_type: dict[str, Any]) -> str:
    ref = idl_type["defined"]
    if isinstance(ref, dict):
        ref = ref.get("name")
    if not isinstance(ref, str):
        raise IdlError("malformed defined type reference", type=repr(idl_type))
    return ref


class _Codec:
    """Layouts and value shaping for one IDL. Caches defined-type layouts so enum variants share one class."""

    def __init__(self, idl: Idl) -> None:
        self._idl = idl
        self._defined: dict[str, Any] = {}

    # --- layouts ---

    def layout(self, idl_type: Any) -> Any:
        key = _type_key(idl_type)
        if key in _INT_LAYOUTS:
            return _INT_LAYOUTS[key][0]
        if key in _SIMPLE_LAYOUTS:
            return _SIMPLE_LAYOUTS[key]
        if key == "pubkey":
            return U8[PUBKEY_LEN]
        if key == "vec":
            return Vec(self.layout(idl_type["vec"]))
        if key == "option":
            return Option(self.layout(idl_type["option"]))
        if key == "array":
            inner, length = idl_type["array"]
            return self.layout(inner)[int(length)]
        if key == "defined":
            return self._defined_layout(_defined_name(idl_type))
        raise IdlError("unsupported IDL type", type=repr(idl_type))

    def _defined_layout(self, name: str) -> Any:
        if name in self._defined:
            return self._defined[name]
        body = self._idl.type_def(name).type
        if body.kind == "struct":
            layout = self.struct_layout(body.fields)
        else:
            variants: list[Any] = []
            for v in body.variants:
                if v.fields:
                    variants.append(v.name / self.struct_layout(v.fields))
                else:
                    variants.append(v.name)
            layout = Enum(*variants, enum_name=name)
        self._defined[name] = layout
        return layout

    def struct_layout(self, fields: Sequence[IdlField]) -> Any:
        return CStruct(*(f.name / self.layout(f.type) for f in fields))

    # --- encode-side checks ---

    def check(self, value: Any, idl_type: Any, path: str) -> Any:
        """Validate value against idl_type; return it shaped for the borsh layout."""
        key = _type_key(idl_type)
        if key in _INT_LAYOUTS:
            _, lo, hi = _INT_LAYOUTS[key]
            if not isinstance(value, int) or isinstance(value, bool):
                raise _mismatch(path, key, value)
            if not lo <= value <= hi:
                raise ArgumentMismatchError("integer out of range", arg=path, type=key, value=value)
            return value
        if key == "bool":
            if not isinstance(value, bool):
                raise _mismatch(path, key, value)
            return value
        if key in ("f32", "f64"):
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise _mismatch(path, key, value)
            try:
                value = float(value)
            except OverflowError:
                raise ArgumentMismatchError("float out of range", arg=path, type=key) from None
            if key == "f32" and math.isfinite(value) and abs(value) > F32_MAX:
                raise ArgumentMismatchError("float out of range", arg=path, type=key, value=value)
            return value
        if key == "string":
            if not isinstance(value, str):
                raise _mismatch(path, key, value)
            return value
        if key == "bytes":
            if not isinstance(value, (bytes, bytearray)):
                raise _mismatch(path, key, value)
            return bytes(value)
        if key == "pubkey":
            if not isinstance(value, Pubkey):
                raise _mismatch(path, key, value)
            return list(bytes(value))
        if key == "option":
            return None if value is None else self.check(value, idl_type["option"], path)
        if key == "vec":
            inner = idl_type["vec"]
            items = self._sequence(value, inner, path)
            return [self.check(v, inner, f"{path}[{i}]") for i, v in enumerate(items)]
        if key == "array":
            inner, length = idl_type["array"]
            items = self._sequence(value, inner, path)
            if len(items) != int(length):
                raise ArgumentMismatchError(
                    "fixed array length mismatch", arg=path, expected=int(length), got=len(items)
                )
            return [self.check(v, inner, f"{path}[{i}]") for i, v in enumerate(items)]
        if key == "defined":
            return self._check_defined(value, _defined_name(idl_type), path)
        raise IdlError("unsupported IDL type", type=repr(idl_type))

    def _sequence(self, value: Any, inner: Any, path: str) -> list[Any]:
        # bytes are accepted for u8 collections; otherwise a list or tuple
        if isinstance(value, (bytes, bytearray)) and _type_key(inner) == "u8":
            return list(value)
        if not isinstance(value, (list, tuple)):
            raise _mismatch(path, "sequence", value)
        return list(value)

    def check_fields(self, value: Any, fields: Sequence[IdlField], path: str) -> dict[str, Any]:
        if not isinstance(value, Mapping):
            raise _mismatch(path, "struct", value)
        declared = [f.name for f in fields]
        extra = sorted(set(value) - set(declared))
        if extra:
            raise ArgumentMismatchError("undeclared fields", arg=path, fields=extra)
        missing = [n for n in declared if n not in value]
        if missing:
            raise ArgumentMismatchError("missing fields", arg=path, fields=missing)
        return {f.name: self.check(value[f.name], f.type, f"{path}.{f.name}") for f in fields}

    def _check_defined(self, value: Any, name: str, path: str) -> Any:
        body = self._idl.type_def(name).type
        if body.kind == "struct":
            return self.check_fields(value, body.fields, path)

        layout = self._defined_layout(name)
        if isinstance(value, str):
            variant_name, fields = value, None
        elif isinstance(value, Mapping) and len(value) == 1:
            variant_name, fields = next(iter(value.items()))
        else:
            raise _mismatch(path, f"enum {name}", value)
        variant = next((v for v in body.variants if v.name == variant_name), None)
        if variant is None:
            raise ArgumentMismatchError("unknown enum variant", arg=path, enum=name, variant=variant_name)
        variant_cls = getattr(layout.enum, variant.name)
        if not variant.fields:
            if fields not in (None, {}):
                raise ArgumentMismatchError("unit variant takes no fields", arg=path, variant=variant.name)
            return variant_cls()
        return variant_cls(**self.check_fields(fields, variant.fields, f"{path}.{variant.name}"))

    # --- decode-side shaping ---

    def unshape(self, parsed: Any, idl_type: Any) -> Any:
        key = _type_key(idl_type)
        if key == "pubkey":
            return Pubkey(bytes(parsed))
        if key == "option":
            return None if parsed is None else self.unshape(parsed, idl_type["option"])
        if key == "vec":
            return [self.unshape(v, idl_type["vec"]) for v in parsed]
        if key == "array":
            return [self.unshape(v, idl_type["array"][0]) for v in parsed]
        if key == "defined":
            name = _defined_name(idl_type)
            body = self._idl.type_def(name).type
            if body.kind == "struct":
                return self.unshape_fields(parsed, body.fields)
            variant = next(v for v in body.variants if v.name == type(parsed).__name__)
            if not variant.fields:
                return variant.name
            return {variant.name: {f.name: self.unshape(getattr(parsed, f.name), f.type) for f in variant.fields}}
        return parsed

    def unshape_fields(self, parsed: Any, fields: Sequence[IdlField]) -> dict[str, Any]:
        return {f.name: self.unshape(parsed[f.name], f.type) for f in fields}


def _mismatch(path: str, expected: str, value: Any) -> ArgumentMismatchError:
    return ArgumentMismatchError(
        "argument type mismatch", arg=path, expected=expected, got=type(value).__name__
    )


def _as_idl(idl: Idl | Mapping[str, Any] | str | Path) -> Idl:
    if isinstance(idl, Idl):
        return idl
    return load_idl(dict(idl) if isinstance(idl, Mapping) else idl)


def _named_args(ix: IdlInstruction, args: Sequence[Any] | Mapping[str, Any]) -> dict[str, Any]:
    """Map positional or keyword args onto the declared argument names, strictly."""
    names = ix.arg_names
    if isinstance(args, Mapping):
        extra = sorted(set(args) - set(names))
        if extra:
            raise ArgumentMismatchError("undeclared arguments", method=ix.name, args=extra)
        missing = [n for n in names if n not in args]
        if missing:
            raise ArgumentMismatchError("missing arguments", method=ix.name, args=missing)
        return {n: args[n] for n in names}
    if isinstance(args, (str, bytes, bytearray)) or not isinstance(args, Sequence):
        raise ArgumentMismatchError(
            "args must be a sequence or a mapping", method=ix.name, got=type(args).__name__
        )
    if len(args) != len(names):
        raise ArgumentMismatchError(
            "wrong number of arguments", method=ix.name, expected=len(names), got=len(args)
        )
    return dict(zip(names, args))


def _encode_with(codec: _Codec, ix: IdlInstruction, args: Sequence[Any] | Mapping[str, Any]) -> bytes:
    named = _named_args(ix, args)
    data = _instruction_discriminator(ix)
    if not ix.args:
        return data
    checked = {a.name: codec.check(named[a.name], a.type, a.name) for a in ix.args}
    return data + codec.struct_layout(ix.args).build(checked)


def encode(
    method_name: str,
    args: Sequence[Any] | Mapping[str, Any],
    idl: Idl | Mapping[str, Any] | str | Path,
) -> bytes:
    """
    Encode instruction data for method_name.

    Raises UnknownMethodError if the method is not in the IDL and
    ArgumentMismatchError if args do not match its declaration.
    """
    model = _as_idl(idl)
    ix = model.instruction(method_name)
    return _encode_with(_Codec(model), ix, args)


def decode(data: bytes, idl: Idl | Mapping[str, Any] | str | Path) -> tuple[str, dict[str, Any]]:
    """
    Inverse of encode(): return (instruction name, {arg name: value}).

    Raises UnknownMethodError for an unknown discriminator and
    ArgumentMismatchError for truncated data or trailing bytes.
    """
    model = _as_idl(idl)
    codec = _Codec(model)
    for ix in model.instructions:
        disc = _instruction_discriminator(ix)
        if data[: len(disc)] != disc:
            continue
        body = data[len(disc):]
        if not ix.args:
            if body:
                raise ArgumentMismatchError("trailing bytes after instruction data", method=ix.name, extra=len(body))
            return ix.name, {}
        layout = codec.struct_layout(ix.args)
        try:
            parsed = layout.parse(body)
            consumed = len(layout.build(parsed))
        except ConstructError as e:
            raise ArgumentMismatchError("instruction data does not match IDL layout", method=ix.name) from e
        if consumed != len(body):
            raise ArgumentMismatchError(
                "trailing bytes after instruction data", method=ix.name, extra=len(body) - consumed
            )
        return ix.name, codec.unshape_fields(parsed, ix.args)
    raise UnknownMethodError("no instruction matches discriminator", discriminator=data[:DISCRIMINATOR_LEN].hex())


class ProgramInterface:
    """
    Typed access to one on-chain program: encode args, resolve accounts, build Instructions.

        program = ProgramInterface(load_idl(path))
        ix = program.instruction("complete", [b"octocat"], {"signer": keypair.pubkey()})
    """

    def __init__(self, idl: Idl | Mapping[str, Any] | str | Path, program_id: Pubkey | str | None = None) -> None:
        self.idl = _as_idl(idl)
        if program_id is None:
            if not self.idl.address:
                raise IdlError("program id not given and IDL declares no address", program=self.idl.name)
            program_id = self.idl.address
        self.program_id = program_id if isinstance(program_id, Pubkey) else Pubkey.from_string(program_id)
        self._codec = _Codec(self.idl)

    def encode(self, method_name: str, args: Sequence[Any] | Mapping[str, Any]) -> bytes:
        return _encode_with(self._codec, self.idl.instruction(method_name), args)

    def decode(self, data: bytes) -> tuple[str, dict[str, Any]]:
        return decode(data, self.idl)

    def find_address(self, seeds: Sequence[bytes]) -> pda.ProgramDerivedAddress:
        """PDA owned by this program."""
        return pda.derive(seeds, self.program_id)

    def _seed_bytes(
        self,
        seed: IdlSeed,
        ix: IdlInstruction,
        resolved: Mapping[str, Pubkey],
        named_args: Mapping[str, Any],
    ) -> bytes:
        if seed.kind == "const":
            if isinstance(seed.value, str):
                return seed.value.encode("utf-8")
            if isinstance(seed.value, list):
                return bytes(seed.value)
            raise IdlError("unsupported const seed", instruction=ix.name, value=repr(seed.value))
        path = seed.path or ""
        if "." in path:
            raise IdlError("seeds from account data are not supported", instruction=ix.name, path=path)
        if seed.kind == "account":
            key = resolved.get(snake_case(path))
            if key is None:
                raise ArgumentMismatchError("seed account not provided", method=ix.name, account=path)
            return bytes(key)
        arg = next((a for a in ix.args if snake_case(a.name) == snake_case(path)), None)
        if arg is None or arg.name not in named_args:
            raise ArgumentMismatchError("seed argument not provided", method=ix.name, arg=path)
        value = named_args[arg.name]
        if isinstance(value, Pubkey):
            return bytes(value)
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, str):
            return value.encode("utf-8")
        return self._codec.layout(arg.type).build(self._codec.check(value, arg.type, arg.name))

    def _resolve_account(
        self,
        acc: IdlAccountItem,
        ix: IdlInstruction,
        resolved: Mapping[str, Pubkey],
        named_args: Mapping[str, Any],
    ) -> Pubkey | None:
        if acc.address:
            return Pubkey.from_string(acc.address)
        if acc.pda is not None:
            if acc.pda.program is not None:
                raise IdlError("PDAs owned by another program are not supported", account=acc.name)
            seeds = [self._seed_bytes(s, ix, resolved, named_args) for s in acc.pda.seeds]
            return self.find_address(seeds).address
        return WELL_KNOWN_ACCOUNTS.get(snake_case(acc.name))

    def accounts_for(
        self,
        method_name: str,
        accounts: Mapping[str, Pubkey],
        args: Sequence[Any] | Mapping[str, Any] = (),
    ) -> list[AccountMeta]:
        """
        AccountMetas in IDL order with IDL signer/writable flags.
        Caller-supplied keys win; PDAs, fixed addresses and well-known programs are filled in.
        """
        ix = self.idl.instruction(method_name)
        declared = {snake_case(a.name): a for a in ix.accounts}
        given = {snake_case(k): v for k, v in accounts.items()}
        extra = sorted(k for k in given if k not in declared)
        if extra:
            raise ArgumentMismatchError("undeclared accounts", method=ix.name, accounts=extra)
        named = _named_args(ix, args) if args else {}

        resolved: dict[str, Pubkey] = dict(given)
        pending = [a for a in ix.accounts if snake_case(a.name) not in resolved]
        # PDA seeds may reference accounts declared after them
        while pending:
            progress = False
            for acc in list(pending):
                try:
                    key = self._resolve_account(acc, ix, resolved, named)
                except ArgumentMismatchError:
                    continue
                if key is None:
                    if not acc.optional:
                        raise ArgumentMismatchError("account not provided", method=ix.name, account=acc.name)
                    # Anchor encodes an absent optional account as the program id
                    key = self.program_id
                resolved[snake_case(acc.name)] = key
                pending.remove(acc)
                progress = True
            if not progress:
                names = [a.name for a in pending]
                raise ArgumentMismatchError("could not resolve accounts", method=ix.name, accounts=names)

        metas = []
        for acc in ix.accounts:
            key = resolved[snake_case(acc.name)]
            if not isinstance(key, Pubkey):
                raise ArgumentMismatchError(
                    "account must be a Pubkey", method=ix.name, account=acc.name, got=type(key).__name__
                )
            metas.append(AccountMeta(pubkey=key, is_signer=acc.signer, is_writable=acc.writable))
        return metas

    def instruction(
        self,
        method_name: str,
        args: Sequence[Any] | Mapping[str, Any],
        accounts: Mapping[str, Pubkey],
    ) -> Instruction:
        data = self.encode(method_name, args)
        metas = self.accounts_for(method_name, accounts, args)
        logger.debug(
            "instruction_built",
            program=self.idl.name,
            method=method_name,
            data_len=len(data),
            accounts=[str(m.pubkey) for m in metas],
        )
        return Instruction(program_id=self.program_id, data=data, accounts=metas)
