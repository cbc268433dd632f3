"""
Anchor IDL document model.

Accepts both the legacy layout (top-level "name", isMut/isSigner,
"publicKey", metadata.address) and the 0.30+ layout (metadata.name,
writable/signer, "pubkey", explicit discriminators, top-level address).
Documents are validated with pydantic once at load time; the encoder then
only deals with normalised models.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from prereq_client.errors import IdlError, UnknownMethodError


def snake_case(name: str) -> str:
    """camelCase / PascalCase -> snake_case (Anchor sighash uses the Rust fn name)."""
    s = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    s = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s)
    return s.lower()


class IdlSeed(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: Literal["const", "account", "arg"]
    value: Any = None
    path: str | None = None
    type: Any = None


class IdlPda(BaseModel):
    model_config = ConfigDict(extra="ignore")

    seeds: list[IdlSeed]
    program: Any = None


class IdlAccountItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    writable: bool = False
    signer: bool = False
    optional: bool = False
    address: str | None = None
    pda: IdlPda | None = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_flags(cls, data: Any) -> Any:
        if isinstance(data, dict):
            if "accounts" in data:
                raise ValueError(f"composite account group {data.get('name')!r} is not supported")
            data = dict(data)
            if "isMut" in data:
                data.setdefault("writable", data.pop("isMut"))
            if "isSigner" in data:
                data.setdefault("signer", data.pop("isSigner"))
            if "isOptional" in data:
                data.setdefault("optional", data.pop("isOptional"))
        return data


class IdlField(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    type: Any


class IdlEnumVariant(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    fields: list[IdlField] | None = None


class IdlTypeBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: Literal["struct", "enum"]
    fields: list[IdlField] = Field(default_factory=list)
    variants: list[IdlEnumVariant] = Field(default_factory=list)


class IdlTypeDef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    type: IdlTypeBody


class IdlInstruction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    accounts: list[IdlAccountItem] = Field(default_factory=list)
    args: list[IdlField] = Field(default_factory=list)
    discriminator: list[int] | None = None

    @property
    def arg_names(self) -> list[str]:
        return [a.name for a in self.args]


class Idl(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    version: str = "0.0.0"
    address: str | None = None
    instructions: list[IdlInstruction]
    types: list[IdlTypeDef] = Field(default_factory=list)
    accounts: list[Any] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalise_layout(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        metadata = data.get("metadata") or {}
        if "name" not in data and metadata.get("name"):
            data["name"] = metadata["name"]
        if "version" not in data and metadata.get("version"):
            data["version"] = metadata["version"]
        if not data.get("address") and metadata.get("address"):
            data["address"] = metadata["address"]
        # Legacy IDLs declare account structs (with layouts) under "accounts"
        legacy_types = [a for a in data.get("accounts") or [] if isinstance(a, dict) and "type" in a]
        if legacy_types:
            known = {t.get("name") for t in data.get("types") or []}
            data["types"] = list(data.get("types") or []) + [t for t in legacy_types if t.get("name") not in known]
        return data

    def instruction(self, method_name: str) -> IdlInstruction:
        """Look up an instruction by exact, camelCase or snake_case name."""
        wanted = snake_case(method_name)
        for ix in self.instructions:
            if ix.name == method_name or snake_case(ix.name) == wanted:
                return ix
        raise UnknownMethodError(
            "method not declared in IDL",
            method=method_name,
            program=self.name,
        )

    def type_def(self, name: str) -> IdlTypeDef:
        for t in self.types:
            if t.name == name:
                return t
        raise IdlError("defined type not declared in IDL", type=name, program=self.name)


def load_idl(source: str | Path | dict[str, Any]) -> Idl:
    """Load and validate an IDL from a path or an already-parsed JSON dict."""
    if isinstance(source, dict):
        data = source
        origin = "<dict>"
    else:
        path = Path(source)
        origin = str(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise IdlError("IDL is not valid JSON", path=origin) from e
    try:
        return Idl.model_validate(data)
    except ValidationError as e:
        raise IdlError("IDL does not match the Anchor schema", path=origin, errors=e.error_count()) from e
