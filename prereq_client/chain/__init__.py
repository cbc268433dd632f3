# Transaction path: keys -> PDA -> IDL encoding -> build/sign -> submit/confirm.

from prereq_client.chain.encoder import ProgramInterface, decode, discriminator, encode
from prereq_client.chain.idl import Idl, load_idl
from prereq_client.chain.keypairs import generate, load
from prereq_client.chain.ledger_client import BlockReference, LedgerStatus, SolanaLedgerClient
from prereq_client.chain.pda import ProgramDerivedAddress, create_program_address, derive
from prereq_client.chain.pipeline import Confirmation, ConfirmationStatus, SubmissionPipeline
from prereq_client.chain.transaction import (
    Transaction,
    TransactionState,
    build,
    serialize,
    sign,
    transfer_instruction,
)

__all__ = [
    "BlockReference",
    "Confirmation",
    "ConfirmationStatus",
    "Idl",
    "LedgerStatus",
    "ProgramDerivedAddress",
    "ProgramInterface",
    "SolanaLedgerClient",
    "SubmissionPipeline",
    "Transaction",
    "TransactionState",
    "build",
    "create_program_address",
    "decode",
    "derive",
    "discriminator",
    "encode",
    "generate",
    "load",
    "load_idl",
    "serialize",
    "sign",
    "transfer_instruction",
]
