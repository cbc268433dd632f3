"""
Transaction builder: assemble, sign and serialise legacy Solana transactions.

build() is pure assembly: instructions keep the caller's order and every
instruction keeps its account order; the message is compiled by solders.
Signatures are keyed by signer address, so sign() can be called in any order
and with extra keypairs; the wire layout (signatures ordered like the
message's signer keys) is produced only in serialize().
"""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from functools import cached_property

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction as WireTransaction

from prereq_client.chain.ledger_client import BlockReference
from prereq_client.errors import ArgumentMismatchError, IncompleteSignatureError, MissingSignerError
from prereq_client.logging import get_logger

logger = get_logger(__name__)


class TransactionState(str, enum.Enum):
    BUILT = "built"
    SIGNED = "signed"


@dataclass(frozen=True)
class Transaction:
    instructions: tuple[Instruction, ...]
    fee_payer: Pubkey
    block_reference: BlockReference
    signatures: dict[Pubkey, Signature] = field(default_factory=dict)

    @cached_property
    def message(self) -> Message:
        return Message.new_with_blockhash(list(self.instructions), self.fee_payer, self.block_reference.blockhash)

    @property
    def blockhash(self) -> Hash:
        return self.block_reference.blockhash

    @property
    def required_signers(self) -> list[Pubkey]:
        """Signer keys in message order; the fee payer is always first."""
        keys = self.message.account_keys
        return list(keys[: self.message.header.num_required_signatures])

    @property
    def missing_signers(self) -> list[Pubkey]:
        return [k for k in self.required_signers if k not in self.signatures]

    @property
    def state(self) -> TransactionState:
        return TransactionState.BUILT if self.missing_signers else TransactionState.SIGNED

    @property
    def signature(self) -> str | None:
        """Transaction id: the fee payer's signature, once present."""
        sig = self.signatures.get(self.fee_payer)
        return None if sig is None else str(sig)


def build(
    instructions: Sequence[Instruction],
    fee_payer: Pubkey,
    block_reference: BlockReference | Hash,
) -> Transaction:
    """Assemble an unsigned transaction. No I/O."""
    if not instructions:
        raise ArgumentMismatchError("transaction needs at least one instruction")
    if isinstance(block_reference, Hash):
        block_reference = BlockReference(blockhash=block_reference)
    tx = Transaction(instructions=tuple(instructions), fee_payer=fee_payer, block_reference=block_reference)
    logger.debug(
        "tx_built",
        fee_payer=str(fee_payer),
        instruction_count=len(tx.instructions),
        blockhash=str(tx.blockhash),
    )
    return tx


def sign(transaction: Transaction, keypairs: Iterable[Keypair]) -> Transaction:
    """
    Return a copy signed by every supplied keypair that is a required signer.
    Keypairs that are not required are ignored. Raises MissingSignerError if
    any required signer is still unsigned afterwards.
    """
    required = set(transaction.required_signers)
    message_bytes = bytes(transaction.message)
    signatures = dict(transaction.signatures)
    for kp in keypairs:
        pubkey = kp.pubkey()
        if pubkey in required:
            signatures[pubkey] = kp.sign_message(message_bytes)
    signed = dataclasses.replace(transaction, signatures=signatures)
    missing = signed.missing_signers
    if missing:
        raise MissingSignerError("required signers missing", signers=[str(k) for k in missing])
    return signed


def serialize(transaction: Transaction) -> bytes:
    """Wire bytes for sendTransaction. Raises IncompleteSignatureError unless fully signed."""
    missing = transaction.missing_signers
    if missing:
        raise IncompleteSignatureError("transaction is not fully signed", signers=[str(k) for k in missing])
    ordered = [transaction.signatures[k] for k in transaction.required_signers]
    return bytes(WireTransaction.populate(transaction.message, ordered))


def transfer_instruction(from_pubkey: Pubkey, to_pubkey: Pubkey, lamports: int) -> Instruction:
    """System program transfer."""
    if lamports < 0:
        raise ArgumentMismatchError("lamports must be non-negative", lamports=lamports)
    return transfer(TransferParams(from_pubkey=from_pubkey, to_pubkey=to_pubkey, lamports=lamports))
