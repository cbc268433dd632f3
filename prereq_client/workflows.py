"""
The four prerequisite steps as library calls: airdrop, transfer, drain, enroll.

Each step fetches a fresh blockhash, builds and signs its transaction and
hands it to the SubmissionPipeline. They return a Confirmation; the CLI turns
that into output and an exit code.
"""

from __future__ import annotations

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from prereq_client.chain import pda
from prereq_client.chain.encoder import ProgramInterface
from prereq_client.chain.pipeline import Confirmation, SubmissionPipeline
from prereq_client.chain.transaction import build, sign, transfer_instruction
from prereq_client.errors import InsufficientFundsError
from prereq_client.logging import get_logger

logger = get_logger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000
DEFAULT_AIRDROP_LAMPORTS = 2 * LAMPORTS_PER_SOL
DEFAULT_TRANSFER_LAMPORTS = LAMPORTS_PER_SOL // 10
ENROLL_METHOD = "complete"
PREREQ_SEED = b"prereq"


def sol_to_lamports(sol: float) -> int:
    return int(round(sol * LAMPORTS_PER_SOL))


def lamports_to_sol(lamports: int) -> float:
    return lamports / LAMPORTS_PER_SOL


def prereq_address(program_id: Pubkey, signer: Pubkey) -> pda.ProgramDerivedAddress:
    """Enrollment account PDA: seeds ["prereq", signer]."""
    return pda.derive([PREREQ_SEED, bytes(signer)], program_id)


def request_airdrop(pipeline: SubmissionPipeline, address: Pubkey, lamports: int = DEFAULT_AIRDROP_LAMPORTS) -> Confirmation:
    logger.info("airdrop_requested", address=str(address), lamports=lamports)
    return pipeline.request_airdrop(address, lamports)


def transfer(pipeline: SubmissionPipeline, sender: Keypair, recipient: Pubkey, lamports: int) -> Confirmation:
    ref = pipeline.fresh_block_reference()
    ix = transfer_instruction(sender.pubkey(), recipient, lamports)
    tx = sign(build([ix], sender.pubkey(), ref), [sender])
    logger.info("transfer_submitting", sender=str(sender.pubkey()), recipient=str(recipient), lamports=lamports)
    return pipeline.submit(tx)


def drain(pipeline: SubmissionPipeline, sender: Keypair, recipient: Pubkey) -> Confirmation:
    """
    Send the whole balance minus the fee. The fee is quoted for a draft of the
    same message (same accounts, same blockhash), then the amount is rebuilt.
    """
    ledger = pipeline.ledger
    balance = ledger.get_balance(sender.pubkey())
    ref = pipeline.fresh_block_reference()
    draft = build([transfer_instruction(sender.pubkey(), recipient, balance)], sender.pubkey(), ref)
    fee = ledger.get_fee_for_message(draft.message)
    amount = balance - fee
    if amount <= 0:
        raise InsufficientFundsError(
            "balance does not cover the transfer fee",
            address=str(sender.pubkey()),
            balance=balance,
            fee=fee,
        )
    tx = sign(build([transfer_instruction(sender.pubkey(), recipient, amount)], sender.pubkey(), ref), [sender])
    logger.info(
        "drain_submitting",
        sender=str(sender.pubkey()),
        recipient=str(recipient),
        lamports=amount,
        fee=fee,
    )
    return pipeline.submit(tx)


def enrollment_instruction(
    program: ProgramInterface,
    signer: Pubkey,
    github: str | bytes,
    method: str = ENROLL_METHOD,
) -> Instruction:
    github_bytes = github.encode("utf-8") if isinstance(github, str) else bytes(github)
    return program.instruction(method, [github_bytes], {"signer": signer})


def submit_enrollment(
    pipeline: SubmissionPipeline,
    program: ProgramInterface,
    signer: Keypair,
    github: str | bytes,
    method: str = ENROLL_METHOD,
) -> Confirmation:
    """Encode and submit the enrollment instruction signed (and paid) by signer."""
    ix = enrollment_instruction(program, signer.pubkey(), github, method)
    ref = pipeline.fresh_block_reference()
    tx = sign(build([ix], signer.pubkey(), ref), [signer])
    logger.info(
        "enrollment_submitting",
        program_id=str(program.program_id),
        method=method,
        signer=str(signer.pubkey()),
        prereq_account=str(prereq_address(program.program_id, signer.pubkey()).address),
    )
    return pipeline.submit(tx)
