"""
prereq-client: Solana devnet wallet provisioning and program enrollment.

Generates and loads test wallets, funds them from the devnet faucet, transfers
SOL, and submits the Anchor `complete` enrollment instruction. The transaction
path (PDA derivation, IDL encoding, building, signing, submission and
confirmation) lives in prereq_client.chain; command-line entry points live in
prereq_client.cli.
"""

__version__ = "0.1.0"
