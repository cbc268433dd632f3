"""
Environment variable loading for prereq-client.

- SOLANA_NETWORK: devnet | testnet | mainnet (default: devnet)
- SOLANA_RPC_URL: RPC endpoint override
- PREREQ_PROGRAM_ID: enrollment program id (default: bundled IDL address)
- PREREQ_IDL_PATH: IDL JSON override (default: bundled IDL)
- WALLET_PATH: wallet JSON file (default: dev-wallet.json in the working directory)
- Loads .env from the working directory when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

_PACKAGE_DIR = Path(__file__).resolve().parent.parent

DEVNET_RPC_URL = "https://api.devnet.solana.com"
TESTNET_RPC_URL = "https://api.testnet.solana.com"
MAINNET_RPC_URL = "https://api.mainnet-beta.solana.com"

_RPC_URLS = {
    "devnet": DEVNET_RPC_URL,
    "testnet": TESTNET_RPC_URL,
    "mainnet": MAINNET_RPC_URL,
}

DEFAULT_IDL_PATH = _PACKAGE_DIR / "idl" / "wba_prereq.json"
DEFAULT_WALLET_FILENAME = "dev-wallet.json"
EXPLORER_TX_URL = "https://explorer.solana.com/tx/{signature}?cluster={cluster}"
EXPLORER_ADDRESS_URL = "https://explorer.solana.com/address/{address}?cluster={cluster}"


def load_prereq_env() -> None:
    """Load .env from the working directory. Existing variables win; safe to call repeatedly."""
    load_dotenv(find_dotenv(usecwd=True), override=False)


def _env(name: str) -> str:
    return (os.getenv(name) or "").strip()


def parse_bool_env(name: str, default: bool = False) -> bool:
    raw = _env(name).lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return default


def get_solana_network() -> str:
    """Return SOLANA_NETWORK (or SOLANA_CLUSTER) normalised to devnet | testnet | mainnet."""
    load_prereq_env()
    raw = (_env("SOLANA_NETWORK") or _env("SOLANA_CLUSTER") or "devnet").lower()
    if raw in ("mainnet", "mainnet-beta"):
        return "mainnet"
    if raw == "testnet":
        return "testnet"
    return "devnet"


def get_solana_rpc_url() -> str:
    """SOLANA_RPC_URL if set, else the public endpoint for the configured network."""
    load_prereq_env()
    return _env("SOLANA_RPC_URL") or _RPC_URLS[get_solana_network()]


def get_program_id() -> str | None:
    """PREREQ_PROGRAM_ID if set. None means: use the address declared in the IDL."""
    load_prereq_env()
    return _env("PREREQ_PROGRAM_ID") or None


def get_idl_path() -> Path:
    load_prereq_env()
    path = _env("PREREQ_IDL_PATH")
    return Path(path) if path else DEFAULT_IDL_PATH


def get_wallet_path() -> Path:
    load_prereq_env()
    path = _env("WALLET_PATH")
    return Path(path) if path else Path.cwd() / DEFAULT_WALLET_FILENAME


def _explorer_cluster(network: str | None = None) -> str:
    network = network or get_solana_network()
    return "mainnet-beta" if network == "mainnet" else network


def explorer_tx_url(signature: str, network: str | None = None) -> str:
    return EXPLORER_TX_URL.format(signature=signature, cluster=_explorer_cluster(network))


def explorer_address_url(address: str, network: str | None = None) -> str:
    return EXPLORER_ADDRESS_URL.format(address=address, cluster=_explorer_cluster(network))
