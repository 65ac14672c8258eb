"""
Chain Registry
Static mapping from a chain identifier to its explorer endpoint and credentials
"""
import itertools
from dataclasses import dataclass
from typing import Dict, List

from farguard.config import settings
from farguard.errors import UnsupportedChain

# Round-robin cycle for explorer API keys; an empty key still works, just rate-limited
_explorer_keys = settings.etherscan_keys
_explorer_cycle = itertools.cycle(_explorer_keys) if _explorer_keys else itertools.cycle([""])


@dataclass(frozen=True)
class ChainConfig:
    key: str
    name: str
    chain_id: int
    api_url: str
    explorer_url: str


def next_api_key() -> str:
    """Next explorer key from the shared rotation."""
    return next(_explorer_cycle)


CHAIN_CONFIGS: Dict[str, ChainConfig] = {
    "ethereum": ChainConfig(
        key="ethereum",
        name="Ethereum",
        chain_id=1,
        api_url=settings.etherscan_api_url,
        explorer_url="https://etherscan.io",
    ),
    "base": ChainConfig(
        key="base",
        name="Base",
        chain_id=8453,
        api_url=settings.etherscan_api_url,
        explorer_url="https://basescan.org",
    ),
    "arbitrum": ChainConfig(
        key="arbitrum",
        name="Arbitrum",
        chain_id=42161,
        api_url=settings.etherscan_api_url,
        explorer_url="https://arbiscan.io",
    ),
    "celo": ChainConfig(
        key="celo",
        name="Celo",
        chain_id=42220,
        api_url=settings.etherscan_api_url,
        explorer_url="https://celoscan.io",
    ),
}


def get_chain_config(chain: str) -> ChainConfig:
    """Resolve a chain identifier (case-insensitive) or raise UnsupportedChain."""
    config = CHAIN_CONFIGS.get((chain or "").strip().lower())
    if config is None:
        raise UnsupportedChain(chain)
    return config


def supported_chains() -> List[ChainConfig]:
    return list(CHAIN_CONFIGS.values())
