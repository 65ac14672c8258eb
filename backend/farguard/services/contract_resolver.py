"""
Contract Resolver
Looks up name/symbol/decimals/type for contracts referenced by approval calls
"""
import asyncio
import logging
from typing import Dict, Iterable, Optional

from farguard.config import settings
from farguard.errors import UpstreamFetchFailure
from farguard.schemas import ContractInfo, ContractType
from farguard.services.chain_registry import ChainConfig
from farguard.services.etherscan_client import get_contract_source, get_token_info, _safe_int

logger = logging.getLogger(__name__)

UNKNOWN_SYMBOL = "UNKNOWN"
DEFAULT_DECIMALS = 18

_TYPE_ALIASES = {
    "erc20": ContractType.ERC20,
    "erc-20": ContractType.ERC20,
    "erc721": ContractType.ERC721,
    "erc-721": ContractType.ERC721,
    "erc1155": ContractType.ERC1155,
    "erc-1155": ContractType.ERC1155,
}


def _parse_contract_type(raw) -> Optional[ContractType]:
    if not raw:
        return None
    return _TYPE_ALIASES.get(str(raw).strip().lower())


def _infer_type_from_abi(abi: str) -> ContractType:
    """Guess the token standard from the verified ABI text."""
    abi = abi or ""
    if "balanceOfBatch" in abi:
        return ContractType.ERC1155
    if "ownerOf" in abi and "setApprovalForAll" in abi:
        return ContractType.ERC721
    return ContractType.ERC20


class ContractResolver:
    """Resolves ContractInfo for one chain, caching each address once per instance."""

    def __init__(self, chain: ChainConfig, concurrency: Optional[int] = None):
        self.chain = chain
        self._cache: Dict[str, Optional[ContractInfo]] = {}
        self._semaphore = asyncio.Semaphore(max(1, concurrency or settings.resolver_concurrency))

    async def resolve(self, address: str) -> Optional[ContractInfo]:
        """Return ContractInfo, or None when the contract has no verified source.

        Token metadata is best-effort: when it is missing the result keeps the
        contract name with ``UNKNOWN`` symbol and 18 decimals.
        """
        address = (address or "").lower()
        if address in self._cache:
            return self._cache[address]
        async with self._semaphore:
            info = await self._lookup(address)
        self._cache[address] = info
        return info

    async def resolve_many(self, addresses: Iterable[str]) -> Dict[str, Optional[ContractInfo]]:
        unique = list(dict.fromkeys(a.lower() for a in addresses if a))
        results = await asyncio.gather(*(self.resolve(a) for a in unique))
        return dict(zip(unique, results))

    async def _lookup(self, address: str) -> Optional[ContractInfo]:
        try:
            source = await get_contract_source(address, self.chain)
        except UpstreamFetchFailure as e:
            logger.warning(f"Contract source lookup failed for {address} on {self.chain.key}: {e}")
            return None
        if not source or not source.get("ContractName"):
            logger.debug(f"No verified source for {address} on {self.chain.key}")
            return None

        try:
            token = await get_token_info(address, self.chain)
        except UpstreamFetchFailure as e:
            logger.info(f"Token metadata unavailable for {address} on {self.chain.key}: {e}")
            token = None
        token = token or {}

        divisor = str(token.get("divisor") or "").strip()
        decimals = _safe_int(divisor) if divisor.isdigit() else DEFAULT_DECIMALS

        return ContractInfo(
            address=address,
            name=token.get("tokenName") or source["ContractName"],
            symbol=token.get("symbol") or UNKNOWN_SYMBOL,
            decimals=decimals,
            type=_parse_contract_type(token.get("tokenType")) or _infer_type_from_abi(source.get("ABI", "")),
        )
