"""
Etherscan API Client
Explorer queries (transaction lists, contract source, token info) for every registered chain
"""
import httpx
import logging
import time
from typing import Optional, Dict, Any
from farguard.config import settings
from farguard.errors import UpstreamFetchFailure
from farguard.services.chain_registry import ChainConfig, next_api_key

logger = logging.getLogger(__name__)

# Shared HTTP client with connection pooling
_etherscan_client: Optional[httpx.AsyncClient] = None

async def _get_etherscan_client() -> httpx.AsyncClient:
    """Get or create shared HTTP client with connection pooling"""
    global _etherscan_client
    if _etherscan_client is None:
        _etherscan_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.explorer_timeout, connect=settings.explorer_connect_timeout),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
            http2=True
        )
    return _etherscan_client

async def close_etherscan_client() -> None:
    """Close the shared client (called on application shutdown)"""
    global _etherscan_client
    if _etherscan_client is not None:
        await _etherscan_client.aclose()
        _etherscan_client = None

async def etherscan_get(chain: ChainConfig, module: str, action: str, **params) -> Dict[str, Any]:
    """Send GET request to the chain's explorer API

    Args:
        chain: Registered chain configuration (endpoint, chain id, credentials)
        module: API module name
        action: API action name
        **params: Additional query parameters

    Raises:
        UpstreamFetchFailure: transport error, timeout, HTTP error status or non-JSON body
    """
    q = {"module": module, "action": action, "chainid": chain.chain_id, "apikey": next_api_key(), **params}
    client = await _get_etherscan_client()
    start_time = time.time()
    try:
        r = await client.get(chain.api_url, params=q)
        r.raise_for_status()
        payload = r.json()
    except httpx.TimeoutException as e:
        raise UpstreamFetchFailure(f"{chain.name} explorer timed out on {module}.{action}") from e
    except httpx.HTTPError as e:
        raise UpstreamFetchFailure(f"{chain.name} explorer request {module}.{action} failed: {e}") from e
    except ValueError as e:
        raise UpstreamFetchFailure(f"{chain.name} explorer returned invalid JSON for {module}.{action}") from e
    logger.debug(f"⏱️ [TIMING] {chain.name} {module}.{action}: {time.time() - start_time:.2f}s")
    if not isinstance(payload, dict):
        raise UpstreamFetchFailure(f"{chain.name} explorer returned unexpected payload for {module}.{action}")
    return payload

async def get_transaction_list(address: str, chain: ChainConfig, startblock: int = 0, endblock: int = 99999999,
                               page: int = 1, offset: int = 100, sort: str = "desc") -> Dict[str, Any]:
    """Get list of normal transactions for an address

    Args:
        address: Wallet address
        chain: Chain configuration
        startblock: Start block number
        endblock: End block number
        page: Page number
        offset: Number of transactions per page
        sort: Sort order (asc/desc)
    """
    return await etherscan_get(
        chain,
        "account",
        "txlist",
        address=address,
        startblock=startblock,
        endblock=endblock,
        page=page,
        offset=offset,
        sort=sort
    )

async def get_contract_source(address: str, chain: ChainConfig) -> Optional[Dict[str, Any]]:
    """Get verified source metadata for a contract (first ``getsourcecode`` row)"""
    result = await etherscan_get(chain, "contract", "getsourcecode", address=address)
    rows = result.get("result")
    if isinstance(rows, list) and rows and isinstance(rows[0], dict):
        return rows[0]
    return None

async def get_token_info(address: str, chain: ChainConfig) -> Optional[Dict[str, Any]]:
    """Get token metadata (name, symbol, divisor, type) for a contract"""
    result = await etherscan_get(chain, "token", "tokeninfo", contractaddress=address)
    if str(result.get("status")) != "1":
        return None
    info = result.get("result")
    if isinstance(info, list):
        info = info[0] if info else None
    return info if isinstance(info, dict) else None

def _safe_int(value: Any) -> int:
    """Parse decimal or hex string into int."""
    if value in (None, "", "0x", "0X"):
        return 0
    try:
        value = str(value)
        if value.lower().startswith("0x"):
            return int(value, 16)
        return int(value, 10)
    except (ValueError, TypeError):
        return 0
