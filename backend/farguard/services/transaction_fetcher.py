"""
Transaction Fetcher
Retrieves a wallet's transaction history (most recent first) from the chain explorer
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from farguard.config import settings
from farguard.errors import UpstreamFetchFailure
from farguard.schemas import RawTransaction, normalize_address
from farguard.services.chain_registry import ChainConfig, get_chain_config
from farguard.services.etherscan_client import get_transaction_list, _safe_int

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Outcome of a history fetch; ``ok`` is False when the explorer failed."""
    transactions: List[RawTransaction] = field(default_factory=list)
    ok: bool = True
    error: Optional[str] = None


def _is_empty_history(res: Dict[str, Any]) -> bool:
    message = str(res.get("message") or "").lower()
    return "no transactions found" in message or res.get("result") == []


def _normalize_tx(tx: Dict[str, Any]) -> Optional[RawTransaction]:
    if not isinstance(tx, dict) or not tx.get("hash"):
        return None
    return RawTransaction(
        hash=tx["hash"],
        block_number=_safe_int(tx.get("blockNumber")),
        timestamp=_safe_int(tx.get("timeStamp")),
        from_address=(tx.get("from") or "").lower(),
        to_address=(tx.get("to") or "").lower(),
        input_data=(tx.get("input") or "0x").lower(),
        is_error=str(tx.get("isError", "0")) == "1",
    )


async def _fetch_pages(wallet: str, chain: ChainConfig) -> List[RawTransaction]:
    transactions: List[RawTransaction] = []
    page = 1
    offset = settings.tx_page_size

    while page <= settings.tx_max_pages:
        res = await get_transaction_list(wallet, chain, page=page, offset=offset, sort="desc")

        if str(res.get("status")) != "1":
            if _is_empty_history(res):
                break
            raise UpstreamFetchFailure(f"{chain.name} explorer error: {res.get('message')} {res.get('result')}")

        rows = res.get("result")
        if not isinstance(rows, list):
            raise UpstreamFetchFailure(f"{chain.name} explorer returned non-list result")

        for row in rows:
            tx = _normalize_tx(row)
            if tx is not None:
                transactions.append(tx)

        if len(rows) < offset:
            break
        page += 1

    return transactions


async def fetch_history(wallet_address: str, chain: str) -> FetchResult:
    """Fetch a wallet's transactions, reporting explorer failure explicitly.

    Raises InvalidAddress / UnsupportedChain for bad caller input; every
    upstream problem becomes ``FetchResult(ok=False)``.
    """
    wallet = normalize_address(wallet_address)
    config = get_chain_config(chain)
    try:
        transactions = await _fetch_pages(wallet, config)
    except UpstreamFetchFailure as e:
        logger.warning(f"Transaction fetch failed for {wallet} on {config.key}: {e}")
        return FetchResult(ok=False, error=str(e))
    logger.info(f"Fetched {len(transactions)} transactions for {wallet} on {config.key}")
    return FetchResult(transactions=transactions)


async def fetch_transactions(wallet_address: str, chain: str) -> List[RawTransaction]:
    """Transactions for a wallet, most recent first; empty when the fetch failed."""
    result = await fetch_history(wallet_address, chain)
    return result.transactions
