"""
Approval Service
Drives discovery (fetch -> decode -> reconcile) and owns the ApprovalEvent -> Approval translation
"""
import logging
from typing import AsyncIterable, Dict, List, Optional

from farguard.config import settings
from farguard.schemas import Approval, ApprovalCreate, ApprovalEvent, normalize_address
from farguard.services.approval_decoder import ApprovalDecoder
from farguard.services.approval_store import ApprovalStore
from farguard.services.chain_registry import get_chain_config
from farguard.services.contract_resolver import ContractResolver
from farguard.services.transaction_fetcher import fetch_history

logger = logging.getLogger(__name__)


def event_to_approval(event: ApprovalEvent, chain: str, wallet_address: Optional[str] = None,
                      user_id: Optional[int] = None) -> ApprovalCreate:
    return ApprovalCreate(
        user_id=user_id,
        wallet_address=wallet_address or event.from_address,
        contract_address=event.contract_address,
        token_name=event.token_name,
        token_symbol=event.token_symbol,
        token_type=event.token_type,
        spender_address=event.spender_address,
        approved_amount=event.value,
        chain=chain,
        is_unlimited=event.is_unlimited,
        is_revoked=False,
    )


class ApprovalReconciler:
    """Merges decoded events with stored approvals, deduplicating by contract address."""

    def __init__(self, store: ApprovalStore, update_on_rediscovery: Optional[bool] = None):
        self.store = store
        self.update_on_rediscovery = (
            settings.update_on_rediscovery if update_on_rediscovery is None else update_on_rediscovery
        )

    async def reconcile(self, chain: str, events: AsyncIterable[ApprovalEvent],
                        wallet_address: Optional[str] = None) -> List[Approval]:
        """Return one record per contract, in discovery order.

        Events arrive most recent first, so the first event seen for a
        contract is the one that counts for this pass.
        """
        chain = chain.lower()
        results: Dict[str, Approval] = {}
        created = 0

        async for event in events:
            contract = event.contract_address.lower()
            if contract in results:
                continue

            existing = await self.store.find_by_contract(contract, chain, wallet_address)
            if existing is None:
                record = await self.store.create(event_to_approval(event, chain, wallet_address))
                created += 1
            elif self.update_on_rediscovery and not existing.is_revoked and self._changed(existing, event):
                record = await self.store.update(
                    existing.id,
                    spender_address=event.spender_address,
                    approved_amount=event.value,
                    is_unlimited=event.is_unlimited,
                ) or existing
            else:
                record = existing
            results[contract] = record

        logger.info(f"Reconciled {len(results)} approvals on {chain} ({created} new)")
        return list(results.values())

    @staticmethod
    def _changed(existing: Approval, event: ApprovalEvent) -> bool:
        return (
            existing.spender_address != event.spender_address.lower()
            or existing.approved_amount != event.value
        )


class ApprovalService:
    def __init__(self, store: ApprovalStore):
        self.store = store
        self.reconciler = ApprovalReconciler(store)

    async def list_approvals(self, wallet_address: str, chain: str) -> List[Approval]:
        """Discover, persist and return the approvals of a wallet on a chain.

        InvalidAddress and UnsupportedChain are raised before any work is done.
        When the explorer fails the stored approvals for the wallet are
        returned instead, possibly stale.
        """
        wallet = normalize_address(wallet_address)
        config = get_chain_config(chain)

        history = await fetch_history(wallet, config.key)
        if not history.ok:
            return await self._fallback(wallet, config.key, history.error)

        decoder = ApprovalDecoder(ContractResolver(config))
        try:
            return await self.reconciler.reconcile(
                config.key, decoder.decode(history.transactions, owner=wallet), wallet_address=wallet
            )
        except Exception as e:
            logger.exception(f"Approval discovery failed for {wallet} on {config.key}: {e}")
            return await self._fallback(wallet, config.key, str(e))

    async def _fallback(self, wallet: str, chain: str, reason: Optional[str]) -> List[Approval]:
        stored = await self.store.list_by_chain(chain, wallet)
        logger.warning(f"Serving {len(stored)} stored approvals for {wallet} on {chain}: {reason}")
        return stored

    async def list_stored(self, user_id: Optional[int] = None) -> List[Approval]:
        return await self.store.list(user_id)

    async def create_approval(self, approval: ApprovalCreate) -> Approval:
        return await self.store.create(approval)

    async def delete_approval(self, approval_id: int) -> bool:
        deleted = await self.store.delete(approval_id)
        if deleted:
            logger.info(f"Deleted approval {approval_id}")
        return deleted
