"""
Revocation Handler
Updates the bookkeeping record only; the on-chain revoke transaction is sent by the wallet
"""
import asyncio
import logging
from typing import Iterable

from farguard.schemas import BatchRevokeResult
from farguard.services.approval_store import ApprovalStore

logger = logging.getLogger(__name__)


async def revoke_approval(store: ApprovalStore, approval_id: int) -> bool:
    """Mark one approval revoked. Returns False when the id does not exist.

    Revoking an already revoked approval is a no-op that still returns True.
    """
    found = await store.revoke(approval_id)
    if found:
        logger.info(f"Approval {approval_id} marked revoked")
    else:
        logger.info(f"Revoke requested for unknown approval {approval_id}")
    return found


async def batch_revoke_approvals(store: ApprovalStore, approval_ids: Iterable[int]) -> BatchRevokeResult:
    """Revoke each id independently; counts are computed after every call settles."""
    ids = list(approval_ids)
    outcomes = await asyncio.gather(*(revoke_approval(store, i) for i in ids), return_exceptions=True)

    failed = []
    for approval_id, outcome in zip(ids, outcomes):
        if isinstance(outcome, Exception):
            logger.warning(f"Error revoking approval {approval_id}: {outcome}")
            failed.append(approval_id)
        elif not outcome:
            failed.append(approval_id)

    result = BatchRevokeResult(
        success_count=len(ids) - len(failed),
        total_count=len(ids),
        failed_ids=failed,
    )
    logger.info(result.message)
    return result
