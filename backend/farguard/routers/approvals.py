"""
Approvals Router
HTTP mapping for listing, creating, revoking and deleting token approvals
"""
from fastapi import APIRouter, Body, HTTPException
from pydantic import ValidationError
from typing import Any, List, Optional
from farguard.errors import ClientInputError
from farguard.schemas import Approval, ApprovalCreate, BatchRevokeIn
from farguard.services.approval_service import ApprovalService
from farguard.services.approval_store import get_store
from farguard.services.chain_registry import supported_chains
from farguard.services.revocation import revoke_approval, batch_revoke_approvals
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["approvals"])

_approval_service: Optional[ApprovalService] = None

def get_approval_service() -> ApprovalService:
    """Get or initialize the approval service"""
    global _approval_service
    if _approval_service is None:
        _approval_service = ApprovalService(get_store())
    return _approval_service

@router.get("/chains")
def list_chains():
    """Chains the explorer pipeline can query"""
    return [
        {"value": c.key, "name": c.name, "chainId": c.chain_id, "explorerUrl": c.explorer_url}
        for c in supported_chains()
    ]

@router.get("/approvals", response_model=List[Approval])
async def list_stored_approvals(userId: Optional[int] = None):
    """Stored approvals, optionally for one owner"""
    return await get_approval_service().list_stored(userId)

@router.get("/approvals/{wallet_address}/{chain}", response_model=List[Approval])
async def list_wallet_approvals(wallet_address: str, chain: str):
    """
    Discover the approvals a wallet has granted on a chain.

    Approvals are read from the wallet's transaction history, deduplicated
    against stored records and persisted. If the explorer is unavailable the
    stored records are returned.
    """
    try:
        return await get_approval_service().list_approvals(wallet_address, chain)
    except ClientInputError:
        raise
    except Exception as e:
        logger.exception(f"Failed to fetch approvals for {wallet_address} on {chain}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Failed to fetch approvals: {str(e)}")

@router.post("/approvals", response_model=Approval, status_code=201)
async def create_approval(body: ApprovalCreate):
    """Record an approval directly"""
    return await get_approval_service().create_approval(body)

@router.post("/approvals/batch-revoke")
async def batch_revoke(payload: Any = Body(...)):
    """Revoke several approvals; partial success is reported, not raised"""
    if not isinstance(payload, dict) or not isinstance(payload.get("approvalIds"), list):
        raise HTTPException(status_code=400, detail="approvalIds must be an array")
    try:
        body = BatchRevokeIn.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid approvalIds: {e.errors()[0]['msg']}")

    result = await batch_revoke_approvals(get_approval_service().store, body.approval_ids)
    return {
        "message": result.message,
        "successCount": result.success_count,
        "totalCount": result.total_count,
        "failedIds": result.failed_ids,
    }

@router.post("/approvals/{approval_id}/revoke")
async def revoke(approval_id: int):
    """Mark an approval revoked"""
    if not await revoke_approval(get_approval_service().store, approval_id):
        raise HTTPException(status_code=404, detail="Approval not found")
    return {"message": "Approval revoked successfully"}

@router.delete("/approvals/{approval_id}")
async def delete(approval_id: int):
    """Delete an approval record (distinct from revoking it)"""
    if not await get_approval_service().delete_approval(approval_id):
        raise HTTPException(status_code=404, detail="Approval not found")
    return {"message": "Approval deleted successfully"}
