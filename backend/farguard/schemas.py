"""
Pydantic models shared by the services and the HTTP layer.

JSON payloads use camelCase names (``contractAddress``, ``isRevoked``) since
that is what the wallet UI consumes; Python code uses the snake_case fields.
"""
import re
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from farguard.errors import InvalidAddress

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_address(address: str) -> str:
    """Return the lowercased address or raise InvalidAddress."""
    if not isinstance(address, str) or not ADDRESS_RE.match(address.strip()):
        raise InvalidAddress(str(address))
    return address.strip().lower()


class TokenType(str, Enum):
    TOKEN = "Token"
    NFT = "NFT"


class ContractType(str, Enum):
    ERC20 = "ERC20"
    ERC721 = "ERC721"
    ERC1155 = "ERC1155"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RawTransaction(CamelModel):
    """A normalized explorer ``txlist`` row."""
    hash: str
    block_number: int = 0
    timestamp: int = 0
    from_address: str = Field("", alias="from")
    to_address: str = Field("", alias="to")
    input_data: str = Field("0x", alias="input")
    is_error: bool = False


class ContractInfo(CamelModel):
    address: str
    name: str
    symbol: str = "UNKNOWN"
    decimals: int = 18
    type: ContractType = ContractType.ERC20


class ApprovalEvent(CamelModel):
    """One approval-granting call decoded from a transaction."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    transaction_hash: str
    block_number: int
    timestamp: int
    from_address: str = Field(alias="from")
    to_address: str = Field(alias="to")
    token_name: str
    token_symbol: str
    token_decimal: int
    contract_address: str
    spender_address: str
    value: str
    token_type: TokenType
    is_unlimited: bool
    method: str = "approve"
    # Raw uint256 amount (or token id); None for blanket approvals
    amount: Optional[int] = None


class ApprovalCreate(CamelModel):
    user_id: Optional[int] = None
    wallet_address: Optional[str] = None
    contract_address: str
    token_name: str
    token_symbol: str
    token_type: TokenType
    spender_address: str
    approved_amount: str
    chain: str
    is_unlimited: bool = False
    is_revoked: bool = False

    @field_validator("contract_address", "spender_address")
    @classmethod
    def address_must_be_valid(cls, v):
        try:
            return normalize_address(v)
        except InvalidAddress:
            raise ValueError(f"invalid address: {v}")

    @field_validator("wallet_address")
    @classmethod
    def wallet_must_be_valid(cls, v):
        if v is None:
            return v
        try:
            return normalize_address(v)
        except InvalidAddress:
            raise ValueError(f"invalid address: {v}")

    @field_validator("chain")
    @classmethod
    def chain_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError("chain cannot be empty")
        return v.strip().lower()


class Approval(ApprovalCreate):
    id: int
    created_at: datetime
    updated_at: datetime


class BatchRevokeIn(CamelModel):
    approval_ids: List[int]


class BatchRevokeResult(CamelModel):
    success_count: int
    total_count: int
    failed_ids: List[int] = []

    @property
    def message(self) -> str:
        return f"{self.success_count} of {self.total_count} approvals revoked successfully"
