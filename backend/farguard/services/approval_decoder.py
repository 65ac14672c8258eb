"""
Approval Decoder
Recognizes approval-granting calls in transaction calldata and turns them into ApprovalEvents

Selectors are matched against APPROVAL_METHODS; another approval-granting
method is one more entry in that table.
"""
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence

from farguard.config import settings
from farguard.schemas import ApprovalEvent, ContractInfo, ContractType, RawTransaction, TokenType
from farguard.services.contract_resolver import ContractResolver

logger = logging.getLogger(__name__)

MAX_UINT256 = 2**256 - 1

# Heuristic: any allowance above 10^18 base units counts as unlimited. This is a
# proxy for the MAX_UINT256 sentinel, not an exact reading of it, and it ignores
# token decimals (1 whole unit of an 18-decimal token is exactly the threshold).
UNLIMITED_THRESHOLD = 10**18

UNLIMITED_LABEL = "Unlimited"
ALL_ITEMS_LABEL = "All NFTs"

SLOT_HEX = 64


@dataclass(frozen=True)
class DecodedCall:
    method: str
    spender: str
    amount: Optional[int] = None
    blanket: bool = False


def _slots(args_hex: str, count: int) -> List[str]:
    """Split ABI-encoded arguments into ``count`` 32-byte slots or raise ValueError."""
    if len(args_hex) < SLOT_HEX * count:
        raise ValueError(f"expected {count} argument slots, got {len(args_hex)} hex chars")
    slots = [args_hex[i * SLOT_HEX:(i + 1) * SLOT_HEX] for i in range(count)]
    for slot in slots:
        int(slot, 16)
    return slots


def _decode_address_from_slot(slot_hex: str) -> str:
    """The address sits in the last 20 bytes of the slot."""
    return "0x" + slot_hex[-40:]


def _decode_approve(args_hex: str) -> DecodedCall:
    spender_slot, amount_slot = _slots(args_hex, 2)
    return DecodedCall(
        method="approve",
        spender=_decode_address_from_slot(spender_slot),
        amount=int(amount_slot, 16),
    )


def _decode_set_approval_for_all(args_hex: str) -> DecodedCall:
    operator_slot, _approved_slot = _slots(args_hex, 2)
    return DecodedCall(
        method="setApprovalForAll",
        spender=_decode_address_from_slot(operator_slot),
        blanket=True,
    )


@dataclass(frozen=True)
class ApprovalMethod:
    signature: str
    decode: Callable[[str], DecodedCall]


APPROVAL_METHODS: Dict[str, ApprovalMethod] = {
    "0x095ea7b3": ApprovalMethod("approve(address,uint256)", _decode_approve),
    "0xa22cb465": ApprovalMethod("setApprovalForAll(address,bool)", _decode_set_approval_for_all),
}


def decode_call(input_data: Optional[str]) -> Optional[DecodedCall]:
    """Decode approval calldata; None for unrecognized selectors or malformed input."""
    data = (input_data or "").strip().lower()
    if len(data) < 10 or not data.startswith("0x"):
        return None
    method = APPROVAL_METHODS.get(data[:10])
    if method is None:
        return None
    try:
        return method.decode(data[10:])
    except ValueError as e:
        logger.debug(f"Skipping malformed {method.signature} calldata: {e}")
        return None


def is_unlimited_amount(amount: int, threshold: int = UNLIMITED_THRESHOLD) -> bool:
    return amount > threshold


class ApprovalStream:
    """Finite async iterable of ApprovalEvents; each iteration starts over."""

    def __init__(self, decoder: "ApprovalDecoder", transactions: Sequence[RawTransaction], owner: Optional[str] = None):
        self._decoder = decoder
        self._transactions = list(transactions)
        self._owner = owner.lower() if owner else None

    def __aiter__(self) -> AsyncIterator[ApprovalEvent]:
        return self._decoder._generate(self._transactions, self._owner)


class ApprovalDecoder:
    def __init__(self, resolver: ContractResolver, threshold: Optional[int] = None):
        self.resolver = resolver
        self.threshold = settings.unlimited_threshold if threshold is None else threshold

    def decode(self, transactions: Sequence[RawTransaction], owner: Optional[str] = None) -> ApprovalStream:
        """Lazily decode approvals from ``transactions``, keeping their order.

        When ``owner`` is given, only calls sent by that wallet are considered.
        Reverted transactions are ignored.
        """
        return ApprovalStream(self, transactions, owner)

    async def _generate(self, transactions: List[RawTransaction], owner: Optional[str]) -> AsyncIterator[ApprovalEvent]:
        candidates = []
        for tx in transactions:
            if tx.is_error or not tx.to_address:
                continue
            if owner and tx.from_address.lower() != owner:
                continue
            call = decode_call(tx.input_data)
            if call is not None:
                candidates.append((tx, call))

        if not candidates:
            return

        # Lookups run with bounded concurrency; events are still emitted in transaction order
        infos = await self.resolver.resolve_many(tx.to_address for tx, _ in candidates)
        for tx, call in candidates:
            info = infos.get(tx.to_address.lower())
            if info is None:
                logger.debug(f"Discarding approval {tx.hash}: no metadata for {tx.to_address}")
                continue
            yield self.build_event(tx, call, info)

    def build_event(self, tx: RawTransaction, call: DecodedCall, info: ContractInfo) -> ApprovalEvent:
        is_nft_contract = info.type in (ContractType.ERC721, ContractType.ERC1155)

        if call.blanket:
            token_type = TokenType.NFT
            value = ALL_ITEMS_LABEL
            is_unlimited = True
            decimals = 0
        elif is_nft_contract:
            # ERC721 approve(to, tokenId); the id goes through the same threshold
            token_type = TokenType.NFT
            value = f"Token #{call.amount}"
            is_unlimited = is_unlimited_amount(call.amount, self.threshold)
            decimals = 0
        else:
            token_type = TokenType.TOKEN
            is_unlimited = is_unlimited_amount(call.amount, self.threshold)
            value = UNLIMITED_LABEL if is_unlimited else str(call.amount)
            decimals = info.decimals

        return ApprovalEvent(
            transaction_hash=tx.hash,
            block_number=tx.block_number,
            timestamp=tx.timestamp,
            from_address=tx.from_address,
            to_address=tx.to_address,
            token_name=info.name,
            token_symbol=info.symbol,
            token_decimal=decimals,
            contract_address=info.address,
            spender_address=call.spender,
            value=value,
            token_type=token_type,
            is_unlimited=is_unlimited,
            method=call.method,
            amount=call.amount,
        )
