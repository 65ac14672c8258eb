"""
Shared fixtures: an in-process fake explorer and calldata builders
"""
import asyncio
import itertools
from typing import Any, Dict, List, Optional

import httpx
import pytest

from farguard.services import approval_store, etherscan_client
from farguard.services.approval_store import MemoryApprovalStore

WALLET = "0x" + "a" * 39 + "1"
SPENDER = "0x" + "b" * 39 + "2"
TOKEN = "0x" + "c" * 39 + "3"
OPERATOR = "0x" + "d" * 39 + "4"
NFT = "0x" + "e" * 39 + "5"

MAX_UINT256 = 2**256 - 1

ERC721_ABI = '[{"name":"ownerOf"},{"name":"setApprovalForAll"},{"name":"approve"}]'
ERC1155_ABI = '[{"name":"balanceOfBatch"},{"name":"setApprovalForAll"}]'
ERC20_ABI = '[{"name":"transfer"},{"name":"approve"},{"name":"allowance"}]'


def approve_input(spender: str, amount: int) -> str:
    return "0x095ea7b3" + spender[2:].lower().rjust(64, "0") + format(amount, "064x")


def set_approval_for_all_input(operator: str, approved: bool = True) -> str:
    return "0xa22cb465" + operator[2:].lower().rjust(64, "0") + format(int(approved), "064x")


def transfer_input(to: str, amount: int) -> str:
    return "0xa9059cbb" + to[2:].lower().rjust(64, "0") + format(amount, "064x")


class FakeExplorer:
    """Answers txlist / getsourcecode / tokeninfo queries from in-memory data."""

    def __init__(self):
        self.transactions: Dict[str, List[Dict[str, Any]]] = {}
        self.sources: Dict[str, Dict[str, Any]] = {}
        self.token_info: Dict[str, Dict[str, Any]] = {}
        # action -> "timeout" | "http" | "notok"
        self.failures: Dict[str, str] = {}
        self.calls: List[Dict[str, str]] = []
        # Seconds each response is held back
        self.latency = 0.0
        self.in_flight: Dict[str, int] = {}
        self.peak_in_flight: Dict[str, int] = {}
        self._blocks = itertools.count(18_000_000)
        self._hashes = itertools.count(1)

    def add_tx(self, to: str, input_data: str, wallet: str = WALLET, sender: Optional[str] = None,
               is_error: bool = False) -> str:
        """Record a transaction as the wallet's newest one and return its hash."""
        tx_hash = "0x" + format(next(self._hashes), "064x")
        block = next(self._blocks)
        row = {
            "blockNumber": str(block),
            "timeStamp": str(1_700_000_000 + block),
            "hash": tx_hash,
            "from": sender or wallet,
            "to": to,
            "value": "0",
            "input": input_data,
            "isError": "1" if is_error else "0",
        }
        self.transactions.setdefault(wallet.lower(), []).insert(0, row)
        return tx_hash

    def add_contract(self, address: str, name: str, symbol: Optional[str] = None, divisor: Optional[str] = None,
                     token_type: Optional[str] = None, abi: str = ERC20_ABI, token_name: Optional[str] = None):
        self.sources[address.lower()] = {"ContractName": name, "ABI": abi}
        if symbol or divisor or token_type or token_name:
            info = {"contractAddress": address.lower()}
            if token_name:
                info["tokenName"] = token_name
            if symbol:
                info["symbol"] = symbol
            if divisor is not None:
                info["divisor"] = divisor
            if token_type:
                info["tokenType"] = token_type
            self.token_info[address.lower()] = info

    def calls_for(self, action: str) -> List[Dict[str, str]]:
        return [c for c in self.calls if c.get("action") == action]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        action = params.get("action")
        self.calls.append(params)

        self.in_flight[action] = self.in_flight.get(action, 0) + 1
        self.peak_in_flight[action] = max(self.peak_in_flight.get(action, 0), self.in_flight[action])
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            return self._respond(request, params, action)
        finally:
            self.in_flight[action] -= 1

    def _respond(self, request: httpx.Request, params: Dict[str, str], action: Optional[str]) -> httpx.Response:
        failure = self.failures.get(action)
        if failure == "timeout":
            raise httpx.ConnectTimeout("timed out", request=request)
        if failure == "http":
            return httpx.Response(503, text="Service Unavailable")
        if failure == "notok":
            return httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Max rate limit reached"})

        if action == "txlist":
            rows = self.transactions.get(params.get("address", "").lower(), [])
            if not rows:
                return httpx.Response(200, json={"status": "0", "message": "No transactions found", "result": []})
            page = int(params.get("page", 1))
            offset = int(params.get("offset", 100))
            chunk = rows[(page - 1) * offset:page * offset]
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": chunk})

        if action == "getsourcecode":
            row = self.sources.get(params.get("address", "").lower()) or {
                "ContractName": "", "ABI": "Contract source code not verified"
            }
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": [row]})

        if action == "tokeninfo":
            info = self.token_info.get(params.get("contractaddress", "").lower())
            if info is None:
                return httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Invalid endpoint"})
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": [info]})

        return httpx.Response(404, json={"status": "0", "message": "Unknown action"})


@pytest.fixture
def explorer(monkeypatch):
    """Route the shared explorer client to a FakeExplorer."""
    fake = FakeExplorer()
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))
    monkeypatch.setattr(etherscan_client, "_etherscan_client", client)
    return fake


@pytest.fixture
def store(monkeypatch):
    """Fresh in-memory store, also installed as the process-wide store."""
    mem = MemoryApprovalStore()
    monkeypatch.setattr(approval_store, "_store", mem)
    return mem
