"""
Approval persistence

ApprovalStore is the only interface the services depend on. Two backends are
provided: an in-memory map for a single process lifetime and a SQLite file
store. The backend is picked once at startup from settings.storage_backend.
"""
import asyncio
import itertools
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

from farguard.config import settings
from farguard.schemas import Approval, ApprovalCreate

logger = logging.getLogger(__name__)

# Fields callers may never change through update()
_IMMUTABLE_FIELDS = {"id", "created_at", "updated_at"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _apply_update(existing: Approval, changes: Dict[str, Any]) -> Approval:
    """Merge ``changes`` into a record, enforcing the record invariants."""
    changes = {k: v for k, v in changes.items() if k not in _IMMUTABLE_FIELDS}
    # Revocation is one-way
    if existing.is_revoked:
        changes.pop("is_revoked", None)
    data = existing.model_dump()
    data.update(changes)
    data["updated_at"] = max(_now(), existing.created_at)
    return Approval.model_validate(data)


class ApprovalStore(ABC):
    @abstractmethod
    async def create(self, approval: ApprovalCreate) -> Approval: ...

    @abstractmethod
    async def get(self, approval_id: int) -> Optional[Approval]: ...

    @abstractmethod
    async def list(self, user_id: Optional[int] = None) -> List[Approval]: ...

    @abstractmethod
    async def update(self, approval_id: int, **changes) -> Optional[Approval]: ...

    @abstractmethod
    async def delete(self, approval_id: int) -> bool: ...

    async def list_by_chain(self, chain: str, wallet_address: Optional[str] = None) -> List[Approval]:
        chain = chain.lower()
        wallet = wallet_address.lower() if wallet_address else None
        return [
            a for a in await self.list()
            if a.chain == chain and (wallet is None or a.wallet_address == wallet)
        ]

    async def find_by_contract(self, contract_address: str, chain: Optional[str] = None,
                               wallet_address: Optional[str] = None) -> Optional[Approval]:
        """First stored approval for a contract, optionally scoped to chain and wallet."""
        contract = contract_address.lower()
        candidates = await (self.list_by_chain(chain, wallet_address) if chain else self.list())
        for approval in candidates:
            if approval.contract_address == contract:
                return approval
        return None

    async def revoke(self, approval_id: int) -> bool:
        """Mark a record revoked; False when the id is unknown."""
        return await self.update(approval_id, is_revoked=True) is not None


class MemoryApprovalStore(ApprovalStore):
    def __init__(self):
        self._approvals: Dict[int, Approval] = {}
        self._ids = itertools.count(1)

    async def create(self, approval: ApprovalCreate) -> Approval:
        now = _now()
        record = Approval(id=next(self._ids), created_at=now, updated_at=now, **approval.model_dump())
        self._approvals[record.id] = record
        return record

    async def get(self, approval_id: int) -> Optional[Approval]:
        return self._approvals.get(approval_id)

    async def list(self, user_id: Optional[int] = None) -> List[Approval]:
        approvals = list(self._approvals.values())
        if user_id is not None:
            return [a for a in approvals if a.user_id == user_id]
        return approvals

    async def update(self, approval_id: int, **changes) -> Optional[Approval]:
        existing = self._approvals.get(approval_id)
        if existing is None:
            return None
        updated = _apply_update(existing, changes)
        self._approvals[approval_id] = updated
        return updated

    async def delete(self, approval_id: int) -> bool:
        return self._approvals.pop(approval_id, None) is not None


_COLUMNS = [
    "id", "user_id", "wallet_address", "contract_address", "token_name", "token_symbol",
    "token_type", "spender_address", "approved_amount", "chain", "is_unlimited",
    "is_revoked", "created_at", "updated_at",
]


class SQLiteApprovalStore(ApprovalStore):
    def __init__(self, db_path: str):
        self.db_path = db_path
        self._write_lock = threading.Lock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.init_db()

    @contextmanager
    def get_db(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a SQLite database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def init_db(self):
        """Initialize the database with required tables."""
        with self.get_db() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS approvals (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER,
                    wallet_address TEXT,
                    contract_address TEXT NOT NULL,
                    token_name TEXT NOT NULL,
                    token_symbol TEXT NOT NULL,
                    token_type TEXT NOT NULL,
                    spender_address TEXT NOT NULL,
                    approved_amount TEXT NOT NULL,
                    chain TEXT NOT NULL,
                    is_unlimited BOOLEAN DEFAULT FALSE,
                    is_revoked BOOLEAN DEFAULT FALSE,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
            ''')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_approvals_chain_wallet ON approvals(chain, wallet_address)')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_approvals_contract ON approvals(contract_address)')
            conn.commit()

    @staticmethod
    def _row_to_approval(row: sqlite3.Row) -> Approval:
        data = dict(row)
        data["is_unlimited"] = bool(data["is_unlimited"])
        data["is_revoked"] = bool(data["is_revoked"])
        return Approval.model_validate(data)

    @staticmethod
    def _params(record: Approval) -> Dict[str, Any]:
        data = record.model_dump(mode="json")
        data["is_unlimited"] = int(record.is_unlimited)
        data["is_revoked"] = int(record.is_revoked)
        return data

    async def create(self, approval: ApprovalCreate) -> Approval:
        return await asyncio.to_thread(self._create_sync, approval)

    async def get(self, approval_id: int) -> Optional[Approval]:
        return await asyncio.to_thread(self._get_sync, approval_id)

    async def list(self, user_id: Optional[int] = None) -> List[Approval]:
        return await asyncio.to_thread(self._list_sync, user_id)

    async def list_by_chain(self, chain: str, wallet_address: Optional[str] = None) -> List[Approval]:
        return await asyncio.to_thread(self._list_by_chain_sync, chain, wallet_address)

    async def update(self, approval_id: int, **changes) -> Optional[Approval]:
        return await asyncio.to_thread(self._update_sync, approval_id, changes)

    async def delete(self, approval_id: int) -> bool:
        return await asyncio.to_thread(self._delete_sync, approval_id)

    # sqlite3 blocks; the methods below run on worker threads, one connection per call

    def _create_sync(self, approval: ApprovalCreate) -> Approval:
        now = _now()
        data = approval.model_dump(mode="json")
        data["is_unlimited"] = int(approval.is_unlimited)
        data["is_revoked"] = int(approval.is_revoked)
        data["created_at"] = data["updated_at"] = now.isoformat()
        columns = [c for c in _COLUMNS if c != "id"]
        with self._write_lock, self.get_db() as conn:
            cursor = conn.execute(
                f"INSERT INTO approvals ({', '.join(columns)}) VALUES ({', '.join(':' + c for c in columns)})",
                data,
            )
            conn.commit()
            approval_id = cursor.lastrowid
        return Approval(id=approval_id, created_at=now, updated_at=now, **approval.model_dump())

    def _get_sync(self, approval_id: int) -> Optional[Approval]:
        with self.get_db() as conn:
            row = conn.execute("SELECT * FROM approvals WHERE id = ?", (approval_id,)).fetchone()
        return self._row_to_approval(row) if row else None

    def _list_sync(self, user_id: Optional[int]) -> List[Approval]:
        with self.get_db() as conn:
            if user_id is not None:
                rows = conn.execute("SELECT * FROM approvals WHERE user_id = ? ORDER BY id", (user_id,)).fetchall()
            else:
                rows = conn.execute("SELECT * FROM approvals ORDER BY id").fetchall()
        return [self._row_to_approval(r) for r in rows]

    def _list_by_chain_sync(self, chain: str, wallet_address: Optional[str]) -> List[Approval]:
        query = "SELECT * FROM approvals WHERE chain = ?"
        params: List[Any] = [chain.lower()]
        if wallet_address:
            query += " AND wallet_address = ?"
            params.append(wallet_address.lower())
        with self.get_db() as conn:
            rows = conn.execute(query + " ORDER BY id", params).fetchall()
        return [self._row_to_approval(r) for r in rows]

    def _update_sync(self, approval_id: int, changes: Dict[str, Any]) -> Optional[Approval]:
        # One writer at a time; the read and the write must see the same row
        with self._write_lock:
            existing = self._get_sync(approval_id)
            if existing is None:
                return None
            updated = _apply_update(existing, changes)
            params = self._params(updated)
            assignments = ", ".join(f"{c} = :{c}" for c in _COLUMNS if c not in ("id", "created_at"))
            with self.get_db() as conn:
                conn.execute(f"UPDATE approvals SET {assignments} WHERE id = :id", params)
                conn.commit()
            return updated

    def _delete_sync(self, approval_id: int) -> bool:
        with self._write_lock, self.get_db() as conn:
            cursor = conn.execute("DELETE FROM approvals WHERE id = ?", (approval_id,))
            conn.commit()
        return cursor.rowcount > 0


def _sqlite_path(database_url: str) -> str:
    prefix = "sqlite:///"
    if not database_url.startswith(prefix):
        raise ValueError(f"Unsupported DATABASE_URL for the SQLite store: {database_url}")
    path = database_url[len(prefix):]
    if not path or path == ":memory:":
        raise ValueError("The SQLite store needs a file path in DATABASE_URL")
    return path


def create_store(backend: Optional[str] = None, database_url: Optional[str] = None) -> ApprovalStore:
    backend = (backend or settings.storage_backend).lower()
    if backend == "memory":
        return MemoryApprovalStore()
    if backend == "sqlite":
        path = _sqlite_path(database_url or settings.database_url)
        logger.info(f"Using SQLite approval store at {path}")
        return SQLiteApprovalStore(path)
    raise ValueError(f"Unknown STORAGE_BACKEND: {backend}")


_store: Optional[ApprovalStore] = None


def get_store() -> ApprovalStore:
    """Get or initialize the process-wide approval store"""
    global _store
    if _store is None:
        _store = create_store()
        logger.info(f"Approval store initialized: {type(_store).__name__}")
    return _store


def set_store(store: Optional[ApprovalStore]) -> None:
    global _store
    _store = store
