"""
Tests for the approval store backends
"""
import threading

import pytest

from conftest import NFT, SPENDER, TOKEN, WALLET
from farguard.schemas import ApprovalCreate, TokenType
from farguard.services.approval_store import (
    MemoryApprovalStore, SQLiteApprovalStore, create_store,
)


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return MemoryApprovalStore()
    return SQLiteApprovalStore(str(tmp_path / "approvals.db"))


def _approval(contract=TOKEN, chain="ethereum", wallet=WALLET, user_id=None, **overrides):
    data = dict(
        user_id=user_id,
        wallet_address=wallet,
        contract_address=contract,
        token_name="USD Coin",
        token_symbol="USDC",
        token_type=TokenType.TOKEN,
        spender_address=SPENDER,
        approved_amount="Unlimited",
        chain=chain,
        is_unlimited=True,
    )
    data.update(overrides)
    return ApprovalCreate(**data)


async def test_create_assigns_id_and_timestamps(any_store):
    a = await any_store.create(_approval())
    b = await any_store.create(_approval(contract=NFT))

    assert a.id != b.id
    assert a.is_revoked is False
    assert a.created_at == a.updated_at
    assert (await any_store.get(a.id)).model_dump() == a.model_dump()


async def test_get_missing_returns_none(any_store):
    assert await any_store.get(999) is None


async def test_list_filters_by_user(any_store):
    await any_store.create(_approval(user_id=1))
    await any_store.create(_approval(contract=NFT, user_id=2))

    assert len(await any_store.list()) == 2
    assert [a.contract_address for a in await any_store.list(user_id=2)] == [NFT]


async def test_list_by_chain_and_wallet(any_store):
    other_wallet = "0x" + "f" * 40
    await any_store.create(_approval())
    await any_store.create(_approval(chain="base"))
    await any_store.create(_approval(wallet=other_wallet))

    assert len(await any_store.list_by_chain("ethereum")) == 2
    assert len(await any_store.list_by_chain("ethereum", WALLET)) == 1
    assert len(await any_store.list_by_chain("BASE")) == 1


async def test_find_by_contract(any_store):
    created = await any_store.create(_approval())

    found = await any_store.find_by_contract(TOKEN.upper().replace("0X", "0x"), "ethereum", WALLET)
    assert found.id == created.id
    assert await any_store.find_by_contract(TOKEN, "base", WALLET) is None
    assert await any_store.find_by_contract(NFT) is None


async def test_revoke_is_one_way_and_refreshes_updated_at(any_store):
    created = await any_store.create(_approval())

    assert await any_store.revoke(created.id)
    revoked = await any_store.get(created.id)
    assert revoked.is_revoked
    assert revoked.updated_at >= revoked.created_at
    assert revoked.id == created.id

    assert await any_store.revoke(created.id)
    updated = await any_store.update(created.id, is_revoked=False)
    assert updated.is_revoked
    assert (await any_store.get(created.id)).is_revoked


async def test_update_cannot_change_identity(any_store):
    created = await any_store.create(_approval())
    updated = await any_store.update(created.id, id=42, created_at=None, approved_amount="5")

    assert updated.id == created.id
    assert updated.created_at == created.created_at
    assert updated.approved_amount == "5"
    assert (await any_store.get(created.id)).approved_amount == "5"


async def test_update_and_revoke_missing(any_store):
    assert await any_store.update(999, approved_amount="1") is None
    assert await any_store.revoke(999) is False


async def test_delete(any_store):
    created = await any_store.create(_approval())
    assert await any_store.delete(created.id)
    assert await any_store.get(created.id) is None
    assert await any_store.delete(created.id) is False


async def test_sqlite_store_persists_across_instances(tmp_path):
    path = str(tmp_path / "approvals.db")
    created = await SQLiteApprovalStore(path).create(_approval())

    reopened = SQLiteApprovalStore(path)
    assert (await reopened.get(created.id)).contract_address == TOKEN


def test_create_store_selects_backend(tmp_path):
    assert isinstance(create_store("memory"), MemoryApprovalStore)
    assert isinstance(create_store("sqlite", f"sqlite:///{tmp_path}/x.db"), SQLiteApprovalStore)
    with pytest.raises(ValueError):
        create_store("redis")
    with pytest.raises(ValueError):
        create_store("sqlite", "sqlite:///:memory:")


async def test_sqlite_queries_run_off_the_event_loop(tmp_path, monkeypatch):
    store = SQLiteApprovalStore(str(tmp_path / "approvals.db"))
    loop_thread = threading.get_ident()
    seen = []
    original = store.get_db

    def tracking_get_db():
        seen.append(threading.get_ident())
        return original()

    monkeypatch.setattr(store, "get_db", tracking_get_db)
    created = await store.create(_approval())
    await store.list_by_chain("ethereum", WALLET)
    await store.revoke(created.id)
    await store.delete(created.id)

    assert seen
    assert loop_thread not in seen
