# tests/tenancy/test_registry.py

import asyncio
import pytest
from sqlalchemy import text

from gradelink.core.config import Settings
from gradelink.tenancy.registry import TenantPoolRegistry
from gradelink.services.exceptions import InvalidIdentifier, TenantUnavailable


class CountingBackend:
    """Wraps a real backend and counts engine creations and existence checks."""

    def __init__(self, inner):
        self.inner = inner
        self.engines_created = 0
        self.exists_calls = 0

    def schema_for(self, identifier):
        return self.inner.schema_for(identifier)

    async def exists(self, identifier):
        self.exists_calls += 1
        # 让出事件循环，放大并发窗口
        await asyncio.sleep(0.01)
        return await self.inner.exists(identifier)

    def create_engine(self, identifier):
        self.engines_created += 1
        return self.inner.create_engine(identifier)

    async def close(self):
        await self.inner.close()


async def test_concurrent_first_use_creates_exactly_one_pool(backend, provisioned_tenant):
    counting = CountingBackend(backend)
    registry = TenantPoolRegistry(counting)
    try:
        engines = await asyncio.gather(*[registry.get_engine(provisioned_tenant) for _ in range(10)])

        assert counting.engines_created == 1
        assert all(engine is engines[0] for engine in engines)
        assert registry.cached_identifiers == [provisioned_tenant]
    finally:
        await registry.dispose_all()


async def test_unsafe_identifier_is_rejected_before_touching_the_backend(backend):
    counting = CountingBackend(backend)
    registry = TenantPoolRegistry(counting)

    for bad in ["tenant_x; DROP DATABASE central", "green_valley", "tenant_Upper", ""]:
        with pytest.raises(InvalidIdentifier):
            await registry.get_connection(bad)

    assert counting.exists_calls == 0
    assert counting.engines_created == 0


async def test_missing_tenant_is_reported_as_unavailable_not_invalid(tenants):
    with pytest.raises(TenantUnavailable) as exc_info:
        await tenants.get_connection("tenant_never_provisioned")

    assert exc_info.value.reason == "missing"
    assert exc_info.value.retryable is False
    assert tenants.cached_identifiers == []


async def test_unreachable_tenant_times_out_as_retryable(backend, provisioned_tenant, monkeypatch):
    class HangingEngine:
        async def connect(self):
            await asyncio.sleep(10)

        async def dispose(self):
            pass

    monkeypatch.setattr(backend, "create_engine", lambda identifier: HangingEngine())
    registry = TenantPoolRegistry(backend, Settings(TENANT_CONNECT_TIMEOUT=0.05))

    with pytest.raises(TenantUnavailable) as exc_info:
        await registry.get_connection(provisioned_tenant)

    assert exc_info.value.reason == "unreachable"
    assert exc_info.value.retryable is True


async def test_connection_round_trip_and_release(tenants, provisioned_tenant):
    conn = await tenants.get_connection(provisioned_tenant)
    try:
        assert (await conn.execute(text("SELECT 1"))).scalar() == 1
    finally:
        await tenants.release(conn)
    assert conn.closed

    # 连接归还后连接池仍然可用
    async with tenants.connect(provisioned_tenant) as again:
        assert (await again.execute(text("SELECT 1"))).scalar() == 1
    assert tenants.cached_identifiers == [provisioned_tenant]


async def test_begin_commits_on_success_and_rolls_back_on_error(tenants, provisioned_tenant):
    async with tenants.begin(provisioned_tenant) as conn:
        await conn.execute(text("INSERT INTO terms (term_name) VALUES ('First Term')"))

    with pytest.raises(RuntimeError):
        async with tenants.begin(provisioned_tenant) as conn:
            await conn.execute(text("INSERT INTO terms (term_name) VALUES ('Second Term')"))
            raise RuntimeError("boom")

    async with tenants.connect(provisioned_tenant) as conn:
        names = (await conn.execute(text("SELECT term_name FROM terms"))).scalars().all()
    assert names == ["First Term"]


async def test_least_recently_used_pool_is_disposed_when_cache_is_full(backend):
    for name in ["tenant_alpha", "tenant_beta", "tenant_gamma"]:
        await backend.create(name)

    registry = TenantPoolRegistry(backend, Settings(TENANT_POOL_CACHE_SIZE=2))
    try:
        alpha = await registry.get_engine("tenant_alpha")
        await registry.get_engine("tenant_beta")
        # alpha 重新被使用，beta 成为最久未使用
        assert await registry.get_engine("tenant_alpha") is alpha
        await registry.get_engine("tenant_gamma")

        assert registry.cached_identifiers == ["tenant_alpha", "tenant_gamma"]
    finally:
        await registry.dispose_all()


async def test_dispose_drops_the_cached_pool(tenants, provisioned_tenant):
    first = await tenants.get_engine(provisioned_tenant)
    await tenants.dispose(provisioned_tenant)
    assert tenants.cached_identifiers == []

    second = await tenants.get_engine(provisioned_tenant)
    assert second is not first


async def test_pool_with_checked_out_connection_is_not_evicted(backend):
    for name in ["tenant_alpha", "tenant_beta"]:
        await backend.create(name)

    registry = TenantPoolRegistry(backend, Settings(TENANT_POOL_CACHE_SIZE=1))
    try:
        conn = await registry.get_connection("tenant_alpha")
        alpha = await registry.get_engine("tenant_alpha")

        # alpha 是最久未使用的，但仍有连接借出，只能暂时超出上限
        await registry.get_engine("tenant_beta")
        assert registry.cached_identifiers == ["tenant_alpha", "tenant_beta"]
        assert (await conn.execute(text("SELECT 1"))).scalar() == 1

        await registry.release(conn)
        assert registry.cached_identifiers == ["tenant_beta"]

        # 被淘汰后重新创建的是新的连接池，锁仍是同一把
        lock = registry._lock_for("tenant_alpha")
        assert await registry.get_engine("tenant_alpha") is not alpha
        assert registry._lock_for("tenant_alpha") is lock
    finally:
        await registry.dispose_all()
