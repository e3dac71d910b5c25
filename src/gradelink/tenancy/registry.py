# gradelink/tenancy/registry.py

import asyncio
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from gradelink.core.config import Settings, settings as default_settings
from gradelink.core.identifiers import validate_identifier
from gradelink.tenancy.backends import TenantStorageBackend
from gradelink.services.exceptions import TenantUnavailable

logger = logging.getLogger(__name__)

class TenantPoolRegistry:
    """
    Per-tenant connection pools, created lazily and cached.

    One `AsyncEngine` (and therefore one bounded pool) exists per tenant
    identifier. Creation is guarded by a lock per identifier so concurrent
    first requests for the same school produce exactly one engine, while
    requests for different schools never wait on each other. The cache is
    bounded; when it overflows the least recently used engine with no
    connection checked out is disposed. Locks are kept for the lifetime of
    the registry, even after their engine is evicted.

    The registry is created in the application lifespan and disposed at
    shutdown. Tests build their own instance.
    """

    def __init__(self, backend: TenantStorageBackend, settings: Settings = default_settings):
        self.backend = backend
        self.max_engines = max(1, settings.TENANT_POOL_CACHE_SIZE)
        self.connect_timeout = settings.TENANT_CONNECT_TIMEOUT
        self._engines: "OrderedDict[str, AsyncEngine]" = OrderedDict()
        self._locks: Dict[str, asyncio.Lock] = {}
        # 每个租户当前借出的连接数；有借出连接的连接池不会被淘汰
        self._leases: Dict[str, int] = {}
        self._owners: Dict[AsyncConnection, str] = {}

    @property
    def cached_identifiers(self) -> list[str]:
        return list(self._engines.keys())

    def schema_for(self, identifier: str) -> Optional[str]:
        return self.backend.schema_for(identifier)

    def _lock_for(self, identifier: str) -> asyncio.Lock:
        # setdefault 在单线程事件循环中是原子的
        return self._locks.setdefault(identifier, asyncio.Lock())

    async def get_engine(self, identifier: str) -> AsyncEngine:
        return await self._engine_for(identifier, lease=False)

    async def _engine_for(self, identifier: str, lease: bool) -> AsyncEngine:
        identifier = validate_identifier(identifier)

        engine = self._engines.get(identifier)
        if engine is not None:
            self._engines.move_to_end(identifier)
            if lease:
                self._lease(identifier)
            return engine

        async with self._lock_for(identifier):
            # 等锁期间可能已被其他协程创建
            engine = self._engines.get(identifier)
            if engine is not None:
                self._engines.move_to_end(identifier)
                if lease:
                    self._lease(identifier)
                return engine

            try:
                present = await self.backend.exists(identifier)
            except (OSError, DBAPIError) as e:
                raise TenantUnavailable(
                    f"Could not reach the data plane for '{identifier}'.", identifier, reason="unreachable"
                ) from e
            if not present:
                # 目录中有记录但物理库不存在，属于数据完整性问题
                logger.error("Integrity issue: tenant %s is not physically present", identifier)
                raise TenantUnavailable(
                    f"Tenant '{identifier}' does not exist.", identifier, reason="missing"
                )

            engine = self.backend.create_engine(identifier)
            self._engines[identifier] = engine
            logger.info("Created connection pool for tenant %s", identifier)

        # 租约必须在下一次 await 之前登记，否则淘汰可能先一步处理掉这个连接池
        if lease:
            self._lease(identifier)
        await self._evict_overflow(keep=identifier)
        return engine

    def _lease(self, identifier: str) -> None:
        self._leases[identifier] = self._leases.get(identifier, 0) + 1

    def _unlease(self, identifier: str) -> None:
        remaining = self._leases.get(identifier, 0) - 1
        if remaining > 0:
            self._leases[identifier] = remaining
        else:
            self._leases.pop(identifier, None)

    async def _evict_overflow(self, keep: Optional[str] = None) -> None:
        """
        Disposes least recently used pools until the cache fits again.

        Pools with connections still checked out are skipped, so the cache
        may stay above its cap until those connections are released.
        """
        idle = [i for i in self._engines if i not in self._leases and i != keep]
        overflow = len(self._engines) - self.max_engines
        for identifier in idle[:max(0, overflow)]:
            # 前一次 dispose 期间可能已被借出或被移除
            if identifier in self._leases or identifier not in self._engines:
                continue
            engine = self._engines.pop(identifier)
            logger.info("Evicting connection pool for tenant %s", identifier)
            await engine.dispose()

    async def get_connection(self, identifier: str) -> AsyncConnection:
        """
        Checks a connection out of the tenant's pool.

        Callers must hand it back with `release` (or use `connect`/`begin`).
        While the connection is out the tenant's pool is never evicted.
        """
        identifier = validate_identifier(identifier)
        engine = await self._engine_for(identifier, lease=True)
        try:
            try:
                conn = await asyncio.wait_for(engine.connect(), timeout=self.connect_timeout)
            except (asyncio.TimeoutError, OSError, DBAPIError) as e:
                logger.warning("Tenant %s unreachable: %s", identifier, e)
                raise TenantUnavailable(
                    f"Tenant '{identifier}' is temporarily unavailable.", identifier, reason="unreachable"
                ) from e
        except BaseException:
            self._unlease(identifier)
            raise
        self._owners[conn] = identifier
        return conn

    async def release(self, conn: AsyncConnection) -> None:
        identifier = self._owners.pop(conn, None)
        try:
            # close() 只把连接还给连接池，不会销毁连接池
            await conn.close()
        finally:
            if identifier is not None:
                self._unlease(identifier)
        if len(self._engines) > self.max_engines:
            await self._evict_overflow()

    @asynccontextmanager
    async def connect(self, identifier: str) -> AsyncIterator[AsyncConnection]:
        conn = await self.get_connection(identifier)
        try:
            yield conn
        finally:
            await self.release(conn)

    @asynccontextmanager
    async def begin(self, identifier: str) -> AsyncIterator[AsyncConnection]:
        """A connection inside a transaction; commits on success, rolls back on error."""
        async with self.connect(identifier) as conn:
            async with conn.begin():
                yield conn

    async def dispose(self, identifier: str) -> None:
        identifier = validate_identifier(identifier)
        async with self._lock_for(identifier):
            engine = self._engines.pop(identifier, None)
            if engine is not None:
                await engine.dispose()
                logger.info("Disposed connection pool for tenant %s", identifier)

    async def dispose_all(self) -> None:
        engines = list(self._engines.items())
        self._engines.clear()
        self._locks.clear()
        for identifier, engine in engines:
            try:
                await engine.dispose()
            except Exception:
                logger.exception("Failed to dispose pool for tenant %s", identifier)
        await self.backend.close()
