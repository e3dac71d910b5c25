# gradelink/tenancy/backends.py

"""
Physical storage strategies for tenants.

`DatabaseTenantBackend` gives every school its own database (PostgreSQL
database or sqlite file). `SchemaTenantBackend` gives every school its own
schema inside one shared data plane database. Both expose the same
operations so the provisioner and the registry never branch on strategy.
"""

import os
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional
from sqlalchemy import event, inspect
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.schema import CreateSchema, DropSchema
from sqlalchemy.sql import quoted_name
from sqlalchemy_utils import database_exists, create_database, drop_database
from gradelink.core.config import Settings
from gradelink.core.identifiers import validate_identifier
from gradelink.services.exceptions import TenantAlreadyExists

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class TenantPoolOptions:
    pool_size: int = 5
    max_overflow: int = 5
    pool_timeout: float = 10.0
    pool_recycle: int = 1800
    connect_timeout: float = 5.0
    query_timeout: float = 15.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "TenantPoolOptions":
        return cls(
            pool_size=settings.TENANT_POOL_SIZE,
            max_overflow=settings.TENANT_MAX_OVERFLOW,
            pool_timeout=settings.TENANT_POOL_TIMEOUT,
            pool_recycle=settings.TENANT_POOL_RECYCLE,
            connect_timeout=settings.TENANT_CONNECT_TIMEOUT,
            query_timeout=settings.TENANT_QUERY_TIMEOUT,
        )

    def engine_kwargs(self, url: URL, identifier: str) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = dict(
            pool_pre_ping=True,
            pool_size=self.pool_size,
            max_overflow=self.max_overflow,
            pool_timeout=self.pool_timeout,
            pool_recycle=self.pool_recycle,
        )
        backend = url.get_backend_name()
        if backend == "postgresql":
            # asyncpg: timeout 限制建连, command_timeout 限制单条语句
            kwargs["connect_args"] = {
                "timeout": self.connect_timeout,
                "command_timeout": self.query_timeout,
                "server_settings": {"application_name": f"gradelink_{identifier}"},
            }
        elif backend == "sqlite":
            kwargs["connect_args"] = {"timeout": self.connect_timeout}
        return kwargs


class TenantStorageBackend(ABC):
    strategy: str = ""

    def __init__(self, url: str, options: Optional[TenantPoolOptions] = None):
        self.url: URL = make_url(url)
        self.options = options or TenantPoolOptions()

    @abstractmethod
    async def exists(self, identifier: str) -> bool:
        ...

    @abstractmethod
    async def create(self, identifier: str) -> None:
        """Creates the physical database/schema. Raises TenantAlreadyExists when it is already there."""
        ...

    @abstractmethod
    async def drop(self, identifier: str) -> None:
        """Drops the physical database/schema if present."""
        ...

    @abstractmethod
    def create_engine(self, identifier: str) -> AsyncEngine:
        """A new pooled engine bound to the tenant. Does not connect."""
        ...

    def schema_for(self, identifier: str) -> Optional[str]:
        """Schema to pass to the inspector for this tenant (None means the connection default)."""
        return None

    async def close(self) -> None:
        pass


class DatabaseTenantBackend(TenantStorageBackend):
    strategy = "database"

    def __init__(self, url: str, options: Optional[TenantPoolOptions] = None, sqlite_dir: Optional[str] = None):
        super().__init__(url, options)
        self.sqlite_dir = os.path.abspath(sqlite_dir or "var/tenants")

    @property
    def is_sqlite(self) -> bool:
        return self.url.get_backend_name() == "sqlite"

    def tenant_url(self, identifier: str) -> URL:
        validate_identifier(identifier)
        if self.is_sqlite:
            return self.url.set(database=os.path.join(self.sqlite_dir, f"{identifier}.db"))
        return self.url.set(database=identifier)

    def _sync_url(self, identifier: str) -> URL:
        # SQLAlchemy-utils 需要一个同步的 DSN
        url = self.tenant_url(identifier)
        return url.set(drivername=url.get_backend_name())

    async def exists(self, identifier: str) -> bool:
        return await asyncio.to_thread(database_exists, self._sync_url(identifier))

    async def create(self, identifier: str) -> None:
        sync_url = self._sync_url(identifier)
        if self.is_sqlite:
            os.makedirs(self.sqlite_dir, exist_ok=True)
        if await asyncio.to_thread(database_exists, sync_url):
            raise TenantAlreadyExists(f"Tenant database '{identifier}' already exists.")
        await asyncio.to_thread(create_database, sync_url)
        logger.info("Created tenant database %s", identifier)

    async def drop(self, identifier: str) -> None:
        sync_url = self._sync_url(identifier)
        if not await asyncio.to_thread(database_exists, sync_url):
            return
        await asyncio.to_thread(drop_database, sync_url)
        logger.info("Dropped tenant database %s", identifier)

    def create_engine(self, identifier: str) -> AsyncEngine:
        url = self.tenant_url(identifier)
        engine = create_async_engine(url, **self.options.engine_kwargs(url, identifier))
        if self.is_sqlite:
            enable_sqlite_transactional_ddl(engine)
        return engine


def enable_sqlite_transactional_ddl(engine: AsyncEngine) -> None:
    """
    Makes `BEGIN` cover DDL on a sqlite engine.

    The sqlite driver normally starts a transaction only before DML and
    commits implicitly around `CREATE TABLE`, so a failed schema build would
    leave some tables behind. With the driver's own transaction handling
    switched off, SQLAlchemy emits `BEGIN` itself and the whole block rolls
    back together.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


class SchemaTenantBackend(TenantStorageBackend):
    strategy = "schema"

    def __init__(self, url: str, options: Optional[TenantPoolOptions] = None):
        super().__init__(url, options)
        if self.url.get_backend_name() != "postgresql":
            raise ValueError("The schema strategy requires a PostgreSQL data plane.")
        # [关键] 数据平面的 DDL 专用 engine，只用于建/删 Schema
        self._ddl_engine = create_async_engine(self.url, pool_pre_ping=True, pool_size=1, max_overflow=1)

    def schema_for(self, identifier: str) -> Optional[str]:
        return validate_identifier(identifier)

    async def exists(self, identifier: str) -> bool:
        schema = validate_identifier(identifier)
        async with self._ddl_engine.connect() as conn:
            return await conn.run_sync(lambda sync_conn: inspect(sync_conn).has_schema(schema))

    async def create(self, identifier: str) -> None:
        schema = validate_identifier(identifier)
        async with self._ddl_engine.begin() as conn:
            if await conn.run_sync(lambda sync_conn: inspect(sync_conn).has_schema(schema)):
                raise TenantAlreadyExists(f"Tenant schema '{schema}' already exists.")
            # 使用 CreateSchema 和 quoted_name 来防止SQL注入
            await conn.execute(CreateSchema(quoted_name(schema, quote=True)))
        logger.info("Created tenant schema %s", schema)

    async def drop(self, identifier: str) -> None:
        schema = validate_identifier(identifier)
        async with self._ddl_engine.begin() as conn:
            await conn.execute(DropSchema(quoted_name(schema, quote=True), if_exists=True, cascade=True))
        logger.info("Dropped tenant schema %s", schema)

    def create_engine(self, identifier: str) -> AsyncEngine:
        schema = validate_identifier(identifier)
        kwargs = self.options.engine_kwargs(self.url, schema)
        # 无 schema 的租户表在该 engine 上被路由到租户自己的 schema
        kwargs["execution_options"] = {"schema_translate_map": {None: schema}}
        return create_async_engine(self.url, **kwargs)

    async def close(self) -> None:
        await self._ddl_engine.dispose()


def build_tenant_backend(settings: Settings) -> TenantStorageBackend:
    options = TenantPoolOptions.from_settings(settings)
    if settings.TENANT_STRATEGY == "schema":
        return SchemaTenantBackend(settings.DATABASE_URL_TENANT_DATA, options)
    return DatabaseTenantBackend(settings.DATABASE_URL_TENANT_DATA, options, sqlite_dir=settings.TENANT_SQLITE_DIR)
