# gradelink/services/tenant/base.py

import logging
from typing import Iterable, Set
from sqlalchemy import Table
from sqlalchemy.ext.asyncio import AsyncConnection
from gradelink.core.context import AppContext
from gradelink.db.tenant_schema import existing_tables, ensure_tables
from gradelink.models.directory import School
from gradelink.services.directory.school_service import SchoolService
from gradelink.tenancy.registry import TenantPoolRegistry

logger = logging.getLogger(__name__)


async def readable_tables(
    tenants: TenantPoolRegistry, conn: AsyncConnection, identifier: str, tables: Iterable[Table]
) -> Set[str]:
    """
    Names of the requested tables that exist. Missing ones are logged and
    reads against them should yield no rows.
    """
    present = await existing_tables(conn, tenants.schema_for(identifier))
    wanted = {t.name for t in tables}
    missing = wanted - present
    if missing:
        logger.warning("Tenant %s is missing table(s) %s; reading them as empty", identifier, sorted(missing))
    return wanted & present


class TenantBoundService:
    """
    Base for services that act inside one school's database.

    The school is resolved from the name carried by the request; its stored
    identifier (not the raw request value) is what reaches the registry.
    """

    def __init__(self, context: AppContext):
        self.context = context
        self.tenants = context.tenants
        self.coordinator = context.coordinator
        self.school_service = SchoolService(context.db)

    async def _school(self) -> School:
        return await self.school_service.require_school(self.context.requested_school)

    async def _readable(self, conn: AsyncConnection, identifier: str, tables: Iterable[Table]) -> Set[str]:
        return await readable_tables(self.tenants, conn, identifier, tables)

    async def _writable(self, conn: AsyncConnection, identifier: str, tables: Iterable[Table]) -> None:
        await ensure_tables(conn, tables, self.tenants.schema_for(identifier))
