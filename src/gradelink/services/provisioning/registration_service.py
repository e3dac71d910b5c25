# gradelink/services/provisioning/registration_service.py

import os
import logging
from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from gradelink.core.config import settings
from gradelink.core.context import AppContext
from gradelink.core.identifiers import validate_identifier
from gradelink.core.security import get_password_hash
from gradelink.db.tenant_schema import tenant_metadata
from gradelink.dao.directory.admin_dao import AdminDao
from gradelink.models.directory import Admin, School
from gradelink.schemas.directory.school_schemas import SchoolCreate, SchoolRead, AdminRead, RegistrationResult
from gradelink.services.directory.school_service import SchoolService
from gradelink.services.exceptions import (
    AdminProvisioningFailed,
    ConstraintViolation,
    TenantAlreadyExists,
    TenantProvisioningFailed,
)
from gradelink.tenancy.registry import TenantPoolRegistry

logger = logging.getLogger(__name__)

class TenantProvisioner:
    """Creates and removes the physical side of a tenant."""

    def __init__(self, tenants: TenantPoolRegistry):
        self.tenants = tenants
        self.backend = tenants.backend

    async def create_storage(self, identifier: str) -> None:
        await self.backend.create(validate_identifier(identifier))

    async def ensure_schema(self, identifier: str) -> None:
        """
        Creates any missing tenant table in a single transaction. Safe to
        re-run against a partially or fully provisioned tenant.

        PostgreSQL DDL is transactional. sqlite tenant engines emit their own
        `BEGIN` (see `enable_sqlite_transactional_ddl`), so a failure here
        leaves no table behind on either.
        """
        async with self.tenants.begin(identifier) as conn:
            await conn.run_sync(tenant_metadata.create_all, checkfirst=True)

    async def provision(self, identifier: str) -> None:
        await self.create_storage(identifier)
        await self.ensure_schema(identifier)

    async def teardown(self, identifier: str) -> None:
        """Closes the tenant's pool, then drops its database/schema."""
        identifier = validate_identifier(identifier)
        # PostgreSQL 无法删除仍有连接的数据库，先释放连接池
        await self.tenants.dispose(identifier)
        await self.backend.drop(identifier)


class RegistrationService:
    """
    School registration and removal, spanning the directory and the data plane.

    Registration runs four phases, each committed on its own:
      1. School row          -> DuplicateTenant, nothing else happens
      2. physical storage    -> compensated by deleting the School row
      3. tenant tables       -> compensated by dropping storage and the School row
      4. first Admin row     -> not compensated; the school stays usable
    """

    def __init__(self, context: AppContext):
        self.context = context
        self.session_factory = context.session_factory
        self.tenants = context.tenants
        self.provisioner = TenantProvisioner(context.tenants)

    async def register_school(self, school_in: SchoolCreate) -> RegistrationResult:
        async with self.session_factory() as session:
            if await AdminDao(session).get_by_email(school_in.admin.email):
                raise ConstraintViolation(f"Admin email '{school_in.admin.email}' is already in use.")

        # --- 1. 目录记录 ---
        async with self.session_factory() as session:
            school = await SchoolService(session).create_school(school_in)
        identifier = school.identifier

        # --- 2. 物理库/Schema ---
        try:
            await self.provisioner.create_storage(identifier)
        except TenantAlreadyExists:
            # 物理库属于别人（或上次残留），不能删除它
            logger.error("Storage for %s already exists; rolling back directory row", identifier)
            await self._remove_school_row(school.id, [])
            raise
        except Exception as e:
            errors: List[str] = []
            await self._remove_school_row(school.id, errors)
            logger.exception("Creating storage for %s failed", identifier)
            raise TenantProvisioningFailed(
                f"Could not create the database for '{school.name}'.",
                identifier=identifier, phase="database", compensation_errors=errors,
            ) from e

        # --- 3. 租户表结构 ---
        try:
            await self.provisioner.ensure_schema(identifier)
        except Exception as e:
            logger.exception("Creating tables for %s failed", identifier)
            errors = []
            try:
                await self.provisioner.teardown(identifier)
            except Exception as drop_error:
                errors.append(f"drop storage: {drop_error!r}")
                logger.error("Compensation failed, %s needs manual cleanup: %r", identifier, drop_error)
            await self._remove_school_row(school.id, errors)
            raise TenantProvisioningFailed(
                f"Could not create the tables for '{school.name}'.",
                identifier=identifier, phase="schema", compensation_errors=errors,
            ) from e

        # --- 4. 首个管理员 ---
        admin = await self._create_admin(school, school_in)
        return RegistrationResult(school=SchoolRead.model_validate(school), admin=AdminRead.model_validate(admin))

    async def _create_admin(self, school: School, school_in: SchoolCreate) -> Admin:
        admin_in = school_in.admin
        try:
            async with self.session_factory() as session:
                admin = Admin(
                    school_id=school.id,
                    first_name=admin_in.first_name,
                    last_name=admin_in.last_name,
                    email=admin_in.email,
                    phone=admin_in.phone,
                    password_hash=get_password_hash(admin_in.password),
                )
                await AdminDao(session).add(admin)
                await session.commit()
                return admin
        except Exception as e:
            logger.exception("School %s provisioned but its admin was not created", school.identifier)
            reason = "the email is already in use" if isinstance(e, IntegrityError) else "a database error"
            raise AdminProvisioningFailed(
                f"School '{school.name}' was created but its admin account failed ({reason}).",
                school_id=school.id, identifier=school.identifier,
            ) from e

    async def _remove_school_row(self, school_id: int, errors: List[str]) -> None:
        try:
            async with self.session_factory() as session:
                await SchoolService(session).delete_school(school_id)
        except Exception as e:
            errors.append(f"delete school row: {e!r}")
            logger.error("Compensation failed, school row %s needs manual cleanup: %r", school_id, e)

    async def delete_school(self, school_id: int) -> SchoolRead:
        """
        Removes the directory rows, then the tenant's pool and storage, then
        the logo. Storage and logo removal are best effort: once the
        directory rows are gone the school is deleted as far as clients can tell.
        """
        async with self.session_factory() as session:
            school = await SchoolService(session).delete_school(school_id)

        try:
            await self.provisioner.teardown(school.identifier)
        except Exception:
            logger.exception("Could not drop storage for deleted school %s", school.identifier)

        self._remove_logo(school.logo)
        return SchoolRead.model_validate(school)

    @staticmethod
    def _remove_logo(logo: Optional[str]) -> None:
        if not logo:
            return
        upload_root = os.path.abspath(settings.UPLOAD_DIR)
        path = os.path.abspath(os.path.join(upload_root, logo.lstrip("/\\")))
        if not path.startswith(upload_root + os.sep):
            logger.warning("Refusing to remove logo outside the upload directory: %s", logo)
            return
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception("Could not remove logo %s", path)
