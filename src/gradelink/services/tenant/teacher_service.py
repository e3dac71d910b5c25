# gradelink/services/tenant/teacher_service.py

import logging
from datetime import datetime
from sqlalchemy import select, func, insert
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession
from gradelink.core.security import generate_password, get_password_hash
from gradelink.db.tenant_schema import teachers_table, subjects_table, teacher_subjects_table, teacher_classes_table
from gradelink.models.directory import TeacherLogin
from gradelink.schemas.tenant.teacher_schemas import TeacherCreate, TeacherRead, TeacherCreated, TeacherProfile
from gradelink.services.exceptions import NotFoundError
from gradelink.services.tenant.base import TenantBoundService, readable_tables
from gradelink.services.tenant.codes import build_teacher_code
from gradelink.tenancy.registry import TenantPoolRegistry

logger = logging.getLogger(__name__)

class TeacherService(TenantBoundService):

    async def add_teacher(self, teacher_in: TeacherCreate) -> TeacherCreated:
        school = await self._school()
        identifier = school.identifier
        password = generate_password()
        password_hash = get_password_hash(password)
        department = teacher_in.department.strip()
        year = datetime.now().year

        async def create_profile(conn: AsyncConnection) -> dict:
            await self._writable(conn, identifier, [teachers_table])
            # 编号按院系计数
            count = (await conn.execute(
                select(func.count()).select_from(teachers_table).where(teachers_table.c.department == department)
            )).scalar() or 0
            values = teacher_in.model_dump(exclude_none=True)
            values.update(
                teacher_name=teacher_in.teacher_name.strip(),
                department=department,
                teacher_code=build_teacher_code(school.name, department, year, count + 1),
            )
            result = await conn.execute(insert(teachers_table).values(**values).returning(*teachers_table.c))
            return dict(result.mappings().one())

        async def create_login(session: AsyncSession, profile: dict) -> TeacherLogin:
            login = TeacherLogin(
                teacher_code=profile["teacher_code"],
                password_hash=password_hash,
                tenant_identifier=identifier,
                school_name=school.name,
                logo=school.logo,
            )
            session.add(login)
            return login

        outcome = await self.coordinator.run_linked(
            identifier, create_profile, create_login, operation="add_teacher"
        )
        logger.info("Added teacher %s to %s", outcome.tenant_result["teacher_code"], identifier)
        return TeacherCreated(teacher=TeacherRead.model_validate(outcome.tenant_result), password=password)

    async def get_teacher(self, teacher_code: str) -> TeacherProfile:
        school = await self._school()
        async with self.tenants.connect(school.identifier) as conn:
            profile = await fetch_teacher_profile(self.tenants, conn, school.identifier, teacher_code)
        if profile is None:
            raise NotFoundError(f"Teacher '{teacher_code}' not found.")
        return profile


async def fetch_teacher_profile(tenants: TenantPoolRegistry, conn: AsyncConnection, identifier: str, teacher_code: str):
    """Teacher row plus assigned subject names and classes, or None."""
    readable = await readable_tables(
        tenants, conn, identifier, [teachers_table, subjects_table, teacher_subjects_table, teacher_classes_table]
    )
    if teachers_table.name not in readable:
        return None
    row = (await conn.execute(
        select(teachers_table).where(teachers_table.c.teacher_code == teacher_code)
    )).mappings().first()
    if row is None:
        return None

    profile = TeacherProfile.model_validate(dict(row))
    if {subjects_table.name, teacher_subjects_table.name} <= readable:
        profile.subjects = list((await conn.execute(
            select(subjects_table.c.subject_name)
            .join(teacher_subjects_table, teacher_subjects_table.c.subject_id == subjects_table.c.id)
            .where(teacher_subjects_table.c.teacher_code == teacher_code)
            .order_by(subjects_table.c.subject_name)
        )).scalars().all())
    if teacher_classes_table.name in readable:
        classes = (await conn.execute(
            select(teacher_classes_table.c.class_name, teacher_classes_table.c.section)
            .where(teacher_classes_table.c.teacher_code == teacher_code)
            .order_by(teacher_classes_table.c.class_name, teacher_classes_table.c.section)
        )).all()
        profile.classes = [f"{c} {s}".strip() if s else c for c, s in classes]
    return profile
