# gradelink/services/tenant/student_service.py

import logging
from datetime import datetime
from sqlalchemy import select, func, insert
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession
from gradelink.core.security import generate_password, get_password_hash
from gradelink.db.tenant_schema import GRADE_BANDS, student_tables, student_table_for
from gradelink.models.directory import StudentLogin
from gradelink.schemas.tenant.student_schemas import StudentCreate, StudentRead, StudentCreated, StudentListing
from gradelink.services.exceptions import ServiceException
from gradelink.services.tenant.base import TenantBoundService
from gradelink.services.tenant.codes import build_admission_number, build_student_code

logger = logging.getLogger(__name__)

class StudentService(TenantBoundService):

    async def add_student(self, student_in: StudentCreate) -> StudentCreated:
        """
        Creates the student profile in the school's database and its login
        row in the directory as one linked write.
        """
        school = await self._school()
        identifier = school.identifier
        table = student_table_for(student_in.section)
        if table is None:
            raise ServiceException(f"Unknown section '{student_in.section}'.")

        password = generate_password()
        password_hash = get_password_hash(password)
        year = datetime.now().year

        async def create_profile(conn: AsyncConnection) -> dict:
            await self._writable(conn, identifier, [table])
            count = (await conn.execute(select(func.count()).select_from(table))).scalar() or 0
            admission_number = build_admission_number(school.name, student_in.section, year, count + 1)
            values = student_in.model_dump(exclude_none=True)
            values.update(
                full_name=student_in.full_name.strip(),
                section=student_in.section,
                admission_number=admission_number,
                student_code=build_student_code(student_in.full_name, admission_number),
            )
            result = await conn.execute(insert(table).values(**values).returning(*table.c))
            return dict(result.mappings().one())

        async def create_login(session: AsyncSession, profile: dict) -> StudentLogin:
            login = StudentLogin(
                admission_number=profile["admission_number"],
                student_code=profile["student_code"],
                password_hash=password_hash,
                tenant_identifier=identifier,
                school_name=school.name,
                logo=school.logo,
            )
            session.add(login)
            return login

        outcome = await self.coordinator.run_linked(
            identifier, create_profile, create_login, operation="add_student"
        )
        logger.info("Added student %s to %s", outcome.tenant_result["admission_number"], identifier)
        return StudentCreated(student=StudentRead.model_validate(outcome.tenant_result), password=password)

    async def list_students(self) -> StudentListing:
        """All students grouped by grade band; a band whose table is missing comes back empty."""
        school = await self._school()
        listing = StudentListing()
        async with self.tenants.connect(school.identifier) as conn:
            readable = await self._readable(conn, school.identifier, student_tables.values())
            for band in GRADE_BANDS:
                table = student_tables[band]
                if table.name not in readable:
                    continue
                rows = (await conn.execute(select(table).order_by(table.c.id))).mappings().all()
                setattr(listing, band, [StudentRead.model_validate(dict(row)) for row in rows])
        return listing
