# gradelink/services/identity/login_service.py

import logging
from typing import Any, Dict, Optional, Sequence
from sqlalchemy import select
from gradelink.core.context import AppContext
from gradelink.core.identifiers import validate_identifier
from gradelink.core.security import create_access_token, verify_password
from gradelink.dao.directory.admin_dao import AdminDao
from gradelink.dao.directory.login_dao import StudentLoginDao, TeacherLoginDao
from gradelink.db.tenant_schema import student_tables
from gradelink.schemas.directory.school_schemas import AdminRead
from gradelink.schemas.identity.login_schemas import (
    AdminLoginRequest, StudentLoginRequest, TeacherLoginRequest, LoginResult
)
from gradelink.schemas.tenant.student_schemas import StudentRead
from gradelink.services.directory.school_service import SchoolService
from gradelink.services.exceptions import InvalidCredentialsError
from gradelink.services.tenant.base import readable_tables
from gradelink.services.tenant.teacher_service import fetch_teacher_profile

logger = logging.getLogger(__name__)

class LoginService:
    """
    Password logins for the three kinds of account. Students and teachers
    are found through their directory login row, whose denormalized tenant
    identifier then leads to the full profile in the school's database.
    """

    def __init__(self, context: AppContext):
        self.context = context
        self.tenants = context.tenants
        self.admin_dao = AdminDao(context.db)
        self.student_login_dao = StudentLoginDao(context.db)
        self.teacher_login_dao = TeacherLoginDao(context.db)
        self.school_service = SchoolService(context.db)

    async def login_admin(self, login_in: AdminLoginRequest) -> LoginResult:
        admin = await self.admin_dao.get_by_email(login_in.email)
        if not admin or not verify_password(login_in.password, admin.password_hash):
            raise InvalidCredentialsError("Invalid email or password.")
        school = admin.school
        return LoginResult(
            access_token=self._token("admin", admin.id, school.identifier),
            role="admin",
            school_name=school.name,
            identifier=school.identifier,
            logo=school.logo,
            profile=AdminRead.model_validate(admin).model_dump(),
        )

    async def login_student(self, login_in: StudentLoginRequest) -> LoginResult:
        tenant = await self._tenant_filter(login_in.school_name)
        candidates = await self.student_login_dao.get_candidates(login_in.admission_number, tenant)
        login = self._first_verified(candidates, login_in.password)
        if login is None:
            raise InvalidCredentialsError("Invalid admission number or password.")

        identifier = validate_identifier(login.tenant_identifier)
        profile: Dict[str, Any] = {}
        async with self.tenants.connect(identifier) as conn:
            readable = await readable_tables(self.tenants, conn, identifier, student_tables.values())
            for table in student_tables.values():
                if table.name not in readable:
                    continue
                row = (await conn.execute(
                    select(table).where(table.c.admission_number == login.admission_number)
                )).mappings().first()
                if row is not None:
                    profile = StudentRead.model_validate(dict(row)).model_dump()
                    break
        if not profile:
            logger.error("Integrity issue: student login %s has no profile in %s", login.admission_number, identifier)
            profile = {"admission_number": login.admission_number, "student_code": login.student_code}

        return LoginResult(
            access_token=self._token("student", login.admission_number, identifier),
            role="student",
            school_name=login.school_name,
            identifier=identifier,
            logo=login.logo,
            profile=profile,
        )

    async def login_teacher(self, login_in: TeacherLoginRequest) -> LoginResult:
        tenant = await self._tenant_filter(login_in.school_name)
        candidates = await self.teacher_login_dao.get_candidates(login_in.teacher_code, tenant)
        login = self._first_verified(candidates, login_in.password)
        if login is None:
            raise InvalidCredentialsError("Invalid teacher code or password.")

        identifier = validate_identifier(login.tenant_identifier)
        async with self.tenants.connect(identifier) as conn:
            teacher = await fetch_teacher_profile(self.tenants, conn, identifier, login.teacher_code)
        if teacher is None:
            logger.error("Integrity issue: teacher login %s has no profile in %s", login.teacher_code, identifier)
            profile = {"teacher_code": login.teacher_code}
        else:
            profile = teacher.model_dump()

        return LoginResult(
            access_token=self._token("teacher", login.teacher_code, identifier),
            role="teacher",
            school_name=login.school_name,
            identifier=identifier,
            logo=login.logo,
            profile=profile,
        )

    async def _tenant_filter(self, school_name: Optional[str]) -> Optional[str]:
        if not school_name:
            return None
        school = await self.school_service.find_school_by_name(school_name)
        if school is None:
            raise InvalidCredentialsError("Invalid credentials provided.")
        return school.identifier

    @staticmethod
    def _first_verified(candidates: Sequence, password: str):
        # 每个候选都要做一次 bcrypt 校验，候选通常只有一个
        for candidate in candidates:
            if verify_password(password, candidate.password_hash):
                return candidate
        return None

    @staticmethod
    def _token(role: str, subject: Any, identifier: str) -> str:
        return create_access_token(subject=subject, claims={"role": role, "tenant": identifier})
