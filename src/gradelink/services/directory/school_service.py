# gradelink/services/directory/school_service.py

import logging
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from gradelink.core.identifiers import normalize
from gradelink.dao.directory.school_dao import SchoolDao
from gradelink.dao.directory.admin_dao import AdminDao
from gradelink.dao.directory.login_dao import StudentLoginDao, TeacherLoginDao
from gradelink.models.directory import School
from gradelink.schemas.directory.school_schemas import SchoolCreate, DashboardStats
from gradelink.services.exceptions import DuplicateTenant, InvalidIdentifier, NotFoundError

logger = logging.getLogger(__name__)

class SchoolService:
    """
    The tenant directory: which schools exist and which identifier each one
    is stored under. Works on the central session it is given.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.school_dao = SchoolDao(db)
        self.admin_dao = AdminDao(db)
        self.student_login_dao = StudentLoginDao(db)
        self.teacher_login_dao = TeacherLoginDao(db)

    async def create_school(self, school_in: SchoolCreate) -> School:
        """Inserts and commits the School row. Raises DuplicateTenant on a name or identifier clash."""
        identifier = normalize(school_in.name)

        existing = await self.school_dao.get_by_name_or_identifier(school_in.name, identifier)
        if existing:
            raise DuplicateTenant(
                f"School '{school_in.name}' conflicts with already registered school '{existing.name}'."
            )

        school = School(
            **school_in.model_dump(exclude={"admin"}, exclude_none=True),
            identifier=identifier,
        )
        try:
            await self.school_dao.add(school)
            await self.db.commit()
        except IntegrityError as e:
            # 并发注册时由唯一约束兜底
            await self.db.rollback()
            raise DuplicateTenant(f"School '{school_in.name}' is already registered.") from e
        logger.info("Registered school %s as %s", school.name, identifier)
        return school

    async def find_school_by_name(self, name: Optional[str]) -> Optional[School]:
        """
        Resolves whatever a client sent as the school name: the display name
        (case and surrounding whitespace ignored), a spelling that normalizes
        to the same identifier, or the identifier itself.
        """
        if not name or not name.strip():
            return None
        try:
            identifier = normalize(name)
        except InvalidIdentifier:
            identifier = None
        return await self.school_dao.get_by_name_or_identifier(name, identifier)

    async def find_school_by_id(self, school_id: int) -> Optional[School]:
        return await self.school_dao.get_by_pk(school_id)

    async def require_school(self, name: Optional[str]) -> School:
        school = await self.find_school_by_name(name)
        if not school:
            raise NotFoundError(f"School '{name}' not found.")
        return school

    async def delete_school(self, school_id: int) -> School:
        """
        Removes the School row and every central row that depends on it, then
        commits. The tenant database is left to the caller.
        """
        school = await self.find_school_by_id(school_id)
        if not school:
            raise NotFoundError(f"School {school_id} not found.")

        # 异步会话中不能依赖 ORM 级联的懒加载，显式批量删除
        await self.student_login_dao.delete_where({"tenant_identifier": school.identifier})
        await self.teacher_login_dao.delete_where({"tenant_identifier": school.identifier})
        await self.admin_dao.delete_where({"school_id": school.id})
        await self.school_dao.delete_where({"id": school.id})
        await self.db.commit()
        logger.info("Removed directory rows for school %s (%s)", school.name, school.identifier)
        return school

    async def list_schools(self, with_admins: bool = False) -> List[School]:
        if with_admins:
            return await self.school_dao.get_list_with_admins()
        return await self.school_dao.get_list(order=[School.id])

    async def count_logins_per_school(self) -> tuple[dict[str, int], dict[str, int]]:
        students = await self.student_login_dao.count_grouped("tenant_identifier")
        teachers = await self.teacher_login_dao.count_grouped("tenant_identifier")
        return students, teachers

    async def get_dashboard_stats(self) -> DashboardStats:
        students_per_school, teachers_per_school = await self.count_logins_per_school()
        return DashboardStats(
            schools=await self.school_dao.count(),
            admins=await self.admin_dao.count(),
            students=sum(students_per_school.values()),
            teachers=sum(teachers_per_school.values()),
            students_per_school=students_per_school,
            teachers_per_school=teachers_per_school,
        )
