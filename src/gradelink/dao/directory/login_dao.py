# gradelink/dao/directory/login_dao.py
from sqlalchemy.ext.asyncio import AsyncSession

from typing import Optional
from gradelink.dao.base_dao import BaseDao
from gradelink.models.directory import StudentLogin, TeacherLogin

# 学号/教师编号只在租户内唯一，不同学校可能重复，所以按候选列表返回

class StudentLoginDao(BaseDao[StudentLogin]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(StudentLogin, db_session)

    async def get_candidates(self, admission_number: str, tenant_identifier: Optional[str] = None) -> list[StudentLogin]:
        where = {"admission_number": admission_number.strip()}
        if tenant_identifier:
            where["tenant_identifier"] = tenant_identifier
        return await self.get_list(where=where, order=[StudentLogin.id])


class TeacherLoginDao(BaseDao[TeacherLogin]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(TeacherLogin, db_session)

    async def get_candidates(self, teacher_code: str, tenant_identifier: Optional[str] = None) -> list[TeacherLogin]:
        where = {"teacher_code": teacher_code.strip()}
        if tenant_identifier:
            where["tenant_identifier"] = tenant_identifier
        return await self.get_list(where=where, order=[TeacherLogin.id])
