# gradelink/dao/directory/school_dao.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, or_

from typing import Optional
from gradelink.dao.base_dao import BaseDao
from gradelink.models.directory import School

class SchoolDao(BaseDao[School]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(School, db_session)

    async def get_by_identifier(self, identifier: str) -> Optional[School]:
        return await self.get_one(where={"identifier": identifier})

    async def get_by_name_or_identifier(self, name: str, identifier: Optional[str] = None) -> Optional[School]:
        """Case-insensitive match on the display name, or an exact match on the identifier."""
        conditions = [func.lower(func.trim(School.name)) == name.strip().lower()]
        if identifier:
            conditions.append(School.identifier == identifier)
        return await self.get_one(where_or=conditions, order=[School.id])

    async def get_list_with_admins(self) -> list[School]:
        return await self.get_list(withs=["admins"], order=[School.id])
