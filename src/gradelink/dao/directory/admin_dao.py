# gradelink/dao/directory/admin_dao.py
from sqlalchemy.ext.asyncio import AsyncSession

from typing import Optional
from gradelink.dao.base_dao import BaseDao
from gradelink.models.directory import Admin

class AdminDao(BaseDao[Admin]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(Admin, db_session)

    async def get_by_email(self, email: str) -> Optional[Admin]:
        """Finds an admin by email address (the school is joined eagerly)."""
        return await self.get_one(where={"email": email.strip().lower()})
