# gradelink/dao/base_dao.py

from typing import Type, TypeVar, Generic, Any, Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import inspect, or_, and_, func, select, delete
from sqlalchemy.orm import selectinload
from sqlalchemy.sql.selectable import Select
from gradelink.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)

class BaseDao(Generic[ModelType]):
    def __init__(self, model_class: Type[ModelType], db_session: AsyncSession):
        self.model: Type[ModelType] = model_class
        self.db_session: AsyncSession = db_session
        primary_keys = inspect(model_class).primary_key
        if not primary_keys:
            raise ValueError(f"Model {model_class.__name__} does not have a primary key.")
        self.pk: str = primary_keys[0].name

    # ==============================================================================
    # 1. 实体/对象方法 (Object Methods)
    # ==============================================================================

    async def get_list(
        self,
        where: Optional[dict | list] = None,
        withs: Optional[list] = None,
        order: Optional[list] = None
    ) -> list[ModelType]:
        stmt = self._quick_query(where=where, withs=withs, order=order)
        executed = await self.db_session.execute(stmt)
        return list(executed.scalars().all())

    async def get_one(
        self,
        where: Optional[dict | list] = None,
        where_or: Optional[list] = None,
        withs: Optional[list] = None,
        order: Optional[list] = None
    ) -> Optional[ModelType]:
        stmt = self._quick_query(where=where, where_or=where_or, withs=withs, order=order)
        executed = await self.db_session.execute(stmt)
        return executed.scalars().first()

    async def get_by_pk(self, pk_value: Any, withs: Optional[list] = None) -> Optional[ModelType]:
        return await self.get_one(where={self.pk: pk_value}, withs=withs)

    async def count(self, where: Optional[dict | list] = None) -> int:
        subquery_stmt = self._quick_query(where=where).subquery()
        count_stmt = select(func.count()).select_from(subquery_stmt)
        executed = await self.db_session.execute(count_stmt)
        return executed.scalar() or 0

    async def add(self, instance: ModelType, auto_flush: bool = True) -> ModelType:
        self.db_session.add(instance)
        if auto_flush:
            await self.db_session.flush()
            await self.db_session.refresh(instance)
        return instance

    # ==============================================================================
    # 2. 数据/批量方法 (Data/Bulk Methods)
    # ==============================================================================

    async def delete_where(self, where: dict | list) -> int:
        if not where:
            return 0
        conditions = self._where_format(where)
        stmt = delete(self.model).where(*conditions)
        executed = await self.db_session.execute(stmt)
        return executed.rowcount

    # ==============================================================================
    # 3. 聚合方法 (Aggregation Methods)
    # ==============================================================================

    async def count_grouped(self, column_name: str) -> dict[Any, int]:
        """{value of column: number of rows}"""
        column = getattr(self.model, column_name)
        stmt = select(column, func.count(getattr(self.model, self.pk))).group_by(column)
        executed = await self.db_session.execute(stmt)
        return {key: count for key, count in executed.all()}

    # ==============================================================================
    # 4. 查询构建辅助方法 (Query Building Helpers)
    # ==============================================================================

    def _quick_query(
        self,
        where: Optional[dict | list] = None,
        where_or: Optional[list] = None,
        withs: Optional[list] = None,
        order: Optional[list] = None
    ) -> Select:
        stmt = select(self.model)

        if where is not None:
            stmt = self._where(stmt, where)

        if where_or is not None:
            stmt = stmt.filter(or_(*where_or))

        if withs:
            stmt = stmt.options(*[selectinload(getattr(self.model, name)) for name in withs])

        if order is not None:
            stmt = stmt.order_by(*order)

        return stmt

    def _where(self, stmt: Select, where: dict | list) -> Select:
        if isinstance(where, dict):
            return stmt.filter_by(**where)
        return stmt.filter(*where)

    def _where_format(self, conditions: list | dict) -> list:
        if not conditions:
            return []
        if isinstance(conditions, dict):
            processed = [getattr(self.model, field) == value for field, value in conditions.items()]
        else:
            processed = list(conditions)
        if len(processed) > 1:
            processed = [and_(*processed)]
        return processed
