# gradelink/core/context.py

from pydantic import BaseModel, ConfigDict
from typing import Callable, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from gradelink.tenancy.registry import TenantPoolRegistry
from gradelink.tenancy.coordinator import LinkedWriteCoordinator
from gradelink.services.exceptions import InvalidIdentifier

class AppContext(BaseModel):
    """
    Typed bundle of the dependencies available to the service layer.
    Built per request by `gradelink.api.dependencies.context`.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # 中心目录库会话（请求级事务）
    db: AsyncSession
    # 需要分阶段提交的流程（注册、跨库写入）从这里开新会话
    session_factory: Callable[[], AsyncSession]

    tenants: TenantPoolRegistry
    coordinator: LinkedWriteCoordinator

    # 请求携带的租户名称（X-School-Name），尚未解析
    school_name: Optional[str] = None

    @property
    def requested_school(self) -> str:
        if not self.school_name or not self.school_name.strip():
            raise InvalidIdentifier("A school name is required for this operation (X-School-Name header).")
        return self.school_name
