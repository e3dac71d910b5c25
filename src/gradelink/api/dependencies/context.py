# gradelink/api/dependencies/context.py

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from gradelink.core.context import AppContext
from gradelink.db.session import get_db

# --- 步骤1: 基础上下文，只包含全局共享依赖 ---
async def get_base_context(
    request: Request,
    db: AsyncSession = Depends(get_db)
) -> AppContext:
    """
    Builds the AppContext from the per-request session and the objects the
    lifespan placed on app.state.
    """
    return AppContext(
        db=db,
        session_factory=request.app.state.session_factory,
        tenants=request.app.state.tenants,
        coordinator=request.app.state.coordinator,
    )

# --- 步骤2: 租户上下文，附带请求指定的学校 ---
async def get_tenant_context(
    context: AppContext = Depends(get_base_context),
    x_school_name: Optional[str] = Header(None, description="Display name or identifier of the school"),
    school_name: Optional[str] = None,
) -> AppContext:
    """
    The school is taken from the X-School-Name header, or the `school_name`
    query parameter for clients that cannot set headers.
    """
    context.school_name = x_school_name or school_name
    return context

# 用于目录和登录等非租户路由
BaseContextDep = Depends(get_base_context)
# 用于在某个学校的数据库内执行的路由
TenantContextDep = Depends(get_tenant_context)
