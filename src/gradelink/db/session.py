# gradelink/db/session.py

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine
from sqlalchemy.orm import sessionmaker
from gradelink.core.config import settings
from gradelink.db.base import Base

# 中心目录库 engine（学校、管理员、登录索引）
engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,      # 在每次从连接池获取连接时，测试其连通性，防止拿到失效连接
    pool_recycle=3600,       # 每隔1小时回收连接
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
    class_=AsyncSession
)

# 依赖项：为每个API请求提供一个独立的数据库会话
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a transactional scope around a request.
    Directory reads use this session; writes that must be committed in phases
    (registration, linked writes) open their own sessions from the factory.
    """
    async with SessionLocal() as session:
        async with session.begin():
            yield session

async def init_db(bind: AsyncEngine = engine) -> None:
    """Creates the central directory tables if they are absent."""
    import gradelink.models  # noqa: F401  registers the ORM models on Base.metadata
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
