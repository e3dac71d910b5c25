# tests/conftest.py

import os
import tempfile

# 必须在导入 gradelink 之前设置，Settings() 在导入时实例化
_TEST_ROOT = tempfile.mkdtemp(prefix="gradelink-tests-")
os.environ["APP_ENV"] = "test"
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{os.path.join(_TEST_ROOT, 'central.db')}"
os.environ["TENANT_DB_URL"] = "sqlite+aiosqlite://"
os.environ["TENANT_SQLITE_DIR"] = os.path.join(_TEST_ROOT, "tenants")
os.environ["UPLOAD_DIR"] = os.path.join(_TEST_ROOT, "uploads")

from typing import AsyncGenerator
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from gradelink.main import app
from gradelink.core.config import settings
from gradelink.core.context import AppContext
from gradelink.db.base import Base
from gradelink.db.session import get_db
from gradelink.tenancy.backends import DatabaseTenantBackend, TenantPoolOptions
from gradelink.tenancy.registry import TenantPoolRegistry
from gradelink.tenancy.coordinator import LinkedWriteCoordinator
from gradelink.services.provisioning.registration_service import RegistrationService, TenantProvisioner
from gradelink.schemas.directory.school_schemas import SchoolCreate
import gradelink.models  # noqa: F401

# ==============================================================================
# 1. 数据库 Fixtures
#    - 每个测试一个全新的中心库文件和租户目录
# ==============================================================================

@pytest.fixture(scope="function")
async def central_engine(tmp_path):
    # 使用 NullPool 确保每个连接都是全新的，避免在异步测试中共享状态
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'central.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest.fixture(scope="function")
def session_factory(central_engine):
    return async_sessionmaker(
        autoflush=False, expire_on_commit=False, bind=central_engine, class_=AsyncSession
    )

@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()

@pytest.fixture(scope="function")
def tenant_dir(tmp_path) -> str:
    return str(tmp_path / "tenants")

@pytest.fixture(scope="function")
def backend(tenant_dir) -> DatabaseTenantBackend:
    return DatabaseTenantBackend(
        "sqlite+aiosqlite://",
        TenantPoolOptions(pool_size=2, max_overflow=2, pool_timeout=5.0, connect_timeout=5.0),
        sqlite_dir=tenant_dir,
    )

@pytest.fixture(scope="function")
async def tenants(backend) -> AsyncGenerator[TenantPoolRegistry, None]:
    registry = TenantPoolRegistry(backend, settings)
    yield registry
    await registry.dispose_all()

@pytest.fixture(scope="function")
def coordinator(tenants, session_factory) -> LinkedWriteCoordinator:
    return LinkedWriteCoordinator(tenants, session_factory, op_timeout=5.0)

@pytest.fixture(scope="function")
def provisioner(tenants) -> TenantProvisioner:
    return TenantProvisioner(tenants)

@pytest.fixture(scope="function")
async def provisioned_tenant(provisioner) -> str:
    """A tenant with the full table set and no directory entry."""
    identifier = "tenant_fixture_academy"
    await provisioner.provision(identifier)
    return identifier

# ==============================================================================
# 2. 上下文与 HTTP 客户端 Fixtures
# ==============================================================================

@pytest.fixture(scope="function")
def make_context(db_session, session_factory, tenants, coordinator):
    def _make(school_name: str = None) -> AppContext:
        return AppContext(
            db=db_session,
            session_factory=session_factory,
            tenants=tenants,
            coordinator=coordinator,
            school_name=school_name,
        )
    return _make

@pytest.fixture(scope="function")
def school_payload():
    def _payload(name: str = "Green Valley School", admin_email: str = "admin@greenvalley.example.com") -> dict:
        return {
            "name": name,
            "email": "office@greenvalley.example.com",
            "city": "Abuja",
            "country": "Nigeria",
            "admin": {
                "first_name": "Ada",
                "last_name": "Obi",
                "email": admin_email,
                "password": "admin-password",
            },
        }
    return _payload

@pytest.fixture(scope="function")
async def registered_school(make_context, school_payload):
    """Green Valley School, registered end to end."""
    service = RegistrationService(make_context())
    return await service.register_school(SchoolCreate(**school_payload()))

@pytest.fixture(scope="function")
async def client(session_factory, tenants, coordinator) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client against the app, with the central session and the tenant
    registry swapped for the per-test ones. The lifespan does not run.
    """
    async def override_get_db():
        async with session_factory() as session:
            async with session.begin():
                yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.session_factory = session_factory
    app.state.tenants = tenants
    app.state.coordinator = coordinator

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
