# tests/tenancy/test_coordinator.py

import asyncio
import logging
import pytest
from sqlalchemy import select, func, insert
from sqlalchemy.ext.asyncio import AsyncSession, AsyncTransaction, async_sessionmaker

from gradelink.db.tenant_schema import teachers_table
from gradelink.models.directory import TeacherLogin
from gradelink.tenancy.coordinator import LinkedWriteCoordinator, LinkedWriteState
from gradelink.services.exceptions import ConstraintViolation, OperationTimeout, PartialCommit

# ==============================================================================
# Helpers
# ==============================================================================

def teacher_op(code: str = "FIX/MAT/2025/001", delay: float = 0):
    async def _op(conn):
        await conn.execute(insert(teachers_table).values(
            teacher_code=code, teacher_name="Bola Ade", department="Mathematics"
        ))
        if delay:
            await asyncio.sleep(delay)
        return code
    return _op


def login_op(identifier: str):
    async def _op(session, teacher_code):
        login = TeacherLogin(
            teacher_code=teacher_code,
            password_hash="$2b$12$notarealhashbutnotplaintexteither",
            tenant_identifier=identifier,
            school_name="Fixture Academy",
        )
        session.add(login)
        return login
    return _op


async def count_teachers(tenants, identifier) -> int:
    async with tenants.connect(identifier) as conn:
        return (await conn.execute(select(func.count()).select_from(teachers_table))).scalar()


async def count_logins(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(TeacherLogin))).scalar()

# ==============================================================================
# Tests
# ==============================================================================

async def test_both_sides_commit(coordinator, tenants, session_factory, provisioned_tenant):
    result = await coordinator.run_linked(
        provisioned_tenant, teacher_op(), login_op(provisioned_tenant), operation="add_teacher"
    )

    assert result.state == LinkedWriteState.BOTH_COMMITTED
    assert result.tenant_result == "FIX/MAT/2025/001"
    assert result.central_result.id is not None
    assert await count_teachers(tenants, provisioned_tenant) == 1
    assert await count_logins(session_factory) == 1


async def test_central_failure_rolls_back_the_tenant_write(
    coordinator, tenants, session_factory, provisioned_tenant, caplog
):
    async def failing_central(session, teacher_code):
        raise RuntimeError("central directory is down")

    with caplog.at_level(logging.INFO, logger="gradelink.tenancy.coordinator"):
        with pytest.raises(RuntimeError):
            await coordinator.run_linked(provisioned_tenant, teacher_op(), failing_central, operation="add_teacher")

    assert "add_teacher" in caplog.text
    assert LinkedWriteState.ROLLED_BACK.value in caplog.text

    assert await count_teachers(tenants, provisioned_tenant) == 0
    assert await count_logins(session_factory) == 0


async def test_central_unique_violation_becomes_constraint_violation(
    coordinator, tenants, session_factory, provisioned_tenant
):
    async with session_factory() as session:
        await login_op(provisioned_tenant)(session, "FIX/MAT/2025/001")
        await session.commit()

    with pytest.raises(ConstraintViolation):
        await coordinator.run_linked(provisioned_tenant, teacher_op(), login_op(provisioned_tenant))

    # 租户侧的插入已回滚，中心库只剩预先存在的一行
    assert await count_teachers(tenants, provisioned_tenant) == 0
    assert await count_logins(session_factory) == 1


async def test_tenant_failure_never_opens_the_central_side(coordinator, tenants, session_factory, provisioned_tenant):
    central_calls = []

    async def central(session, result):
        central_calls.append(result)

    async def failing_tenant(conn):
        await teacher_op()(conn)
        raise ValueError("bad row")

    with pytest.raises(ValueError):
        await coordinator.run_linked(provisioned_tenant, failing_tenant, central)

    assert central_calls == []
    assert await count_teachers(tenants, provisioned_tenant) == 0


async def test_timeout_rolls_back_and_is_retryable(tenants, session_factory, provisioned_tenant):
    coordinator = LinkedWriteCoordinator(tenants, session_factory, op_timeout=0.05)

    with pytest.raises(OperationTimeout) as exc_info:
        await coordinator.run_linked(
            provisioned_tenant, teacher_op(delay=1), login_op(provisioned_tenant)
        )

    assert exc_info.value.retryable is True
    assert await count_teachers(tenants, provisioned_tenant) == 0
    assert await count_logins(session_factory) == 0


async def test_central_commit_failure_is_reported_as_partial_commit(
    tenants, central_engine, session_factory, provisioned_tenant, caplog
):
    class CommitFailingSession(AsyncSession):
        async def commit(self):
            raise ConnectionError("connection lost during commit")

    failing_factory = async_sessionmaker(bind=central_engine, class_=CommitFailingSession, expire_on_commit=False)
    coordinator = LinkedWriteCoordinator(tenants, failing_factory, op_timeout=5.0)

    with caplog.at_level(logging.CRITICAL, logger="gradelink.tenancy.coordinator"):
        with pytest.raises(PartialCommit) as exc_info:
            await coordinator.run_linked(
                provisioned_tenant, teacher_op(), login_op(provisioned_tenant), operation="add_teacher"
            )

    error = exc_info.value
    assert error.identifier == provisioned_tenant
    assert error.operation == "add_teacher"
    assert error.committed_side == "tenant"
    assert "PARTIAL COMMIT" in caplog.text
    assert "state=partial_commit" in caplog.text
    assert provisioned_tenant in caplog.text

    # 不一致被检测到而不是被掩盖：租户侧已提交，中心侧没有
    assert await count_teachers(tenants, provisioned_tenant) == 1
    assert await count_logins(session_factory) == 0


class TestTenantRollbackFailure:
    """租户侧回滚本身失败时，调用方仍然拿到最初的错误。"""

    @pytest.fixture(autouse=True)
    def broken_tenant_rollback(self, monkeypatch, provisioned_tenant):
        # 租户库先建好，之后的回滚才会失败
        async def broken_rollback(self):
            raise RuntimeError("connection reset during rollback")

        monkeypatch.setattr(AsyncTransaction, "rollback", broken_rollback)

    async def test_original_tenant_error_is_raised(self, coordinator, tenants, provisioned_tenant, caplog):
        """[失败路径] 回滚失败被记录为补偿失败，不会覆盖租户操作的错误。"""
        async def failing_tenant(conn):
            await teacher_op()(conn)
            raise ValueError("original tenant failure")

        with caplog.at_level(logging.ERROR, logger="gradelink.tenancy.coordinator"):
            with pytest.raises(ValueError, match="original tenant failure"):
                await coordinator.run_linked(provisioned_tenant, failing_tenant, login_op(provisioned_tenant))

        assert "Tenant rollback failed" in caplog.text
        assert LinkedWriteState.ROLLED_BACK.value in caplog.text
        # 连接关闭时未提交的事务被丢弃
        assert await count_teachers(tenants, provisioned_tenant) == 0

    async def test_unique_violation_is_still_mapped(self, coordinator, tenants, provisioned_tenant):
        """[失败路径] 唯一约束冲突仍映射为 ConstraintViolation，并带上补偿失败的记录。"""
        async def duplicate_teacher(conn):
            await teacher_op()(conn)
            await teacher_op()(conn)

        with pytest.raises(ConstraintViolation) as exc_info:
            await coordinator.run_linked(provisioned_tenant, duplicate_teacher, login_op(provisioned_tenant))

        assert exc_info.value.compensation_failed is True
        assert "tenant rollback failed" in exc_info.value.compensation_errors[0]
        assert await count_teachers(tenants, provisioned_tenant) == 0
