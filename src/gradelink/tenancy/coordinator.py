# gradelink/tenancy/coordinator.py

"""
Linked writes across a tenant database and the central directory.

The two databases cannot share a transaction, so a linked write is run as a
small saga:

    IDLE -> TENANT_TX_OPEN -> CENTRAL_TX_OPEN -> BOTH_COMMITTED
                                              \\-> ROLLED_BACK
                                              \\-> PARTIAL_COMMIT

The tenant side commits first. If the central commit then fails the tenant
row is already durable; that case is logged as a partial commit and raised
as `PartialCommit` so an operator can reconcile it. A rollback that fails
while another error is being handled is logged and recorded on that error
as a compensation failure; it never replaces the original error.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession, AsyncTransaction
from gradelink.core.identifiers import validate_identifier
from gradelink.tenancy.registry import TenantPoolRegistry
from gradelink.services.exceptions import ConstraintViolation, OperationTimeout, PartialCommit, ServiceException

logger = logging.getLogger(__name__)

T = TypeVar("T")
C = TypeVar("C")

TenantOp = Callable[[AsyncConnection], Awaitable[T]]
CentralOp = Callable[[AsyncSession, Any], Awaitable[C]]


class LinkedWriteState(str, enum.Enum):
    IDLE = "idle"
    TENANT_TX_OPEN = "tenant_tx_open"
    CENTRAL_TX_OPEN = "central_tx_open"
    BOTH_COMMITTED = "both_committed"
    ROLLED_BACK = "rolled_back"
    PARTIAL_COMMIT = "partial_commit"


@dataclass
class LinkedWriteResult(Generic[T, C]):
    state: LinkedWriteState
    tenant_result: Optional[T] = None
    central_result: Optional[C] = None


class LinkedWriteCoordinator:
    def __init__(
        self,
        tenants: TenantPoolRegistry,
        session_factory: Callable[[], AsyncSession],
        op_timeout: float = 15.0,
    ):
        self.tenants = tenants
        self.session_factory = session_factory
        self.op_timeout = op_timeout

    async def _bounded(self, awaitable: Awaitable[T], operation: str, side: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.op_timeout)
        except asyncio.TimeoutError as e:
            raise OperationTimeout(
                f"The {side} step of '{operation}' exceeded {self.op_timeout}s and was rolled back."
            ) from e

    async def run_linked(
        self,
        identifier: str,
        tenant_op: TenantOp,
        central_op: CentralOp,
        operation: str = "linked_write",
    ) -> LinkedWriteResult:
        """
        Runs `tenant_op` on the tenant connection and `central_op` on a new
        central session, committing both or neither (barring a failure of the
        central commit itself, see module docstring).

        `central_op` receives the tenant result so it can copy generated
        values into the login row.
        """
        identifier = validate_identifier(identifier)
        state = LinkedWriteState.IDLE

        async with self.tenants.connect(identifier) as conn:
            tenant_tx = await conn.begin()
            state = LinkedWriteState.TENANT_TX_OPEN
            session: Optional[AsyncSession] = None
            try:
                tenant_result = await self._bounded(tenant_op(conn), operation, "tenant")

                session = self.session_factory()
                state = LinkedWriteState.CENTRAL_TX_OPEN
                central_result = await self._bounded(central_op(session, tenant_result), operation, "central")
                await self._bounded(session.flush(), operation, "central")

                await tenant_tx.commit()
            except BaseException as e:
                # 按打开顺序的逆序回滚：先中心库，再租户库
                compensation_errors = []
                if session is not None:
                    compensation_errors += await self._safe_rollback_session(session, operation)
                    await session.close()
                if tenant_tx.is_active:
                    compensation_errors += await self._safe_rollback_tenant(tenant_tx, operation, identifier)
                state = LinkedWriteState.ROLLED_BACK

                error = e
                if isinstance(e, IntegrityError):
                    error = ConstraintViolation(f"'{operation}' conflicts with an existing record.")
                if compensation_errors:
                    logger.error(
                        "Linked write %s on %s %s with failed compensation %s: %r",
                        operation, identifier, state.value, compensation_errors, e,
                    )
                    if isinstance(error, ServiceException):
                        error.compensation_errors.extend(compensation_errors)
                else:
                    logger.info("Linked write %s on %s %s: %r", operation, identifier, state.value, e)
                if error is e:
                    raise
                raise error from e

            try:
                await session.commit()
            except Exception as e:
                compensation_errors = await self._safe_rollback_session(session, operation)
                state = LinkedWriteState.PARTIAL_COMMIT
                logger.critical(
                    "PARTIAL COMMIT: operation=%s tenant=%s state=%s committed_side=tenant error=%r",
                    operation, identifier, state.value, e,
                )
                partial = PartialCommit(
                    f"'{operation}' was saved for the school but its login record was not; "
                    "it needs to be reconciled.",
                    identifier=identifier,
                    operation=operation,
                    committed_side="tenant",
                )
                partial.compensation_errors.extend(compensation_errors)
                raise partial from e
            finally:
                await session.close()

        state = LinkedWriteState.BOTH_COMMITTED
        return LinkedWriteResult(state=state, tenant_result=tenant_result, central_result=central_result)

    @staticmethod
    async def _safe_rollback_session(session: AsyncSession, operation: str) -> List[str]:
        try:
            await session.rollback()
        except Exception as e:
            logger.exception("Central rollback failed during '%s'", operation)
            return [f"central rollback failed: {e!r}"]
        return []

    @staticmethod
    async def _safe_rollback_tenant(tx: AsyncTransaction, operation: str, identifier: str) -> List[str]:
        # 回滚失败时连接随后被关闭并丢弃，未提交的租户数据不会落盘
        try:
            await tx.rollback()
        except Exception as e:
            logger.exception("Tenant rollback failed during '%s' on %s", operation, identifier)
            return [f"tenant rollback failed: {e!r}"]
        return []
