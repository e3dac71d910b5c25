# gradelink/main.py

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from gradelink.core.config import settings
from gradelink.core.logging import setup_logging
from gradelink.db.session import SessionLocal, engine, init_db
from gradelink.api.router import router
from gradelink.tenancy.backends import build_tenant_backend
from gradelink.tenancy.registry import TenantPoolRegistry
from gradelink.tenancy.coordinator import LinkedWriteCoordinator
from gradelink.services.exceptions import (
    ServiceException,
    NotFoundError,
    InvalidCredentialsError,
    InvalidIdentifier,
    ConstraintViolation,
    DuplicateTenant,
    TenantAlreadyExists,
    TenantProvisioningFailed,
    AdminProvisioningFailed,
    TenantUnavailable,
    OperationTimeout,
    TenantSchemaIncomplete,
    PartialCommit,
)

setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- [关键] 中心目录库与租户连接池注册表的生命周期 ---
    await init_db()
    app.state.session_factory = SessionLocal
    app.state.tenants = TenantPoolRegistry(build_tenant_backend(settings), settings)
    app.state.coordinator = LinkedWriteCoordinator(
        app.state.tenants, SessionLocal, op_timeout=settings.TENANT_QUERY_TIMEOUT
    )
    logger.info("Tenant strategy: %s", settings.TENANT_STRATEGY)

    yield

    # --- 清理 ---
    logger.info("Disposing tenant pools...")
    await app.state.tenants.dispose_all()
    await engine.dispose()

app = FastAPI(
    title="GradeLink",
    lifespan=lifespan
)

#设置允许访问的域名
origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"])

app.include_router(router)

# 服务层异常 -> HTTP 状态码；未列出的 ServiceException 子类按 400 处理
STATUS_BY_EXCEPTION = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidCredentialsError, status.HTTP_401_UNAUTHORIZED),
    (InvalidIdentifier, status.HTTP_400_BAD_REQUEST),
    (DuplicateTenant, status.HTTP_409_CONFLICT),
    (TenantAlreadyExists, status.HTTP_409_CONFLICT),
    (ConstraintViolation, status.HTTP_409_CONFLICT),
    (TenantUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (OperationTimeout, status.HTTP_503_SERVICE_UNAVAILABLE),
    (TenantProvisioningFailed, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (AdminProvisioningFailed, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (TenantSchemaIncomplete, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (PartialCommit, status.HTTP_500_INTERNAL_SERVER_ERROR),
]

def status_for(exc: ServiceException) -> int:
    for exc_type, code in STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_400_BAD_REQUEST

def error_data(exc: ServiceException):
    if isinstance(exc, AdminProvisioningFailed):
        # 学校已可用，客户端可以凭此重试创建管理员
        return {"school_id": exc.school_id, "identifier": exc.identifier}
    if isinstance(exc, TenantProvisioningFailed):
        # 补偿失败时必须明确告知调用方，需要人工清理
        return {
            "phase": exc.phase,
            "retryable": exc.retryable,
            "compensation_failed": exc.compensation_failed,
        }
    if exc.compensation_failed:
        return {"retryable": exc.retryable, "compensation_failed": True}
    if exc.retryable:
        return {"retryable": True}
    return None

@app.exception_handler(ServiceException)
async def service_exception_handler(request: Request, exc: ServiceException):
    code = status_for(exc)
    msg = exc.message
    if code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
        if settings.is_production and not isinstance(exc, AdminProvisioningFailed):
            msg = "The request could not be completed. Please try again later."
    else:
        logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    headers = {"Retry-After": "5"} if exc.retryable else None
    return JSONResponse(
        status_code=code,
        content={"status": code, "msg": msg, "data": error_data(exc)},
        headers=headers,
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # 重写 FastAPI 默认的 HTTPException 处理器，以匹配我们的响应格式
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": exc.status_code, "msg": exc.detail, "data": None},
        headers=exc.headers,
    )

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    # 这个处理器只处理真正未预料到的服务器内部错误
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"status": 500, "msg": "Internal Server Error", "data": None},
    )
