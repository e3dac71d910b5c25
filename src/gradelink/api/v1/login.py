# gradelink/api/v1/login.py

from fastapi import APIRouter, HTTPException, status
from gradelink.core.context import AppContext
from gradelink.api.dependencies.context import BaseContextDep
from gradelink.schemas.common import JsonResponse
from gradelink.schemas.identity.login_schemas import (
    AdminLoginRequest, StudentLoginRequest, TeacherLoginRequest, LoginResult
)
from gradelink.services.identity.login_service import LoginService
from gradelink.services.exceptions import InvalidCredentialsError

router = APIRouter()


def _unauthorized(e: InvalidCredentialsError) -> HTTPException:
    # For security reasons, always return a generic 401 for any authentication failure.
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=e.message,
        headers={"WWW-Authenticate": "Bearer"},
    )


@router.post("/admin", response_model=JsonResponse[LoginResult], summary="Admin Login")
async def login_admin(login_in: AdminLoginRequest, context: AppContext = BaseContextDep):
    try:
        return JsonResponse(data=await LoginService(context).login_admin(login_in))
    except InvalidCredentialsError as e:
        raise _unauthorized(e)


@router.post("/student", response_model=JsonResponse[LoginResult], summary="Student Login")
async def login_student(login_in: StudentLoginRequest, context: AppContext = BaseContextDep):
    try:
        return JsonResponse(data=await LoginService(context).login_student(login_in))
    except InvalidCredentialsError as e:
        raise _unauthorized(e)


@router.post("/teacher", response_model=JsonResponse[LoginResult], summary="Teacher Login")
async def login_teacher(login_in: TeacherLoginRequest, context: AppContext = BaseContextDep):
    try:
        return JsonResponse(data=await LoginService(context).login_teacher(login_in))
    except InvalidCredentialsError as e:
        raise _unauthorized(e)
