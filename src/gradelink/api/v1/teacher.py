# gradelink/api/v1/teacher.py

from fastapi import APIRouter, status
from gradelink.core.context import AppContext
from gradelink.api.dependencies.context import TenantContextDep
from gradelink.schemas.common import JsonResponse
from gradelink.schemas.tenant.teacher_schemas import TeacherCreate, TeacherCreated, TeacherProfile
from gradelink.services.tenant.teacher_service import TeacherService

router = APIRouter()


@router.post(
    "",
    response_model=JsonResponse[TeacherCreated],
    status_code=status.HTTP_201_CREATED,
    summary="Add Teacher"
)
async def add_teacher(teacher_in: TeacherCreate, context: AppContext = TenantContextDep):
    created = await TeacherService(context).add_teacher(teacher_in)
    return JsonResponse(data=created, status=status.HTTP_201_CREATED)


# teacher codes contain slashes (GVS/MAT/2025/001)
@router.get("/{teacher_code:path}", response_model=JsonResponse[TeacherProfile], summary="Get Teacher")
async def get_teacher(teacher_code: str, context: AppContext = TenantContextDep):
    return JsonResponse(data=await TeacherService(context).get_teacher(teacher_code))
