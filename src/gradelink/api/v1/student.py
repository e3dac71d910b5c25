# gradelink/api/v1/student.py

from fastapi import APIRouter, status
from gradelink.core.context import AppContext
from gradelink.api.dependencies.context import TenantContextDep
from gradelink.schemas.common import JsonResponse
from gradelink.schemas.tenant.student_schemas import StudentCreate, StudentCreated, StudentListing
from gradelink.services.tenant.student_service import StudentService

router = APIRouter()


@router.post(
    "",
    response_model=JsonResponse[StudentCreated],
    status_code=status.HTTP_201_CREATED,
    summary="Add Student",
    description="Create the student in the school's database and its login record. "
                "The generated password is only returned here."
)
async def add_student(student_in: StudentCreate, context: AppContext = TenantContextDep):
    created = await StudentService(context).add_student(student_in)
    return JsonResponse(data=created, status=status.HTTP_201_CREATED)


@router.get("", response_model=JsonResponse[StudentListing], summary="List Students By Section")
async def list_students(context: AppContext = TenantContextDep):
    return JsonResponse(data=await StudentService(context).list_students())
