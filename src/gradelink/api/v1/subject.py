# gradelink/api/v1/subject.py

from fastapi import APIRouter, status
from typing import List
from gradelink.core.context import AppContext
from gradelink.api.dependencies.context import TenantContextDep
from gradelink.schemas.common import JsonResponse
from gradelink.schemas.tenant.subject_schemas import (
    SubjectCreate, SubjectRead, SubjectAssign, ClassAssign, AssignmentRead
)
from gradelink.services.tenant.subject_service import SubjectService

router = APIRouter()


@router.post("", response_model=JsonResponse[SubjectRead], status_code=status.HTTP_201_CREATED, summary="Add Subject")
async def add_subject(subject_in: SubjectCreate, context: AppContext = TenantContextDep):
    subject = await SubjectService(context).add_subject(subject_in)
    return JsonResponse(data=subject, status=status.HTTP_201_CREATED)


@router.get("", response_model=JsonResponse[List[SubjectRead]], summary="List Subjects")
async def list_subjects(context: AppContext = TenantContextDep):
    return JsonResponse(data=await SubjectService(context).list_subjects())


@router.post("/assign", response_model=JsonResponse[AssignmentRead], summary="Assign Subject To Teacher")
async def assign_subject(assign_in: SubjectAssign, context: AppContext = TenantContextDep):
    return JsonResponse(data=await SubjectService(context).assign_subject(assign_in))


@router.post("/assign-class", response_model=JsonResponse[AssignmentRead], summary="Assign Class Teacher")
async def assign_class(assign_in: ClassAssign, context: AppContext = TenantContextDep):
    return JsonResponse(data=await SubjectService(context).assign_class(assign_in))
