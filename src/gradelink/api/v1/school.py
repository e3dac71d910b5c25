# gradelink/api/v1/school.py

from fastapi import APIRouter, Query, status
from typing import List
from gradelink.core.context import AppContext
from gradelink.api.dependencies.context import BaseContextDep
from gradelink.schemas.common import JsonResponse
from gradelink.schemas.directory.school_schemas import (
    SchoolCreate, SchoolRead, SchoolWithAdminsRead, RegistrationResult, DashboardStats
)
from gradelink.services.directory.school_service import SchoolService
from gradelink.services.provisioning.registration_service import RegistrationService
from gradelink.services.exceptions import NotFoundError

router = APIRouter()


@router.post(
    "",
    response_model=JsonResponse[RegistrationResult],
    status_code=status.HTTP_201_CREATED,
    summary="Register School",
    description="Create the school's directory entry, its own database with the full table set, and its first admin."
)
async def register_school(
    school_in: SchoolCreate,
    context: AppContext = BaseContextDep
):
    result = await RegistrationService(context).register_school(school_in)
    return JsonResponse(data=result, status=status.HTTP_201_CREATED)


@router.get("", response_model=JsonResponse[List[SchoolWithAdminsRead]], summary="List Schools")
async def list_schools(
    with_admins: bool = False,
    context: AppContext = BaseContextDep
):
    schools = await SchoolService(context.db).list_schools(with_admins=with_admins)
    if with_admins:
        data = [SchoolWithAdminsRead.model_validate(s) for s in schools]
    else:
        data = [SchoolWithAdminsRead.model_validate(SchoolRead.model_validate(s).model_dump()) for s in schools]
    return JsonResponse(data=data)


@router.get("/stats", response_model=JsonResponse[DashboardStats], summary="Dashboard Counts")
async def dashboard_stats(context: AppContext = BaseContextDep):
    return JsonResponse(data=await SchoolService(context.db).get_dashboard_stats())


@router.get("/lookup", response_model=JsonResponse[SchoolRead], summary="Find School By Name")
async def lookup_school(
    name: str = Query(..., min_length=1),
    context: AppContext = BaseContextDep
):
    school = await SchoolService(context.db).require_school(name)
    return JsonResponse(data=SchoolRead.model_validate(school))


@router.get("/{school_id}", response_model=JsonResponse[SchoolRead], summary="Get School")
async def get_school(school_id: int, context: AppContext = BaseContextDep):
    school = await SchoolService(context.db).find_school_by_id(school_id)
    if not school:
        raise NotFoundError(f"School {school_id} not found.")
    return JsonResponse(data=SchoolRead.model_validate(school))


@router.delete(
    "/{school_id}",
    response_model=JsonResponse[SchoolRead],
    summary="Delete School",
    description="Remove the school's directory rows, then drop its database and logo."
)
async def delete_school(school_id: int, context: AppContext = BaseContextDep):
    school = await RegistrationService(context).delete_school(school_id)
    return JsonResponse(data=school)
