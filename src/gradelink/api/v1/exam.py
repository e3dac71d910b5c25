# gradelink/api/v1/exam.py

from fastapi import APIRouter, Query
from typing import List, Optional
from gradelink.core.context import AppContext
from gradelink.api.dependencies.context import TenantContextDep
from gradelink.schemas.common import JsonResponse
from gradelink.schemas.tenant.exam_schemas import ExamRecord, ExamResultRead
from gradelink.services.tenant.exam_service import ExamService

router = APIRouter()


@router.post(
    "",
    response_model=JsonResponse[List[ExamResultRead]],
    summary="Record Exam Results",
    description="Upsert a batch of results for one class, session and term, then recompute averages and positions."
)
async def record_results(record_in: ExamRecord, context: AppContext = TenantContextDep):
    return JsonResponse(data=await ExamService(context).record_results(record_in))


@router.get("", response_model=JsonResponse[List[ExamResultRead]], summary="List Class Results")
async def list_results(
    class_name: str = Query(..., min_length=1),
    session_name: Optional[str] = None,
    term_name: Optional[str] = None,
    context: AppContext = TenantContextDep
):
    results = await ExamService(context).list_results(class_name, session_name, term_name)
    return JsonResponse(data=results)
