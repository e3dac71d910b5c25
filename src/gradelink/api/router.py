# gradelink/api/router.py

from fastapi import APIRouter
from gradelink.api.v1 import school
from gradelink.api.v1 import student
from gradelink.api.v1 import teacher
from gradelink.api.v1 import subject
from gradelink.api.v1 import exam
from gradelink.api.v1 import login

# The main router for API v1
router = APIRouter(prefix="/api/v1")

# ===================================================================
# Directory & Authentication Routes
# ===================================================================

router.include_router(school.router, prefix="/schools", tags=["Directory - Schools"])
router.include_router(login.router, prefix="/login", tags=["Authentication"])

# ===================================================================
# Tenant Routes (school selected by the X-School-Name header)
# ===================================================================

router.include_router(student.router, prefix="/students", tags=["School - Students"])
router.include_router(teacher.router, prefix="/teachers", tags=["School - Teachers"])
router.include_router(subject.router, prefix="/subjects", tags=["School - Subjects"])
router.include_router(exam.router, prefix="/exams", tags=["School - Exams"])
