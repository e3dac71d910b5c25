# tests/services/test_tenant_services.py

import pytest
from datetime import datetime
from sqlalchemy import select, func, text

from gradelink.db.tenant_schema import student_tables
from gradelink.models.directory import StudentLogin, TeacherLogin
from gradelink.schemas.tenant.exam_schemas import ExamRecord
from gradelink.schemas.tenant.student_schemas import StudentCreate
from gradelink.schemas.tenant.subject_schemas import SubjectCreate, SubjectAssign, ClassAssign
from gradelink.schemas.tenant.teacher_schemas import TeacherCreate
from gradelink.services.tenant.exam_service import ExamService
from gradelink.services.tenant.student_service import StudentService
from gradelink.services.tenant.subject_service import SubjectService
from gradelink.services.tenant.teacher_service import TeacherService
from gradelink.services.exceptions import (
    ConstraintViolation,
    InvalidIdentifier,
    NotFoundError,
    TenantSchemaIncomplete,
)

SCHOOL = "Green Valley School"
YEAR = datetime.now().year

@pytest.fixture
def school_context(registered_school, make_context):
    return make_context(SCHOOL)

# ==============================================================================
# 1. 学校解析
# ==============================================================================

async def test_school_is_resolved_from_display_name_or_identifier(registered_school, make_context):
    for name in ["green valley school", "  Green Valley School ", "tenant_green_valley_school"]:
        listing = await StudentService(make_context(name)).list_students()
        assert listing.primary == []


async def test_missing_or_unknown_school(registered_school, make_context):
    with pytest.raises(InvalidIdentifier):
        await StudentService(make_context(None)).list_students()
    with pytest.raises(NotFoundError):
        await StudentService(make_context("Unknown Academy")).list_students()

# ==============================================================================
# 2. 学生
# ==============================================================================

async def test_add_student_writes_both_sides(school_context, session_factory, tenants):
    created = await StudentService(school_context).add_student(
        StudentCreate(full_name="Ada Obi Eze", section="primary", class_name="Primary 1")
    )

    assert created.student.admission_number == f"GVS/PR/{YEAR}/001"
    assert created.student.student_code == f"aoe{str(YEAR)[-2:]}.gvs@edu.ng"
    assert len(created.password) >= 8

    async with session_factory() as session:
        login = (await session.execute(select(StudentLogin))).scalars().one()
    assert login.tenant_identifier == "tenant_green_valley_school"
    assert login.school_name == SCHOOL
    assert login.password_hash != created.password

    second = await StudentService(school_context).add_student(StudentCreate(full_name="Bayo Ade", section="primary"))
    assert second.student.admission_number == f"GVS/PR/{YEAR}/002"

    junior = await StudentService(school_context).add_student(StudentCreate(full_name="Chi Nwosu", section="junior"))
    assert junior.student.admission_number == f"GVS/JS/{YEAR}/001"

    listing = await StudentService(school_context).list_students()
    assert [s.full_name for s in listing.primary] == ["Ada Obi Eze", "Bayo Ade"]
    assert [s.full_name for s in listing.junior] == ["Chi Nwosu"]
    assert listing.senior == []


async def test_missing_band_table_reads_empty_and_rejects_writes(school_context, tenants, session_factory):
    async with tenants.begin("tenant_green_valley_school") as conn:
        await conn.execute(text("DROP TABLE senior_students"))

    listing = await StudentService(school_context).list_students()
    assert listing.senior == []

    with pytest.raises(TenantSchemaIncomplete) as exc_info:
        await StudentService(school_context).add_student(StudentCreate(full_name="Dayo Ojo", section="senior"))
    assert "senior_students" in exc_info.value.message

    async with session_factory() as session:
        assert (await session.execute(select(func.count()).select_from(StudentLogin))).scalar() == 0


async def test_login_conflict_leaves_no_orphan_student(school_context, tenants, session_factory):
    async with session_factory() as session:
        session.add(StudentLogin(
            admission_number=f"GVS/PR/{YEAR}/001",
            student_code="x",
            password_hash="hash",
            tenant_identifier="tenant_green_valley_school",
            school_name=SCHOOL,
        ))
        await session.commit()

    with pytest.raises(ConstraintViolation):
        await StudentService(school_context).add_student(StudentCreate(full_name="Ada Obi", section="primary"))

    async with tenants.connect("tenant_green_valley_school") as conn:
        count = (await conn.execute(select(func.count()).select_from(student_tables["primary"]))).scalar()
    assert count == 0

# ==============================================================================
# 3. 教师与科目
# ==============================================================================

async def test_teacher_codes_are_numbered_per_department(school_context, session_factory):
    service = TeacherService(school_context)
    first = await service.add_teacher(TeacherCreate(teacher_name="Bola Ade", department="Mathematics"))
    other = await service.add_teacher(TeacherCreate(teacher_name="Kemi Ola", department="English"))
    second = await service.add_teacher(TeacherCreate(teacher_name="Musa Bello", department="Mathematics"))

    assert first.teacher.teacher_code == f"GVS/MAT/{YEAR}/001"
    assert other.teacher.teacher_code == f"GVS/ENG/{YEAR}/001"
    assert second.teacher.teacher_code == f"GVS/MAT/{YEAR}/002"

    async with session_factory() as session:
        codes = (await session.execute(select(TeacherLogin.teacher_code))).scalars().all()
    assert sorted(codes) == sorted([first.teacher.teacher_code, other.teacher.teacher_code, second.teacher.teacher_code])


async def test_subjects_and_assignments(school_context):
    teacher = (await TeacherService(school_context).add_teacher(
        TeacherCreate(teacher_name="Bola Ade", department="Mathematics")
    )).teacher
    other = (await TeacherService(school_context).add_teacher(
        TeacherCreate(teacher_name="Kemi Ola", department="English")
    )).teacher

    subjects = SubjectService(school_context)
    maths = await subjects.add_subject(SubjectCreate(subject_name="Mathematics", class_name="JSS 1"))
    assert maths.subject_code == "MATHEMATICS-JSS1"
    with pytest.raises(ConstraintViolation):
        await subjects.add_subject(SubjectCreate(subject_name="Mathematics", class_name="JSS 1"))

    link = await subjects.assign_subject(SubjectAssign(teacher_code=teacher.teacher_code, subject_id=maths.id))
    again = await subjects.assign_subject(SubjectAssign(teacher_code=teacher.teacher_code, subject_id=maths.id))
    assert again.id == link.id
    assert link.class_name == "JSS 1"

    await subjects.assign_class(ClassAssign(teacher_code=teacher.teacher_code, class_name="JSS 1", section="A"))
    with pytest.raises(ConstraintViolation):
        await subjects.assign_class(ClassAssign(teacher_code=other.teacher_code, class_name="JSS 1", section="A"))
    with pytest.raises(NotFoundError):
        await subjects.assign_class(ClassAssign(teacher_code="GVS/XXX/2000/001", class_name="JSS 2"))

    profile = await TeacherService(school_context).get_teacher(teacher.teacher_code)
    assert profile.subjects == ["Mathematics"]
    assert profile.classes == ["JSS 1 A"]

    with pytest.raises(NotFoundError):
        await TeacherService(school_context).get_teacher("GVS/MAT/1999/999")

# ==============================================================================
# 4. 成绩
# ==============================================================================

def _record(entries):
    return ExamRecord(class_name="JSS 1", session_name="2024/2025", term_name="First Term", entries=entries)


async def test_exam_grades_averages_and_shared_positions(school_context):
    service = ExamService(school_context)
    rows = await service.record_results(_record([
        {"student_name": "Ada", "admission_number": "GVS/JS/2025/001", "subject": "Maths", "exam_mark": 70, "ca": 20},
        {"student_name": "Ada", "admission_number": "GVS/JS/2025/001", "subject": "English", "exam_mark": 30, "ca": 20},
        {"student_name": "Bayo", "admission_number": "GVS/JS/2025/002", "subject": "Maths", "exam_mark": 60, "ca": 10},
        {"student_name": "Bayo", "admission_number": "GVS/JS/2025/002", "subject": "English", "exam_mark": 60, "ca": 10},
        {"student_name": "Chi", "admission_number": "GVS/JS/2025/003", "subject": "Maths", "exam_mark": 30, "ca": 5},
    ]))

    by_key = {(r.admission_number, r.subject): r for r in rows}
    assert by_key[("GVS/JS/2025/001", "Maths")].grade == "A"
    assert by_key[("GVS/JS/2025/001", "English")].remark == "Good"
    assert by_key[("GVS/JS/2025/003", "Maths")].grade == "F"

    positions = {r.admission_number: (r.average, r.position) for r in rows}
    assert positions["GVS/JS/2025/001"] == (70.0, 1)
    assert positions["GVS/JS/2025/002"] == (70.0, 1)
    assert positions["GVS/JS/2025/003"] == (35.0, 3)


async def test_exam_resubmission_overwrites_and_reranks(school_context):
    service = ExamService(school_context)
    await service.record_results(_record([
        {"student_name": "Ada", "admission_number": "GVS/JS/2025/001", "subject": "Maths", "exam_mark": 40, "ca": 10},
        {"student_name": "Bayo", "admission_number": "GVS/JS/2025/002", "subject": "Maths", "exam_mark": 50, "ca": 10},
    ]))
    rows = await service.record_results(_record([
        {"student_name": "Ada", "admission_number": "GVS/JS/2025/001", "subject": "Maths", "exam_mark": 60, "ca": 30},
    ]))

    assert len(rows) == 2
    ada = next(r for r in rows if r.admission_number == "GVS/JS/2025/001")
    assert (ada.total, ada.grade, ada.position) == (90, "A", 1)

    listed = await service.list_results("JSS 1", "2024/2025", "First Term")
    assert [r.admission_number for r in listed] == ["GVS/JS/2025/001", "GVS/JS/2025/002"]
    assert await service.list_results("JSS 1", "2030/2031") == []
    assert await service.list_results("JSS 3") == []
