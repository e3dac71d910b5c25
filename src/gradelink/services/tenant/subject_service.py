# gradelink/services/tenant/subject_service.py

import re
import logging
from typing import List, Optional
from sqlalchemy import select, insert
from sqlalchemy.exc import IntegrityError
from gradelink.db.tenant_schema import subjects_table, teachers_table, teacher_subjects_table, teacher_classes_table
from gradelink.schemas.tenant.subject_schemas import (
    SubjectCreate, SubjectRead, SubjectAssign, ClassAssign, AssignmentRead
)
from gradelink.services.exceptions import ConstraintViolation, NotFoundError
from gradelink.services.tenant.base import TenantBoundService

logger = logging.getLogger(__name__)

_CODE_UNSAFE = re.compile(r"[^A-Z0-9]+")

def default_subject_code(subject_name: str, class_name: Optional[str]) -> str:
    """Basic Science + JSS 1 -> BASICSCIENCE-JSS1"""
    code = _CODE_UNSAFE.sub("", subject_name.upper())
    if class_name:
        code = f"{code}-{_CODE_UNSAFE.sub('', class_name.upper())}"
    return code


class SubjectService(TenantBoundService):

    async def add_subject(self, subject_in: SubjectCreate) -> SubjectRead:
        school = await self._school()
        values = subject_in.model_dump(exclude_none=True)
        values["subject_name"] = subject_in.subject_name.strip()
        values["subject_code"] = (subject_in.subject_code or "").strip() or default_subject_code(
            subject_in.subject_name, subject_in.class_name
        )
        try:
            async with self.tenants.begin(school.identifier) as conn:
                await self._writable(conn, school.identifier, [subjects_table])
                result = await conn.execute(insert(subjects_table).values(**values).returning(*subjects_table.c))
                row = dict(result.mappings().one())
        except IntegrityError as e:
            raise ConstraintViolation(f"Subject code '{values['subject_code']}' already exists.") from e
        return SubjectRead.model_validate(row)

    async def list_subjects(self) -> List[SubjectRead]:
        school = await self._school()
        async with self.tenants.connect(school.identifier) as conn:
            if not await self._readable(conn, school.identifier, [subjects_table]):
                return []
            rows = (await conn.execute(
                select(subjects_table).order_by(subjects_table.c.subject_name)
            )).mappings().all()
        return [SubjectRead.model_validate(dict(row)) for row in rows]

    async def assign_subject(self, assign_in: SubjectAssign) -> AssignmentRead:
        """Links a teacher to a subject. Assigning the same pair twice returns the existing link."""
        school = await self._school()
        tables = [teachers_table, subjects_table, teacher_subjects_table]
        async with self.tenants.begin(school.identifier) as conn:
            await self._writable(conn, school.identifier, tables)
            await self._require_teacher(conn, assign_in.teacher_code)
            subject = (await conn.execute(
                select(subjects_table.c.id, subjects_table.c.class_name).where(subjects_table.c.id == assign_in.subject_id)
            )).first()
            if subject is None:
                raise NotFoundError(f"Subject {assign_in.subject_id} not found.")

            existing = (await conn.execute(
                select(teacher_subjects_table).where(
                    teacher_subjects_table.c.teacher_code == assign_in.teacher_code,
                    teacher_subjects_table.c.subject_id == assign_in.subject_id,
                )
            )).mappings().first()
            if existing is not None:
                return AssignmentRead.model_validate(dict(existing))

            result = await conn.execute(
                insert(teacher_subjects_table).values(
                    teacher_code=assign_in.teacher_code,
                    subject_id=assign_in.subject_id,
                    class_name=assign_in.class_name or subject.class_name,
                ).returning(*teacher_subjects_table.c)
            )
            return AssignmentRead.model_validate(dict(result.mappings().one()))

    async def assign_class(self, assign_in: ClassAssign) -> AssignmentRead:
        """A class section has a single class teacher."""
        school = await self._school()
        async with self.tenants.begin(school.identifier) as conn:
            await self._writable(conn, school.identifier, [teachers_table, teacher_classes_table])
            await self._require_teacher(conn, assign_in.teacher_code)

            section_match = (
                teacher_classes_table.c.section.is_(None) if assign_in.section is None
                else teacher_classes_table.c.section == assign_in.section
            )
            existing = (await conn.execute(
                select(teacher_classes_table).where(
                    teacher_classes_table.c.class_name == assign_in.class_name, section_match
                )
            )).mappings().first()
            if existing is not None:
                if existing["teacher_code"] != assign_in.teacher_code:
                    raise ConstraintViolation(
                        f"Class '{assign_in.class_name}' is already assigned to {existing['teacher_code']}."
                    )
                return AssignmentRead.model_validate(dict(existing))

            result = await conn.execute(
                insert(teacher_classes_table).values(**assign_in.model_dump()).returning(*teacher_classes_table.c)
            )
            return AssignmentRead.model_validate(dict(result.mappings().one()))

    @staticmethod
    async def _require_teacher(conn, teacher_code: str) -> None:
        found = (await conn.execute(
            select(teachers_table.c.id).where(teachers_table.c.teacher_code == teacher_code)
        )).first()
        if found is None:
            raise NotFoundError(f"Teacher '{teacher_code}' not found.")
