# gradelink/services/tenant/exam_service.py

import logging
from collections import defaultdict
from typing import List, Optional
from sqlalchemy import Table, select, insert, update
from sqlalchemy.ext.asyncio import AsyncConnection
from gradelink.db.tenant_schema import sessions_table, terms_table, exam_results_table
from gradelink.schemas.tenant.exam_schemas import ExamRecord, ExamResultRead
from gradelink.services.tenant.base import TenantBoundService
from gradelink.services.tenant.codes import grade_for, remark_for, competition_rank

logger = logging.getLogger(__name__)

class ExamService(TenantBoundService):
    """
    Exam results live in one table keyed by class. Averages and positions are
    per class, session and term, recomputed after every batch.
    """

    async def record_results(self, record_in: ExamRecord) -> List[ExamResultRead]:
        school = await self._school()
        results = exam_results_table.c
        async with self.tenants.begin(school.identifier) as conn:
            await self._writable(conn, school.identifier, [sessions_table, terms_table, exam_results_table])
            session_id = await _get_or_create(conn, sessions_table, "session_name", record_in.session_name)
            term_id = await _get_or_create(conn, terms_table, "term_name", record_in.term_name)

            for entry in record_in.entries:
                total = entry.exam_mark + entry.ca
                grade = grade_for(total)
                values = dict(
                    student_name=entry.student_name.strip(),
                    exam_mark=entry.exam_mark,
                    ca=entry.ca,
                    total=total,
                    grade=grade,
                    remark=remark_for(grade),
                )
                key = [
                    results.admission_number == entry.admission_number.strip(),
                    results.class_name == record_in.class_name,
                    results.subject == entry.subject,
                    results.session_id == session_id,
                    results.term_id == term_id,
                ]
                # 同一学生同一科目重复录入时覆盖成绩
                existing_id = (await conn.execute(select(results.id).where(*key))).scalar()
                if existing_id is not None:
                    await conn.execute(update(exam_results_table).where(results.id == existing_id).values(**values))
                else:
                    await conn.execute(insert(exam_results_table).values(
                        admission_number=entry.admission_number.strip(),
                        class_name=record_in.class_name,
                        subject=entry.subject,
                        session_id=session_id,
                        term_id=term_id,
                        **values,
                    ))

            await _update_averages_and_positions(conn, record_in.class_name, session_id, term_id)
            rows = await _select_results(conn, record_in.class_name, session_id, term_id)
        logger.info("Recorded %d exam entries for %s in %s", len(record_in.entries), record_in.class_name, school.identifier)
        return rows

    async def list_results(
        self, class_name: str, session_name: Optional[str] = None, term_name: Optional[str] = None
    ) -> List[ExamResultRead]:
        school = await self._school()
        async with self.tenants.connect(school.identifier) as conn:
            readable = await self._readable(conn, school.identifier, [sessions_table, terms_table, exam_results_table])
            if exam_results_table.name not in readable:
                return []
            session_id = term_id = None
            if session_name:
                if sessions_table.name not in readable:
                    return []
                session_id = await _lookup(conn, sessions_table, "session_name", session_name)
                if session_id is None:
                    return []
            if term_name:
                if terms_table.name not in readable:
                    return []
                term_id = await _lookup(conn, terms_table, "term_name", term_name)
                if term_id is None:
                    return []
            return await _select_results(conn, class_name, session_id, term_id)


async def _lookup(conn: AsyncConnection, table: Table, column: str, value: str) -> Optional[int]:
    return (await conn.execute(select(table.c.id).where(table.c[column] == value))).scalar()


async def _get_or_create(conn: AsyncConnection, table: Table, column: str, value: str) -> int:
    value = value.strip()
    found = await _lookup(conn, table, column, value)
    if found is not None:
        return found
    result = await conn.execute(insert(table).values({column: value}).returning(table.c.id))
    return result.scalar_one()


async def _update_averages_and_positions(conn: AsyncConnection, class_name: str, session_id: int, term_id: int) -> None:
    results = exam_results_table.c
    scope = [results.class_name == class_name, results.session_id == session_id, results.term_id == term_id]
    rows = (await conn.execute(select(results.admission_number, results.total).where(*scope))).all()

    totals = defaultdict(list)
    for admission_number, total in rows:
        totals[admission_number].append(total or 0)
    averages = {key: round(sum(values) / len(values), 2) for key, values in totals.items()}
    positions = competition_rank(averages)

    for admission_number, average in averages.items():
        await conn.execute(
            update(exam_results_table)
            .where(*scope, results.admission_number == admission_number)
            .values(average=average, position=positions[admission_number])
        )


async def _select_results(
    conn: AsyncConnection, class_name: str, session_id: Optional[int], term_id: Optional[int]
) -> List[ExamResultRead]:
    results = exam_results_table.c
    stmt = select(exam_results_table).where(results.class_name == class_name)
    if session_id is not None:
        stmt = stmt.where(results.session_id == session_id)
    if term_id is not None:
        stmt = stmt.where(results.term_id == term_id)
    stmt = stmt.order_by(results.position, results.admission_number, results.subject)
    rows = (await conn.execute(stmt)).mappings().all()
    return [ExamResultRead.model_validate(dict(row)) for row in rows]
