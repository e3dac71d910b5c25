# gradelink/db/tenant_schema.py

"""
The fixed table set every tenant database/schema carries.

Tables are declared without a schema; the schema strategy routes them with
`schema_translate_map`, the database strategy simply points the engine at
the tenant's own database. Downstream handlers depend on these exact names
and columns, so changes here need a migration for already provisioned tenants.
"""

from typing import Dict, Iterable, List, Optional, Set
from sqlalchemy import (
    Table, Column, MetaData, Integer, String, Text, Float, DateTime,
    ForeignKey, UniqueConstraint, func, inspect
)
from sqlalchemy.ext.asyncio import AsyncConnection
from gradelink.db.base import naming_convention
from gradelink.services.exceptions import TenantSchemaIncomplete

tenant_metadata = MetaData(naming_convention=naming_convention)

# 学段 -> 学号中的段代码
GRADE_BANDS: Dict[str, str] = {
    "primary": "PR",
    "junior": "JS",
    "senior": "SS",
}

def _student_table(band: str) -> Table:
    return Table(
        f"{band}_students", tenant_metadata,
        Column("id", Integer, primary_key=True),
        Column("full_name", String(255), nullable=False),
        Column("admission_number", String(100), nullable=False, unique=True),
        Column("student_code", String(100), nullable=True),
        Column("class_name", String(100), nullable=True),
        Column("section", String(50), nullable=True),
        Column("gender", String(20), nullable=True),
        Column("age", Integer, nullable=True),
        Column("phone", String(32), nullable=True),
        Column("guardian_name", String(255), nullable=True),
        Column("guardian_contact", String(100), nullable=True),
        Column("disability_status", Text, nullable=True),
        Column("photo_url", Text, nullable=True),
        Column("created_at", DateTime, nullable=False, server_default=func.now()),
    )

student_tables: Dict[str, Table] = {band: _student_table(band) for band in GRADE_BANDS}

sessions_table = Table(
    "sessions", tenant_metadata,
    Column("id", Integer, primary_key=True),
    Column("session_name", String(20), nullable=False, unique=True),
)

terms_table = Table(
    "terms", tenant_metadata,
    Column("id", Integer, primary_key=True),
    Column("term_name", String(20), nullable=False, unique=True),
)

# One logical exam entity keyed by class instead of a physical table per class.
exam_results_table = Table(
    "exam_results", tenant_metadata,
    Column("id", Integer, primary_key=True),
    Column("student_name", String(255), nullable=False),
    Column("admission_number", String(100), nullable=False),
    Column("class_name", String(100), nullable=False, index=True),
    Column("subject", String(100), nullable=False),
    Column("exam_mark", Integer, nullable=True),
    Column("ca", Integer, nullable=True),
    Column("total", Integer, nullable=True),
    Column("grade", String(2), nullable=True),
    Column("remark", Text, nullable=True),
    Column("average", Float, nullable=True),
    Column("position", Integer, nullable=True),
    Column("session_id", Integer, ForeignKey("sessions.id"), nullable=True),
    Column("term_id", Integer, ForeignKey("terms.id"), nullable=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("admission_number", "class_name", "subject", "session_id", "term_id",
                     name="uq_exam_results_entry"),
)

teachers_table = Table(
    "teachers", tenant_metadata,
    Column("id", Integer, primary_key=True),
    Column("teacher_code", String(100), nullable=False, unique=True),
    Column("teacher_name", String(255), nullable=False),
    Column("email", String(255), nullable=True),
    Column("phone", String(32), nullable=True),
    Column("gender", String(20), nullable=True),
    Column("department", String(100), nullable=True),
    Column("photo_url", Text, nullable=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

subjects_table = Table(
    "subjects", tenant_metadata,
    Column("id", Integer, primary_key=True),
    Column("subject_name", String(255), nullable=False),
    Column("description", Text, nullable=True),
    Column("class_name", String(100), nullable=True),
    Column("subject_code", String(100), nullable=False, unique=True),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

teacher_subjects_table = Table(
    "teacher_subjects", tenant_metadata,
    Column("id", Integer, primary_key=True),
    Column("teacher_code", String(100), ForeignKey("teachers.teacher_code", ondelete="CASCADE"), nullable=False),
    Column("subject_id", Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False),
    Column("class_name", String(100), nullable=True),
    UniqueConstraint("teacher_code", "subject_id", name="uq_teacher_subjects_pair"),
)

teacher_classes_table = Table(
    "teacher_classes", tenant_metadata,
    Column("id", Integer, primary_key=True),
    Column("teacher_code", String(100), ForeignKey("teachers.teacher_code", ondelete="CASCADE"), nullable=False),
    Column("class_name", String(50), nullable=False),
    Column("section", String(50), nullable=True),
    Column("assigned_at", DateTime, nullable=False, server_default=func.now()),
    UniqueConstraint("class_name", "section", name="uq_teacher_classes_class_section"),
)

TENANT_TABLE_NAMES: List[str] = [t.name for t in tenant_metadata.sorted_tables]


def student_table_for(section: str) -> Optional[Table]:
    return student_tables.get((section or "").strip().lower())


async def existing_tables(conn: AsyncConnection, schema: Optional[str] = None) -> Set[str]:
    """Names of the tables physically present in the tenant."""
    def inspect_sync(sync_conn):
        return set(inspect(sync_conn).get_table_names(schema=schema))
    return await conn.run_sync(inspect_sync)


async def ensure_tables(conn: AsyncConnection, tables: Iterable[Table], schema: Optional[str] = None) -> None:
    """Write-side check: raises TenantSchemaIncomplete instead of letting the statement fail obscurely."""
    present = await existing_tables(conn, schema)
    missing = [t.name for t in tables if t.name not in present]
    if missing:
        raise TenantSchemaIncomplete(f"Tenant is missing required table(s): {', '.join(missing)}.")
