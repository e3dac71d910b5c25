# gradelink/schemas/tenant/subject_schemas.py

from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional

class SubjectCreate(BaseModel):
    subject_name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    class_name: Optional[str] = Field(None, max_length=100)
    subject_code: Optional[str] = Field(None, max_length=100, description="留空时由名称和班级生成")


class SubjectRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    subject_name: str
    description: Optional[str] = None
    class_name: Optional[str] = None
    subject_code: str
    created_at: Optional[datetime] = None


class SubjectAssign(BaseModel):
    teacher_code: str = Field(..., min_length=1)
    subject_id: int
    class_name: Optional[str] = None


class ClassAssign(BaseModel):
    teacher_code: str = Field(..., min_length=1)
    class_name: str = Field(..., min_length=1, max_length=50)
    section: Optional[str] = Field(None, max_length=50)


class AssignmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    teacher_code: str
    class_name: Optional[str] = None
    subject_id: Optional[int] = None
    section: Optional[str] = None
