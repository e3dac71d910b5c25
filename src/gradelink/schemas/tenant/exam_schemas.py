# gradelink/schemas/tenant/exam_schemas.py

from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List

class ExamEntry(BaseModel):
    student_name: str = Field(..., min_length=1, max_length=255)
    admission_number: str = Field(..., min_length=1, max_length=100)
    subject: str = Field(..., min_length=1, max_length=100)
    exam_mark: int = Field(0, ge=0, le=100)
    ca: int = Field(0, ge=0, le=100)

    @model_validator(mode='after')
    def check_total(self) -> 'ExamEntry':
        if self.exam_mark + self.ca > 100:
            raise ValueError('exam_mark + ca must not exceed 100.')
        return self


class ExamRecord(BaseModel):
    """一个班级、一个学年、一个学期的一批成绩。"""
    class_name: str = Field(..., min_length=1, max_length=100)
    session_name: str = Field(..., min_length=1, max_length=20, examples=["2024/2025"])
    term_name: str = Field(..., min_length=1, max_length=20, examples=["First Term"])
    entries: List[ExamEntry] = Field(..., min_length=1)


class ExamResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_name: str
    admission_number: str
    class_name: str
    subject: str
    exam_mark: Optional[int] = None
    ca: Optional[int] = None
    total: Optional[int] = None
    grade: Optional[str] = None
    remark: Optional[str] = None
    average: Optional[float] = None
    position: Optional[int] = None
    session_id: Optional[int] = None
    term_id: Optional[int] = None
