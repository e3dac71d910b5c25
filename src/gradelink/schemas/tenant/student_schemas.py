# gradelink/schemas/tenant/student_schemas.py

from datetime import datetime
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Literal

GradeBand = Literal["primary", "junior", "senior"]

class StudentCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    section: GradeBand = Field(..., description="学段，决定写入哪张学生表以及学号中的段代码")
    class_name: Optional[str] = Field(None, max_length=100)
    gender: Optional[str] = Field(None, max_length=20)
    age: Optional[int] = Field(None, ge=0, le=150)
    phone: Optional[str] = Field(None, max_length=32)
    guardian_name: Optional[str] = Field(None, max_length=255)
    guardian_contact: Optional[str] = Field(None, max_length=100)
    disability_status: Optional[str] = None
    photo_url: Optional[str] = None


class StudentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    admission_number: str
    student_code: Optional[str] = None
    class_name: Optional[str] = None
    section: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[int] = None
    phone: Optional[str] = None
    guardian_name: Optional[str] = None
    guardian_contact: Optional[str] = None
    disability_status: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: Optional[datetime] = None


class StudentCreated(BaseModel):
    student: StudentRead
    # 只在创建时返回一次，数据库中只保存哈希
    password: str


class StudentListing(BaseModel):
    primary: List[StudentRead] = []
    junior: List[StudentRead] = []
    senior: List[StudentRead] = []
