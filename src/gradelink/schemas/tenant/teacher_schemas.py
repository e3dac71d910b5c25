# gradelink/schemas/tenant/teacher_schemas.py

from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional, List

class TeacherCreate(BaseModel):
    teacher_name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=32)
    gender: Optional[str] = Field(None, max_length=20)
    department: str = Field(..., min_length=1, max_length=100)
    photo_url: Optional[str] = None


class TeacherRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    teacher_code: str
    teacher_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    gender: Optional[str] = None
    department: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: Optional[datetime] = None


class TeacherProfile(TeacherRead):
    subjects: List[str] = []
    classes: List[str] = []


class TeacherCreated(BaseModel):
    teacher: TeacherRead
    password: str
