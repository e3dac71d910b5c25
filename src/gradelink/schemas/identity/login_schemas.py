# gradelink/schemas/identity/login_schemas.py

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, Literal

class AdminLoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class StudentLoginRequest(BaseModel):
    admission_number: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    # 不同学校的学号可能相同，提供学校名称时只在该学校内查找
    school_name: Optional[str] = None


class TeacherLoginRequest(BaseModel):
    teacher_code: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    school_name: Optional[str] = None


class LoginResult(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: Literal["admin", "student", "teacher"]
    school_name: str
    identifier: str
    logo: Optional[str] = None
    profile: Dict[str, Any] = {}
