# gradelink/schemas/directory/school_schemas.py

from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator
from typing import Optional, List, Dict

# ==============================================================================
# 1. Input Schemas
# ==============================================================================

class AdminCreate(BaseModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    email: EmailStr = Field(..., description="管理员登录邮箱")
    phone: Optional[str] = Field(None, max_length=32)
    password: str = Field(..., min_length=6, description="管理员初始密码，仅保存其哈希")

    @field_validator('email')
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.strip().lower()


class SchoolCreate(BaseModel):
    """学校注册：学校资料 + 第一个管理员。"""
    name: str = Field(..., min_length=1, max_length=255, description="学校展示名称，用于派生租户标识符")
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=32)
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    logo: Optional[str] = Field(None, max_length=512, description="Logo path relative to UPLOAD_DIR")
    admin: AdminCreate

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('School name must not be blank.')
        return v

# ==============================================================================
# 2. Output Schemas
# ==============================================================================

class AdminRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    school_id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    created_at: Optional[datetime] = None


class SchoolRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    identifier: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    logo: Optional[str] = None
    created_at: Optional[datetime] = None


class SchoolWithAdminsRead(SchoolRead):
    admins: List[AdminRead] = []


class RegistrationResult(BaseModel):
    school: SchoolRead
    admin: AdminRead


class DashboardStats(BaseModel):
    schools: int = 0
    admins: int = 0
    students: int = 0
    teachers: int = 0
    # identifier -> 登录索引行数
    students_per_school: Dict[str, int] = {}
    teachers_per_school: Dict[str, int] = {}
