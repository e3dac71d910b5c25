# gradelink/models/directory.py

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint, func
)
from sqlalchemy.orm import relationship
from gradelink.db.base import Base

class School(Base):
    """学校表 - 中心目录中的租户记录。每条记录对应一个独立的租户数据库/Schema。"""
    __tablename__ = 'schools'

    id = Column(Integer, primary_key=True, comment="学校主键ID，生成后不复用")
    name = Column(String(255), nullable=False, unique=True, comment="学校展示名称，唯一")
    # [关键] 由 name 规范化得到，也是租户数据库/Schema 的物理名称
    identifier = Column(String(63), nullable=False, unique=True, index=True, comment="租户标识符")

    email = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)
    postal_code = Column(String(20), nullable=True)
    logo = Column(String(512), nullable=True, comment="Logo 文件路径，相对 UPLOAD_DIR")

    created_at = Column(DateTime, nullable=False, server_default=func.now())

    admins = relationship("Admin", back_populates="school", cascade="all, delete-orphan", passive_deletes=True)

class Admin(Base):
    """学校管理员 - 属于且仅属于一个学校。"""
    __tablename__ = 'admins'

    id = Column(Integer, primary_key=True)
    school_id = Column(Integer, ForeignKey('schools.id', ondelete='CASCADE'), nullable=False, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(32), nullable=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    school = relationship("School", back_populates="admins", lazy="joined")

# 以下两张登录索引表通过 tenant_identifier 冗余引用租户库中的档案行。
# 这是跨库引用，无法用外键声明，一致性由 LinkedWriteCoordinator 保证。

class StudentLogin(Base):
    __tablename__ = 'student_logins'

    id = Column(Integer, primary_key=True)
    admission_number = Column(String(100), nullable=False, index=True)
    student_code = Column(String(100), nullable=True)
    password_hash = Column(String(255), nullable=False)
    tenant_identifier = Column(String(63), nullable=False, index=True, comment="持有完整档案的租户库")
    school_name = Column(String(255), nullable=False)
    logo = Column(String(512), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('tenant_identifier', 'admission_number', name='uq_student_logins_tenant_admission'),
    )

class TeacherLogin(Base):
    __tablename__ = 'teacher_logins'

    id = Column(Integer, primary_key=True)
    teacher_code = Column(String(100), nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    tenant_identifier = Column(String(63), nullable=False, index=True)
    school_name = Column(String(255), nullable=False)
    logo = Column(String(512), nullable=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint('tenant_identifier', 'teacher_code', name='uq_teacher_logins_tenant_teacher'),
    )
