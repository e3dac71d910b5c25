# gradelink/models/__init__.py

from .directory import School, Admin, StudentLogin, TeacherLogin

__all__ = ["School", "Admin", "StudentLogin", "TeacherLogin"]
