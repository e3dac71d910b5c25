# gradelink/db/base.py

from sqlalchemy import MetaData
from sqlalchemy.orm import declarative_base

# [关键] 定义一个命名约定
# 中心库与租户库共用同一套约束命名规则，drop/迁移时名称可预测。
naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}

# Central directory models (schools, admins, login lookups)
metadata_obj = MetaData(naming_convention=naming_convention)
Base = declarative_base(metadata=metadata_obj)
