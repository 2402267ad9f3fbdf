"""
Declarative base for all ORM models
"""
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def enum_values(enum_cls):
    """Persist str enums by value (e.g. "under_review") instead of member name."""
    return [member.value for member in enum_cls]
