"""Declarative base, id generation and the status column type"""
import uuid

from sqlalchemy import Enum as SQLEnum
from sqlalchemy import String, TypeDecorator
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def generate_uuid() -> str:
    return str(uuid.uuid4())


class StatusEnum(TypeDecorator):
    """
    Stores a ``str`` Enum by value

    PostgreSQL gets its native ENUM; SQLite and the rest get a VARCHAR
    sized to the longest member. Rows read back as enum members, so a
    status written as ``"PARTIAL"`` compares equal to
    ``ClientEnrichmentStatus.PARTIAL``.
    """

    impl = String
    cache_ok = True

    def __init__(self, enum_class, *args, **kwargs):
        self.enum_class = enum_class
        super().__init__(*args, **kwargs)

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(SQLEnum(self.enum_class, create_type=False))
        return dialect.type_descriptor(String(max(len(member.value) for member in self.enum_class)))

    def process_bind_param(self, value, dialect):
        return value.value if isinstance(value, self.enum_class) else value

    def process_result_value(self, value, dialect):
        return None if value is None else self.enum_class(value)
