"""
Declarative base shared by all ORM models.

Import this module first from any model to avoid circular imports.
"""
import enum

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Persist enum values ("referral") rather than member names ("REFERRAL")."""
    return [member.value for member in enum_cls]


def coerce_enum(enum_cls, value):
    """Return the enum member for value, or None when value is empty or unknown."""
    if value is None or value == "":
        return None
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return None
