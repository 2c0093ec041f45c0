import enum

from sqlalchemy import Enum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class LockMode(str, enum.Enum):
    exclusive = "exclusive"
    shared = "shared"


lock_mode_enum = Enum(LockMode, name="lock_mode_enum", native_enum=True, create_constraint=False)
