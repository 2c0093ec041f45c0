from lockd.models.base import Base, LockMode
from lockd.models.holder import LockHolder

__all__ = ["Base", "LockHolder", "LockMode"]
