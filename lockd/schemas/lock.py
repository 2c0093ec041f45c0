from datetime import datetime

from pydantic import BaseModel, Field

from lockd.models.base import LockMode

WILDCARD_ID = "*"


class LockRequest(BaseModel):
    """Request message shared by every ``lock.*`` RPC method.

    Durations are integer microseconds. Fields a method does not use are
    left at their zero value.
    """

    resource: str = Field(min_length=1, max_length=255)
    id: str = Field(default="", max_length=255)
    ttl: int = Field(default=0, ge=0)
    wait: int = Field(default=0, ge=0)


class LockResponse(BaseModel):
    ok: bool


class HolderRead(BaseModel):
    id: str
    expires_at: datetime | None


class LockStateRead(BaseModel):
    resource: str
    mode: LockMode
    holders: list[HolderRead]
    waiters: int
