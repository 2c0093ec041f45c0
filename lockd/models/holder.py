import uuid

from sqlalchemy import DateTime, Index, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from lockd.models.base import Base, lock_mode_enum


class LockHolder(Base):
    __tablename__ = "lock_holders"
    __table_args__ = (
        UniqueConstraint("resource", "holder_id", name="uq_holders_resource_holder"),
        Index("idx_holders_resource", "resource"),
        Index("idx_holders_expiry", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    resource: Mapped[str] = mapped_column(String(255), nullable=False)
    holder_id: Mapped[str] = mapped_column(String(255), nullable=False)
    mode = mapped_column(lock_mode_enum, nullable=False)
    acquired_at = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    # NULL means the holder never expires on its own
    expires_at = mapped_column(DateTime(timezone=True), nullable=True)
