import logging
from datetime import datetime, timezone

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from lockd.models.base import LockMode
from lockd.models.holder import LockHolder

logger = logging.getLogger(__name__)


def _to_datetime(deadline: float | None) -> datetime | None:
    if deadline is None:
        return None
    return datetime.fromtimestamp(deadline, timezone.utc)


def to_timestamp(value: datetime | None) -> float | None:
    if value is None:
        return None
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


class LockJournal:
    """Mirrors current lock holders into the ``lock_holders`` table."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def record_grant(
        self, resource: str, holder_id: str, mode: LockMode, deadline: float | None
    ) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(LockHolder).where(
                    LockHolder.resource == resource, LockHolder.holder_id == holder_id
                )
            )
            session.add(
                LockHolder(
                    resource=resource,
                    holder_id=holder_id,
                    mode=mode,
                    acquired_at=datetime.now(timezone.utc),
                    expires_at=_to_datetime(deadline),
                )
            )
            await session.commit()

    async def record_release(self, resource: str, holder_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(
                delete(LockHolder).where(
                    LockHolder.resource == resource, LockHolder.holder_id == holder_id
                )
            )
            await session.commit()

    async def record_clear(self, resource: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(LockHolder).where(LockHolder.resource == resource))
            await session.commit()

    async def record_ttl(self, resource: str, holder_id: str, deadline: float | None) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(LockHolder)
                .where(LockHolder.resource == resource, LockHolder.holder_id == holder_id)
                .values(expires_at=_to_datetime(deadline))
            )
            await session.commit()

    async def load(self) -> list[LockHolder]:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            result = await session.execute(
                select(LockHolder)
                .where(or_(LockHolder.expires_at.is_(None), LockHolder.expires_at > now))
                .order_by(LockHolder.acquired_at)
            )
            return list(result.scalars().all())

    async def purge_expired(self) -> int:
        now = datetime.now(timezone.utc)
        async with self._session_factory() as session:
            result = await session.execute(
                delete(LockHolder).where(LockHolder.expires_at < now)
            )
            await session.commit()
        if result.rowcount:
            logger.info("Purged %d expired journal rows", result.rowcount)
        return result.rowcount
