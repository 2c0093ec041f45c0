"""lockd client facade."""

from lockd import config
from lockd.client.transport import DEFAULT_BASE_URL, RPC, AsyncHttpRPC, AsyncRPC, HttpRPC
from lockd.durations import Duration, to_microseconds
from lockd.exceptions import InvalidArgument
from lockd.ids import LockIdGenerator, UuidLockIdGenerator
from lockd.schemas.lock import WILDCARD_ID, LockRequest

MAX_NAME_LENGTH = 255


def _validate_resource(resource: str) -> None:
    if not resource or len(resource) > MAX_NAME_LENGTH:
        raise InvalidArgument(f"Resource name must be 1-{MAX_NAME_LENGTH} characters")


def _validate_id(lock_id: str) -> None:
    if not lock_id or len(lock_id) > MAX_NAME_LENGTH:
        raise InvalidArgument(f"Lock id must be 1-{MAX_NAME_LENGTH} characters")
    if lock_id == WILDCARD_ID:
        raise InvalidArgument(f"Lock id {WILDCARD_ID!r} is reserved")


class _LockClientBase:
    def __init__(self, rpc, id_generator: LockIdGenerator | None = None):
        self.rpc = rpc
        self.id_generator = id_generator or UuidLockIdGenerator()

    def _acquire_request(
        self, resource: str, lock_id: str | None, ttl: Duration, wait: Duration
    ) -> LockRequest:
        _validate_resource(resource)
        ttl_us = to_microseconds(ttl)
        wait_us = to_microseconds(wait)
        if lock_id is None:
            lock_id = self.id_generator.generate()
        _validate_id(lock_id)
        return LockRequest(resource=resource, id=lock_id, ttl=ttl_us, wait=wait_us)

    def _holder_request(self, resource: str, lock_id: str, ttl: Duration = 0) -> LockRequest:
        _validate_resource(resource)
        _validate_id(lock_id)
        return LockRequest(resource=resource, id=lock_id, ttl=to_microseconds(ttl))

    def _resource_request(self, resource: str) -> LockRequest:
        _validate_resource(resource)
        return LockRequest(resource=resource)

    def _exists_request(self, resource: str, lock_id: str | None) -> LockRequest:
        _validate_resource(resource)
        if lock_id is None:
            return LockRequest(resource=resource, id=WILDCARD_ID)
        _validate_id(lock_id)
        return LockRequest(resource=resource, id=lock_id)


class LockClient(_LockClientBase):
    """Blocking client for the lockd service.

    Every method is a single round trip through ``rpc``. Contention is an
    ordinary outcome: acquires return ``None`` instead of raising. Transport
    problems raise ``TransportFailure`` and are never retried here.
    """

    def __init__(self, rpc: RPC, id_generator: LockIdGenerator | None = None):
        super().__init__(rpc, id_generator)

    @classmethod
    def from_url(
        cls,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = config.CLIENT_TIMEOUT_SECONDS,
        id_generator: LockIdGenerator | None = None,
    ) -> "LockClient":
        return cls(HttpRPC(base_url, timeout=timeout), id_generator)

    def lock(
        self,
        resource: str,
        id: str | None = None,
        ttl: Duration = 0,
        wait: Duration = 0,
    ) -> str | None:
        """Lock a resource for exclusive access.

        Args:
            resource: Name of the resource to lock
            id: Lock id; a new one is generated when omitted
            ttl: Seconds (int, float or timedelta) until the lock expires; 0 never expires
            wait: Seconds to wait for the lock before giving up; 0 tries once

        Returns:
            The lock id on success, None if the lock was not acquired

        Raises:
            InvalidArgument: If a duration is negative or a name is empty
        """
        request = self._acquire_request(resource, id, ttl, wait)
        response = self.rpc.call("lock.Lock", request)
        return request.id if response.ok else None

    def lock_read(
        self,
        resource: str,
        id: str | None = None,
        ttl: Duration = 0,
        wait: Duration = 0,
    ) -> str | None:
        """Lock a resource for shared access.

        Any number of shared holders may coexist; an exclusive lock waits
        until all of them are released. Arguments and return value as for
        :meth:`lock`.
        """
        request = self._acquire_request(resource, id, ttl, wait)
        response = self.rpc.call("lock.LockRead", request)
        return request.id if response.ok else None

    def release(self, resource: str, id: str) -> bool:
        """Release a lock previously acquired under ``id``."""
        return self.rpc.call("lock.Release", self._holder_request(resource, id)).ok

    def force_release(self, resource: str) -> bool:
        """Release every lock on ``resource`` regardless of holder.

        Meant for recovering from a crashed holder. Returns False if the
        resource was not locked.
        """
        return self.rpc.call("lock.ForceRelease", self._resource_request(resource)).ok

    def exists(self, resource: str, id: str | None = None) -> bool:
        """Check whether ``resource`` is locked, by ``id`` or by anyone when omitted."""
        return self.rpc.call("lock.Exists", self._exists_request(resource, id)).ok

    def update_ttl(self, resource: str, id: str, ttl: Duration) -> bool:
        """Reset the expiry of ``id``'s lock to ``ttl`` from now; 0 removes the expiry."""
        return self.rpc.call("lock.UpdateTTL", self._holder_request(resource, id, ttl)).ok

    def close(self) -> None:
        close = getattr(self.rpc, "close", None)
        if close is not None:
            close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class AsyncLockClient(_LockClientBase):
    """Asyncio counterpart of :class:`LockClient`."""

    def __init__(self, rpc: AsyncRPC, id_generator: LockIdGenerator | None = None):
        super().__init__(rpc, id_generator)

    @classmethod
    def from_url(
        cls,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = config.CLIENT_TIMEOUT_SECONDS,
        id_generator: LockIdGenerator | None = None,
    ) -> "AsyncLockClient":
        return cls(AsyncHttpRPC(base_url, timeout=timeout), id_generator)

    async def lock(
        self,
        resource: str,
        id: str | None = None,
        ttl: Duration = 0,
        wait: Duration = 0,
    ) -> str | None:
        request = self._acquire_request(resource, id, ttl, wait)
        response = await self.rpc.call("lock.Lock", request)
        return request.id if response.ok else None

    async def lock_read(
        self,
        resource: str,
        id: str | None = None,
        ttl: Duration = 0,
        wait: Duration = 0,
    ) -> str | None:
        request = self._acquire_request(resource, id, ttl, wait)
        response = await self.rpc.call("lock.LockRead", request)
        return request.id if response.ok else None

    async def release(self, resource: str, id: str) -> bool:
        response = await self.rpc.call("lock.Release", self._holder_request(resource, id))
        return response.ok

    async def force_release(self, resource: str) -> bool:
        response = await self.rpc.call("lock.ForceRelease", self._resource_request(resource))
        return response.ok

    async def exists(self, resource: str, id: str | None = None) -> bool:
        response = await self.rpc.call("lock.Exists", self._exists_request(resource, id))
        return response.ok

    async def update_ttl(self, resource: str, id: str, ttl: Duration) -> bool:
        response = await self.rpc.call(
            "lock.UpdateTTL", self._holder_request(resource, id, ttl)
        )
        return response.ok

    async def close(self) -> None:
        close = getattr(self.rpc, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
