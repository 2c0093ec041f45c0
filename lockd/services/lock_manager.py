import asyncio
import contextlib
import heapq
import itertools
import logging
import time
from collections import deque
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from lockd.durations import to_seconds
from lockd.models.base import LockMode
from lockd.schemas.lock import WILDCARD_ID
from lockd.services.journal import LockJournal, to_timestamp

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class _Waiter:
    holder_id: str
    mode: LockMode
    ttl: int
    enqueued_at: float
    future: asyncio.Future


@dataclass(eq=False)
class _ResourceState:
    resource: str
    mutex: asyncio.Lock = field(default_factory=asyncio.Lock)
    mode: LockMode | None = None
    # holder id -> wall-clock deadline, None for no expiry
    holders: dict[str, float | None] = field(default_factory=dict)
    waiters: deque[_Waiter] = field(default_factory=deque)
    refs: int = 0

    @property
    def idle(self) -> bool:
        return not self.holders and not self.waiters

    def compatible(self, mode: LockMode) -> bool:
        if not self.holders:
            return True
        return mode == LockMode.shared and self.mode == LockMode.shared

    def knows(self, holder_id: str) -> bool:
        return holder_id in self.holders or any(w.holder_id == holder_id for w in self.waiters)


@dataclass(frozen=True)
class LockState:
    resource: str
    mode: LockMode
    holders: dict[str, float | None]
    waiters: int


class LockManager:
    """In-process owner of every lock record and wait queue.

    Each resource gets its own ``asyncio.Lock``; all reads and transitions of
    that resource's holders and waiters happen while it is held, and due
    holders are dropped on entry so no operation ever sees an expired lock.
    Blocked acquires park on a future that the release, force-release and
    expiry paths resolve in FIFO order.

    Durations are integer microseconds; deadlines are wall-clock seconds taken
    from ``clock`` so they can be journaled and restored.
    """

    def __init__(
        self,
        journal: LockJournal | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._journal = journal
        self._clock = clock
        self._table: dict[str, _ResourceState] = {}
        self._deadlines: list[tuple[float, int, str, str]] = []
        # (resource, holder id) -> the one live deadline among heap entries
        self._scheduled: dict[tuple[str, str], float] = {}
        self._stale = 0
        self._seq = itertools.count()
        self._reschedule = asyncio.Event()
        self._expiry_task: asyncio.Task | None = None

    # --- lifecycle ---

    async def start(self) -> None:
        if self._journal is not None:
            await self._restore()
        self._expiry_task = asyncio.create_task(self._expiry_loop())

    async def stop(self) -> None:
        if self._expiry_task is None:
            return
        self._expiry_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._expiry_task
        self._expiry_task = None

    # --- operations ---

    async def acquire(
        self, resource: str, holder_id: str, mode: LockMode, ttl: int = 0, wait: int = 0
    ) -> bool:
        async with self._guard(resource) as state:
            # An id holds or awaits a given resource at most once
            if state.knows(holder_id):
                return False
            if not state.waiters and state.compatible(mode):
                await self._grant(state, holder_id, mode, ttl)
                return True
            if wait == 0:
                return False
            waiter = _Waiter(
                holder_id=holder_id,
                mode=mode,
                ttl=ttl,
                enqueued_at=self._clock(),
                future=asyncio.get_running_loop().create_future(),
            )
            state.waiters.append(waiter)
            logger.debug(
                "Queued %s request %r on %r behind %d waiters",
                mode.value, holder_id, resource, len(state.waiters) - 1,
            )

        try:
            await asyncio.wait([waiter.future], timeout=to_seconds(wait))
        except asyncio.CancelledError:
            await self._withdraw(resource, waiter, cancelled=True)
            raise
        return await self._withdraw(resource, waiter)

    async def acquire_exclusive(
        self, resource: str, holder_id: str, ttl: int = 0, wait: int = 0
    ) -> bool:
        return await self.acquire(resource, holder_id, LockMode.exclusive, ttl, wait)

    async def acquire_shared(
        self, resource: str, holder_id: str, ttl: int = 0, wait: int = 0
    ) -> bool:
        return await self.acquire(resource, holder_id, LockMode.shared, ttl, wait)

    async def release(self, resource: str, holder_id: str) -> bool:
        async with self._guard(resource) as state:
            if holder_id not in state.holders:
                return False
            await self._drop(state, holder_id)
            await self._wake(state)
            return True

    async def force_release(self, resource: str) -> bool:
        async with self._guard(resource) as state:
            if not state.holders:
                return False
            if self._journal is not None:
                await self._journal.record_clear(resource)
            dropped = len(state.holders)
            for holder_id in state.holders:
                self._unschedule(resource, holder_id)
            state.holders.clear()
            logger.info("Force-released %r (%d holders)", resource, dropped)
            await self._wake(state)
            return True

    async def exists(self, resource: str, holder_id: str = WILDCARD_ID) -> bool:
        async with self._guard(resource) as state:
            if holder_id == WILDCARD_ID:
                return bool(state.holders)
            return holder_id in state.holders

    async def update_ttl(self, resource: str, holder_id: str, ttl: int) -> bool:
        async with self._guard(resource) as state:
            if holder_id not in state.holders:
                return False
            deadline = self._deadline(ttl)
            if self._journal is not None:
                await self._journal.record_ttl(resource, holder_id, deadline)
            state.holders[holder_id] = deadline
            if deadline is None:
                self._unschedule(resource, holder_id)
            else:
                self._schedule(resource, holder_id, deadline)
            return True

    async def snapshot(self, resource: str) -> LockState | None:
        async with self._guard(resource) as state:
            if not state.holders:
                return None
            return LockState(
                resource=resource,
                mode=state.mode,
                holders=dict(state.holders),
                waiters=len(state.waiters),
            )

    # --- internals ---

    @asynccontextmanager
    async def _guard(self, resource: str) -> AsyncIterator[_ResourceState]:
        state = self._table.get(resource)
        if state is None:
            state = self._table[resource] = _ResourceState(resource)
        state.refs += 1
        try:
            async with state.mutex:
                await self._expire_due(state)
                yield state
        finally:
            state.refs -= 1
            if state.refs == 0 and state.idle and self._table.get(resource) is state:
                del self._table[resource]

    def _deadline(self, ttl: int) -> float | None:
        if ttl == 0:
            return None
        return self._clock() + to_seconds(ttl)

    async def _grant(
        self, state: _ResourceState, holder_id: str, mode: LockMode, ttl: int
    ) -> None:
        deadline = self._deadline(ttl)
        # Journal first: a failed write leaves the in-memory record untouched
        if self._journal is not None:
            await self._journal.record_grant(state.resource, holder_id, mode, deadline)
        state.mode = mode
        state.holders[holder_id] = deadline
        if deadline is not None:
            self._schedule(state.resource, holder_id, deadline)
        logger.debug("Granted %s lock on %r to %r", mode.value, state.resource, holder_id)

    async def _drop(self, state: _ResourceState, holder_id: str) -> None:
        if self._journal is not None:
            await self._journal.record_release(state.resource, holder_id)
        del state.holders[holder_id]
        self._unschedule(state.resource, holder_id)
        logger.debug("Released lock on %r held by %r", state.resource, holder_id)

    async def _wake(self, state: _ResourceState) -> None:
        if not state.holders:
            state.mode = None
        while state.waiters:
            waiter = state.waiters[0]
            if not state.compatible(waiter.mode):
                break
            state.waiters.popleft()
            try:
                await self._grant(state, waiter.holder_id, waiter.mode, waiter.ttl)
            except Exception as exc:
                logger.exception(
                    "Could not grant %r on %r; failing its request",
                    waiter.holder_id, state.resource,
                )
                waiter.future.set_exception(exc)
                continue
            waiter.future.set_result(True)

    async def _withdraw(self, resource: str, waiter: _Waiter, cancelled: bool = False) -> bool:
        async with self._guard(resource) as state:
            if waiter.future.done() and not waiter.future.cancelled():
                error = waiter.future.exception()
                if error is not None:
                    if cancelled:
                        return False
                    raise error
                if not cancelled:
                    return True
                # Granted, but nobody is left to hand the lock to
                if waiter.holder_id in state.holders:
                    await self._drop(state, waiter.holder_id)
                    await self._wake(state)
                return False
            if waiter in state.waiters:
                state.waiters.remove(waiter)
            waiter.future.cancel()
            logger.debug(
                "Gave up waiting for %r on %r%s",
                resource, waiter.holder_id, " (cancelled)" if cancelled else "",
            )
            # The withdrawn waiter may have been blocking compatible followers
            await self._wake(state)
            return False

    async def _expire_due(self, state: _ResourceState) -> None:
        now = self._clock()
        due = [
            holder_id
            for holder_id, deadline in state.holders.items()
            if deadline is not None and deadline <= now
        ]
        if not due:
            return
        for holder_id in due:
            await self._drop(state, holder_id)
            logger.info("Lock on %r held by %r expired", state.resource, holder_id)
        await self._wake(state)

    def _schedule(self, resource: str, holder_id: str, deadline: float) -> None:
        key = (resource, holder_id)
        if key in self._scheduled:
            self._stale += 1
        self._scheduled[key] = deadline
        heapq.heappush(self._deadlines, (deadline, next(self._seq), resource, holder_id))
        if self._stale > len(self._deadlines) // 2:
            self._compact()
        if self._deadlines[0][0] == deadline:
            self._reschedule.set()

    def _unschedule(self, resource: str, holder_id: str) -> None:
        if self._scheduled.pop((resource, holder_id), None) is not None:
            self._stale += 1

    def _compact(self) -> None:
        """Drop heap entries superseded by a later schedule or an unschedule."""
        live = []
        seen = set()
        for entry in self._deadlines:
            key = (entry[2], entry[3])
            if key not in seen and self._scheduled.get(key) == entry[0]:
                seen.add(key)
                live.append(entry)
        heapq.heapify(live)
        self._deadlines = live
        self._stale = 0

    async def _expiry_loop(self) -> None:
        while True:
            self._reschedule.clear()
            delay = self._deadlines[0][0] - self._clock() if self._deadlines else None
            if delay is None or delay > 0:
                try:
                    await asyncio.wait_for(self._reschedule.wait(), timeout=delay)
                except TimeoutError:
                    pass
                continue
            deadline, _, resource, holder_id = heapq.heappop(self._deadlines)
            if self._scheduled.get((resource, holder_id)) != deadline:
                # Superseded by update_ttl, or the holder is already gone
                self._stale -= 1
                continue
            del self._scheduled[(resource, holder_id)]
            if resource not in self._table:
                continue
            try:
                # Entering the guard drops every due holder and wakes waiters
                async with self._guard(resource):
                    pass
            except Exception:
                logger.exception("Error expiring locks on %r", resource)

    async def _restore(self) -> None:
        rows = await self._journal.load()
        restored = 0
        for row in rows:
            state = self._table.get(row.resource)
            if state is None:
                state = self._table[row.resource] = _ResourceState(row.resource)
            mode = LockMode(row.mode)
            if not state.compatible(mode):
                logger.warning(
                    "Skipping journaled %s holder %r on %r: conflicts with restored holders",
                    mode.value, row.holder_id, row.resource,
                )
                continue
            deadline = to_timestamp(row.expires_at)
            state.mode = mode
            state.holders[row.holder_id] = deadline
            if deadline is not None:
                self._schedule(row.resource, row.holder_id, deadline)
            restored += 1
        if restored:
            logger.info("Restored %d lock holders from journal", restored)
        await self._journal.purge_expired()
