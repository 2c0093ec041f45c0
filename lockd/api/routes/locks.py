import asyncio
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from lockd.api.deps import get_manager
from lockd.exceptions import LockdError
from lockd.models.base import LockMode
from lockd.schemas.lock import HolderRead, LockRequest, LockResponse, LockStateRead, WILDCARD_ID
from lockd.services.lock_manager import LockManager

logger = logging.getLogger(__name__)


def _require_json(request: Request) -> None:
    content_type = request.headers.get("content-type", "")
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type != "application/json" and not media_type.endswith("+json"):
        raise LockdError(
            415,
            "UNSUPPORTED_MEDIA_TYPE",
            "RPC bodies must be application/json",
            {"content_type": content_type},
        )


router = APIRouter(prefix="/rpc", tags=["rpc"], dependencies=[Depends(_require_json)])
admin_router = APIRouter(prefix="/locks", tags=["locks"])


def _require_id(data: LockRequest) -> str:
    if not data.id:
        raise LockdError(422, "VALIDATION_ERROR", "Lock id must not be empty")
    if data.id == WILDCARD_ID:
        raise LockdError(422, "VALIDATION_ERROR", f"Lock id {WILDCARD_ID!r} is reserved")
    return data.id


async def _wait_for_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def _acquire(
    request: Request, manager: LockManager, data: LockRequest, mode: LockMode
) -> LockResponse:
    """Acquire on behalf of the caller, giving up the queue slot if they hang up."""
    holder_id = _require_id(data)
    if data.wait == 0:
        ok = await manager.acquire(data.resource, holder_id, mode, data.ttl)
        return LockResponse(ok=ok)

    acquiring = asyncio.ensure_future(
        manager.acquire(data.resource, holder_id, mode, data.ttl, data.wait)
    )
    disconnected = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        await asyncio.wait({acquiring, disconnected}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        acquiring.cancel()
        disconnected.cancel()
        raise
    if not disconnected.done():
        disconnected.cancel()
        return LockResponse(ok=acquiring.result())

    # Nobody is left to hand a grant to
    acquiring.cancel()
    try:
        granted = await acquiring
    except asyncio.CancelledError:
        granted = False
    if granted:
        await manager.release(data.resource, holder_id)
    logger.info("Client waiting for %r on %r disconnected", holder_id, data.resource)
    return LockResponse(ok=False)


@router.post("/lock.Lock", response_model=LockResponse)
async def lock(
    data: LockRequest, request: Request, manager: LockManager = Depends(get_manager)
):
    return await _acquire(request, manager, data, LockMode.exclusive)


@router.post("/lock.LockRead", response_model=LockResponse)
async def lock_read(
    data: LockRequest, request: Request, manager: LockManager = Depends(get_manager)
):
    return await _acquire(request, manager, data, LockMode.shared)


@router.post("/lock.Release", response_model=LockResponse)
async def release(data: LockRequest, manager: LockManager = Depends(get_manager)):
    ok = await manager.release(data.resource, _require_id(data))
    return LockResponse(ok=ok)


@router.post("/lock.ForceRelease", response_model=LockResponse)
async def force_release(data: LockRequest, manager: LockManager = Depends(get_manager)):
    ok = await manager.force_release(data.resource)
    return LockResponse(ok=ok)


@router.post("/lock.Exists", response_model=LockResponse)
async def exists(data: LockRequest, manager: LockManager = Depends(get_manager)):
    ok = await manager.exists(data.resource, data.id or WILDCARD_ID)
    return LockResponse(ok=ok)


@router.post("/lock.UpdateTTL", response_model=LockResponse)
async def update_ttl(data: LockRequest, manager: LockManager = Depends(get_manager)):
    ok = await manager.update_ttl(data.resource, _require_id(data), data.ttl)
    return LockResponse(ok=ok)


@admin_router.get("/{resource:path}", response_model=LockStateRead)
async def get_lock_state(resource: str, manager: LockManager = Depends(get_manager)):
    state = await manager.snapshot(resource)
    if state is None:
        raise LockdError(404, "NOT_FOUND", "Resource is not locked")
    return LockStateRead(
        resource=state.resource,
        mode=state.mode,
        holders=[
            HolderRead(
                id=holder_id,
                expires_at=(
                    datetime.fromtimestamp(deadline, timezone.utc)
                    if deadline is not None
                    else None
                ),
            )
            for holder_id, deadline in state.holders.items()
        ],
        waiters=state.waiters,
    )
