from fastapi import Request

from lockd.services.lock_manager import LockManager


def get_manager(request: Request) -> LockManager:
    return request.app.state.manager
