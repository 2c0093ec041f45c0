import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from lockd import config
from lockd.api.routes.locks import admin_router as locks_router
from lockd.api.routes.locks import router as rpc_router
from lockd.db.session import create_schema, create_session_factory
from lockd.exceptions import LockdError
from lockd.schemas.errors import ErrorDetail, ErrorResponse
from lockd.services.journal import LockJournal
from lockd.services.lock_manager import LockManager

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id, reusing the caller's if it sent one."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine = None
    journal = None
    if config.DATABASE_URL:
        engine, session_factory = create_session_factory(config.DATABASE_URL)
        await create_schema(engine)
        journal = LockJournal(session_factory)
        logger.info("Journaling locks to %s", engine.url.render_as_string(hide_password=True))

    manager = LockManager(journal=journal)
    await manager.start()
    app.state.manager = manager
    yield
    await manager.stop()
    if engine is not None:
        await engine.dispose()


app = FastAPI(title="lockd", lifespan=lifespan)

app.add_middleware(RequestIDMiddleware)


def _error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=ErrorDetail(
            code=code,
            message=message,
            details=details or {},
            request_id=getattr(request.state, "request_id", "unknown"),
        )
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(LockdError)
async def lockd_error_handler(request: Request, exc: LockdError) -> JSONResponse:
    logger.info("%s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return _error_response(request, exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"type": err.get("type"), "loc": list(err.get("loc", [])), "msg": err.get("msg")}
        for err in exc.errors()
    ]
    return _error_response(
        request, 422, "VALIDATION_ERROR", "Malformed lock request", {"errors": errors}
    )


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s failed", request.method, request.url.path)
    return _error_response(request, 500, "INTERNAL_ERROR", "The lock service failed")


app.include_router(rpc_router)
app.include_router(locks_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
