"""RPC transports carrying lock requests to the service over HTTP."""

import logging
from typing import Protocol

import httpx
import pydantic

from lockd import config
from lockd.client.codec import Codec, JsonCodec
from lockd.client.exceptions import RemoteError, TransportFailure
from lockd.durations import to_seconds
from lockd.schemas.errors import ErrorResponse
from lockd.schemas.lock import LockRequest, LockResponse

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = f"http://localhost:{config.PORT}"


class RPC(Protocol):
    def call(self, method: str, request: LockRequest) -> LockResponse: ...


class AsyncRPC(Protocol):
    async def call(self, method: str, request: LockRequest) -> LockResponse: ...


def _remote_error(response: httpx.Response) -> RemoteError:
    try:
        error = ErrorResponse.model_validate_json(response.content).error
    except pydantic.ValidationError:
        return RemoteError(
            response.status_code,
            "HTTP_ERROR",
            f"HTTP {response.status_code}: {response.text}",
        )
    return RemoteError(
        response.status_code, error.code, error.message, error.request_id, error.details
    )


class _HttpRPCBase:
    def __init__(self, base_url: str, codec: Codec | None, timeout: float):
        self.base_url = base_url.rstrip("/")
        self.codec = codec or JsonCodec()
        self.timeout = timeout

    def _url(self, method: str) -> str:
        return f"{self.base_url}/rpc/{method}"

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": self.codec.content_type, "Accept": self.codec.content_type}

    def _timeout(self, request: LockRequest) -> float:
        # A blocking acquire legitimately holds the response for up to its wait budget
        return self.timeout + to_seconds(request.wait)

    def _decode(self, method: str, response: httpx.Response) -> LockResponse:
        if response.status_code >= 400:
            raise _remote_error(response)
        try:
            return self.codec.decode(response.content, LockResponse)
        except pydantic.ValidationError as exc:
            raise TransportFailure(f"Malformed response to {method}: {exc}") from exc


class HttpRPC(_HttpRPCBase):
    """Blocking transport backed by ``httpx.Client``."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        codec: Codec | None = None,
        timeout: float = config.CLIENT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ):
        super().__init__(base_url, codec, timeout)
        self.client = client or httpx.Client()

    def call(self, method: str, request: LockRequest) -> LockResponse:
        try:
            response = self.client.post(
                self._url(method),
                content=self.codec.encode(request),
                headers=self._headers(),
                timeout=self._timeout(request),
            )
        except httpx.RequestError as exc:
            logger.debug("%s to %s failed: %s", method, self.base_url, exc)
            raise TransportFailure(f"{method} failed: {exc}") from exc
        return self._decode(method, response)

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class AsyncHttpRPC(_HttpRPCBase):
    """Asyncio transport backed by ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        codec: Codec | None = None,
        timeout: float = config.CLIENT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(base_url, codec, timeout)
        self.client = client or httpx.AsyncClient()

    async def call(self, method: str, request: LockRequest) -> LockResponse:
        try:
            response = await self.client.post(
                self._url(method),
                content=self.codec.encode(request),
                headers=self._headers(),
                timeout=self._timeout(request),
            )
        except httpx.RequestError as exc:
            logger.debug("%s to %s failed: %s", method, self.base_url, exc)
            raise TransportFailure(f"{method} failed: {exc}") from exc
        return self._decode(method, response)

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
