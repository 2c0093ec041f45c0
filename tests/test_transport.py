import json

import httpx
import pytest

from lockd.client import AsyncHttpRPC, HttpRPC, RemoteError, TransportFailure
from lockd.schemas.lock import LockRequest


def make_rpc(handler) -> HttpRPC:
    return HttpRPC(
        "http://lockd.test/",
        timeout=5.0,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_call_posts_encoded_request():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    with make_rpc(handler) as rpc:
        response = rpc.call(
            "lock.Lock", LockRequest(resource="r", id="id1", ttl=10, wait=2_500_000)
        )

    assert response.ok is True
    (request,) = seen
    assert request.method == "POST"
    assert str(request.url) == "http://lockd.test/rpc/lock.Lock"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"resource": "r", "id": "id1", "ttl": 10, "wait": 2_500_000}


def test_timeout_covers_wait_budget():
    timeouts = []

    def handler(request: httpx.Request) -> httpx.Response:
        timeouts.append(request.extensions["timeout"])
        return httpx.Response(200, json={"ok": False})

    with make_rpc(handler) as rpc:
        rpc.call("lock.Lock", LockRequest(resource="r", id="id1", wait=2_500_000))
        rpc.call("lock.Release", LockRequest(resource="r", id="id1"))

    assert timeouts[0]["read"] == pytest.approx(7.5)
    assert timeouts[1]["read"] == pytest.approx(5.0)


def test_error_envelope_raises_remote_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            422,
            json={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Malformed lock request",
                    "details": {"errors": []},
                    "request_id": "req-1",
                }
            },
        )

    with make_rpc(handler) as rpc:
        with pytest.raises(RemoteError) as exc_info:
            rpc.call("lock.Lock", LockRequest(resource="r", id="id1"))

    err = exc_info.value
    assert err.status_code == 422
    assert err.code == "VALIDATION_ERROR"
    assert err.request_id == "req-1"
    assert isinstance(err, TransportFailure)


def test_plain_http_error_raises_remote_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="Bad Gateway")

    with make_rpc(handler) as rpc:
        with pytest.raises(RemoteError) as exc_info:
            rpc.call("lock.Exists", LockRequest(resource="r", id="*"))

    assert exc_info.value.status_code == 502
    assert exc_info.value.code == "HTTP_ERROR"


def test_malformed_response_raises_transport_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"unexpected": 1})

    with make_rpc(handler) as rpc:
        with pytest.raises(TransportFailure) as exc_info:
            rpc.call("lock.Exists", LockRequest(resource="r", id="*"))

    assert not isinstance(exc_info.value, RemoteError)


def test_connection_error_raises_transport_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with make_rpc(handler) as rpc:
        with pytest.raises(TransportFailure):
            rpc.call("lock.Lock", LockRequest(resource="r", id="id1"))


@pytest.mark.asyncio
async def test_async_connection_error_raises_transport_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    rpc = AsyncHttpRPC(
        "http://lockd.test",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    async with rpc:
        with pytest.raises(TransportFailure):
            await rpc.call("lock.Lock", LockRequest(resource="r", id="id1"))
