"""Client library for the lockd lock manager."""

from lockd.client.client import AsyncLockClient, LockClient
from lockd.client.codec import Codec, JsonCodec
from lockd.client.exceptions import (
    InvalidArgument,
    LockClientError,
    RemoteError,
    TransportFailure,
)
from lockd.client.transport import RPC, AsyncHttpRPC, AsyncRPC, HttpRPC
from lockd.ids import LockIdGenerator, SequentialLockIdGenerator, UuidLockIdGenerator

__all__ = [
    "AsyncHttpRPC",
    "AsyncLockClient",
    "AsyncRPC",
    "Codec",
    "HttpRPC",
    "InvalidArgument",
    "JsonCodec",
    "LockClient",
    "LockClientError",
    "LockIdGenerator",
    "RPC",
    "RemoteError",
    "SequentialLockIdGenerator",
    "TransportFailure",
    "UuidLockIdGenerator",
]
