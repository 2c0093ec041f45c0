from typing import Protocol, TypeVar

from pydantic import BaseModel

M = TypeVar("M", bound=BaseModel)


class Codec(Protocol):
    """Turns RPC messages into request bodies and back.

    The transport sends ``content_type`` as both ``Content-Type`` and
    ``Accept``. The lockd service only speaks JSON and answers any other
    body type with 415 ``UNSUPPORTED_MEDIA_TYPE``, so a different codec is
    only useful against a server or proxy that understands it.
    """

    content_type: str

    def encode(self, message: BaseModel) -> bytes: ...

    def decode(self, data: bytes, message_type: type[M]) -> M: ...


class JsonCodec:
    content_type = "application/json"

    def encode(self, message: BaseModel) -> bytes:
        return message.model_dump_json().encode()

    def decode(self, data: bytes, message_type: type[M]) -> M:
        return message_type.model_validate_json(data)
