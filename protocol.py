# protocol.py
import asyncio
import logging
import time
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from errors import IOFailure, MalformedPayload

logger = logging.getLogger(__name__)

U64_MAX = 2**64 - 1
LINE_DELIMITER = b"\n"
RESPONSE_PREFIX = "Pong! Received: "


class EchoRequest(BaseModel):
    """A "ping": sent by the client, one per round trip."""

    model_config = ConfigDict(frozen=True)

    message: str = Field(..., strict=True, description="Per-iteration request text")
    timestamp: int = Field(..., strict=True, ge=0, le=U64_MAX,
                           description="Client send time, nanoseconds since the Unix epoch")


class EchoResponse(BaseModel):
    """A "pong": built by the server, one per received request."""

    model_config = ConfigDict(frozen=True)

    message: str = Field(..., strict=True)
    original_timestamp: int = Field(..., strict=True, ge=0, le=U64_MAX,
                                    description="Copied verbatim from the request")
    response_timestamp: int = Field(..., strict=True, ge=0, le=U64_MAX,
                                    description="Server time at reply construction, epoch nanoseconds")


def epoch_ns() -> int:
    # Payload data only. Round trips are timed with time.perf_counter_ns().
    return time.time_ns()


def make_response(request: EchoRequest, now_ns: Optional[int] = None) -> EchoResponse:
    return EchoResponse(
        message=f"{RESPONSE_PREFIX}{request.message}",
        original_timestamp=request.timestamp,
        response_timestamp=epoch_ns() if now_ns is None else now_ns,
    )


def _decode(model_cls, data: Union[str, bytes]):
    try:
        return model_cls.model_validate_json(data)
    except ValidationError as e:
        raise MalformedPayload(f"Invalid {model_cls.__name__}: {e.errors(include_url=False)}") from e


def encode_request(request: EchoRequest) -> str:
    return request.model_dump_json()


def decode_request(data: Union[str, bytes]) -> EchoRequest:
    return _decode(EchoRequest, data)


def encode_response(response: EchoResponse) -> str:
    return response.model_dump_json()


def decode_response(data: Union[str, bytes]) -> EchoResponse:
    return _decode(EchoResponse, data)


def encode_line(message: BaseModel) -> bytes:
    """Serialize a message as one newline-terminated line of UTF-8 JSON.

    Compact JSON never contains a raw newline (string newlines are escaped),
    so the delimiter is unambiguous.
    """
    return message.model_dump_json().encode('utf-8') + LINE_DELIMITER


async def send_line(writer: asyncio.StreamWriter, message: BaseModel):
    try:
        writer.write(encode_line(message))
        await writer.drain()
    except (ConnectionResetError, BrokenPipeError) as e:
        raise IOFailure(f"Connection lost while writing: {e}") from e


async def read_line(reader: asyncio.StreamReader) -> Optional[bytes]:
    """Read one line, without its delimiter. Returns None on clean end of stream.

    Raises IOFailure on a reset connection or a line longer than the reader limit.
    """
    try:
        line = await reader.readline()
    except (ConnectionResetError, BrokenPipeError) as e:
        raise IOFailure(f"Connection lost while reading: {e}") from e
    except ValueError as e:
        # StreamReader wraps LimitOverrunError in ValueError for over-long lines
        raise IOFailure(f"Line exceeds read limit: {e}") from e
    if not line:
        return None
    return line.rstrip(b"\r\n")
