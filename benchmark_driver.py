import asyncio
import logging
import time
from typing import Optional

import httpx

from errors import ConnectionFailure, IOFailure, MalformedPayload
from metrics import LatencySample
from protocol import (EchoRequest, EchoResponse, decode_response, encode_request,
                      epoch_ns, read_line, send_line)
from config import BENCHMARK_PROGRESS_EVERY, IPC_READ_LIMIT_BYTES

logger = logging.getLogger(__name__)


def _check_matches(request: EchoRequest, response: EchoResponse) -> EchoResponse:
    if response.original_timestamp != request.timestamp:
        raise MalformedPayload(
            f"Response echoes timestamp {response.original_timestamp}, expected {request.timestamp}")
    return response


class HttpTransport:
    """POSTs each EchoRequest to <base_url>/ping over a kept-alive httpx client."""

    name = "HTTP"

    def __init__(self, base_url: str, client_transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._client_transport = client_transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        # No timeout: a stalled service blocks the run instead of being silently retried
        self._client = httpx.AsyncClient(
            transport=self._client_transport,
            timeout=None,
            headers={"Content-Type": "application/json"},
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def round_trip(self, request: EchoRequest) -> EchoResponse:
        url = f"{self.base_url}/ping"
        try:
            response = await self._client.post(url, content=encode_request(request))
            body = response.content
        except httpx.ConnectError as e:
            raise ConnectionFailure(f"Cannot connect to {url}: {e}") from e
        except httpx.HTTPError as e:
            raise IOFailure(f"Request to {url} failed: {e}") from e

        if not response.is_success:
            raise IOFailure(f"HTTP {response.status_code} from {url}: {response.text[:200]}")
        return _check_matches(request, decode_response(body))


class IpcTransport:
    """One persistent Unix-socket connection; one request line, then one response line."""

    name = "IPC"

    def __init__(self, socket_path: str, read_limit: int = IPC_READ_LIMIT_BYTES):
        self.socket_path = socket_path
        self.read_limit = read_limit
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    async def __aenter__(self):
        try:
            self._reader, self._writer = await asyncio.open_unix_connection(
                self.socket_path, limit=self.read_limit)
        except OSError as e:
            # FileNotFoundError, ConnectionRefusedError, PermissionError, ...
            raise ConnectionFailure(f"Cannot connect to {self.socket_path}: {e}") from e
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._writer is not None:
            if not self._writer.is_closing():
                self._writer.close()
            try:
                await self._writer.wait_closed()
            except (ConnectionResetError, BrokenPipeError):
                pass
        self._reader = None
        self._writer = None

    async def round_trip(self, request: EchoRequest) -> EchoResponse:
        await send_line(self._writer, request)
        line = await read_line(self._reader)
        if line is None:
            raise IOFailure(f"{self.socket_path} closed the connection before responding")
        return _check_matches(request, decode_response(line))


async def run_benchmark(transport, request_count: int,
                        progress_every: int = BENCHMARK_PROGRESS_EVERY) -> LatencySample:
    """Drive `request_count` strictly sequential round trips and time each one.

    Any failure propagates; measurements gathered before it are discarded.
    """
    if request_count < 0:
        raise ValueError(f"request_count must be non-negative, got {request_count}")

    name = getattr(transport, "name", type(transport).__name__)
    logger.info(f"Testing {name} with {request_count} requests...")
    sample = LatencySample()

    async with transport:
        for i in range(request_count):
            request = EchoRequest(message=f"Hello {i}", timestamp=epoch_ns())

            start_ns = time.perf_counter_ns()
            await transport.round_trip(request)
            end_ns = time.perf_counter_ns()
            sample.record(end_ns - start_ns)

            if progress_every and i % progress_every == 0:
                logger.info(f"{name}: Completed {i + 1} requests")

    logger.info(f"{name}: Run finished with {len(sample)} measurements.")
    return sample.freeze()


async def run_http(base_url: str, request_count: int, **kwargs) -> LatencySample:
    return await run_benchmark(HttpTransport(base_url), request_count, **kwargs)


async def run_ipc(socket_path: str, request_count: int, **kwargs) -> LatencySample:
    return await run_benchmark(IpcTransport(socket_path), request_count, **kwargs)
