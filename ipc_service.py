import asyncio
import logging
import os
from typing import Optional, Set

from errors import EndpointSetupFailure, IOFailure, MalformedPayload
from protocol import decode_request, make_response, read_line, send_line
from config import IPC_READ_LIMIT_BYTES

logger = logging.getLogger(__name__)


class IpcEchoServer:
    """Line-delimited JSON echo service on a Unix-domain stream socket.

    Every accepted connection runs in its own task; handlers share no mutable
    state, so one slow or broken client never blocks another.
    """

    def __init__(self, socket_path: str, diagnostics: Optional[logging.Logger] = None,
                 read_limit: int = IPC_READ_LIMIT_BYTES):
        self.socket_path = socket_path
        self.diagnostics = diagnostics or logger
        self.read_limit = read_limit

        self._server: Optional[asyncio.AbstractServer] = None
        self._serve_task: Optional[asyncio.Task] = None
        # Only used to cancel live handlers on stop()
        self._connection_tasks: Set[asyncio.Task] = set()

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    def _remove_stale_endpoint(self):
        try:
            os.unlink(self.socket_path)
        except FileNotFoundError:
            return
        except OSError as e:
            raise EndpointSetupFailure(
                f"Cannot remove stale endpoint at {self.socket_path}: {e}") from e
        self.diagnostics.info(f"Removed stale endpoint at {self.socket_path}")

    async def _handle_client_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        task = asyncio.current_task()
        if task is not None:
            self._connection_tasks.add(task)
        conn_id = f"conn-{id(writer):x}"
        self.diagnostics.info(f"Client connection {conn_id} on {self.socket_path}")
        served = 0
        try:
            while True:
                line = await read_line(reader)
                if line is None:
                    self.diagnostics.info(f"Client {conn_id} disconnected after {served} requests.")
                    break
                if not line.strip():
                    continue

                try:
                    request = decode_request(line)
                except MalformedPayload as e:
                    self.diagnostics.warning(f"Client {conn_id}: discarding malformed line: {e}")
                    continue

                await send_line(writer, make_response(request))
                served += 1

        except asyncio.CancelledError:
            self.diagnostics.info(f"Client handler for {conn_id} cancelled.")
        except IOFailure as e:
            self.diagnostics.warning(f"Client {conn_id}: {e}. Closing connection.")
        except Exception as e:
            self.diagnostics.error(f"Error handling client {conn_id}: {e}", exc_info=True)
        finally:
            if task is not None:
                self._connection_tasks.discard(task)
            if not writer.is_closing():
                writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionResetError, BrokenPipeError):
                pass
            self.diagnostics.debug(f"Closed client connection {conn_id}")

    async def start(self):
        self.diagnostics.info(f"Starting IPC echo service on {self.socket_path}")
        self._remove_stale_endpoint()

        try:
            self._server = await asyncio.start_unix_server(
                self._handle_client_connection, path=self.socket_path, limit=self.read_limit
            )
        except OSError as e:
            raise EndpointSetupFailure(f"Cannot bind {self.socket_path}: {e}") from e

        # asyncio logs accept() errors through the loop's exception handler and keeps listening
        self._serve_task = asyncio.create_task(self._server.serve_forever(), name="IpcEchoServer")
        self.diagnostics.info(f"IPC echo service listening on {self.socket_path}")

    async def serve_forever(self):
        if self._server is None:
            await self.start()
        try:
            await self._serve_task
        except asyncio.CancelledError:
            pass

    async def stop(self):
        self.diagnostics.info("Stopping IPC echo service...")
        if self._server:
            self._server.close()

        # Live handlers must finish before wait_closed() can return
        handlers = list(self._connection_tasks)
        for task in handlers:
            task.cancel()
        if handlers:
            await asyncio.gather(*handlers, return_exceptions=True)

        if self._serve_task and not self._serve_task.done():
            self._serve_task.cancel()
            await asyncio.gather(self._serve_task, return_exceptions=True)

        if self._server:
            await self._server.wait_closed()
        self._server = None
        self._serve_task = None

        try:
            os.unlink(self.socket_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.diagnostics.warning(f"Could not remove {self.socket_path} on shutdown: {e}")
        self.diagnostics.info("IPC echo service stopped.")
