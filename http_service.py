import asyncio
import logging
import socket
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from errors import EndpointSetupFailure, MalformedPayload
from protocol import decode_request, make_response

logger = logging.getLogger(__name__)


def create_app(diagnostics: Optional[logging.Logger] = None) -> FastAPI:
    """Build the stateless echo application: POST /ping and GET /health."""
    diagnostics = diagnostics or logger
    app = FastAPI(title="HTTP Echo Service")

    @app.post("/ping")
    async def ping(request: Request):
        body = await request.body()
        try:
            echo_request = decode_request(body)
        except MalformedPayload as e:
            diagnostics.warning(f"Rejecting malformed /ping body: {e}")
            return JSONResponse(status_code=400, content={"error": str(e)})
        return make_response(echo_request).model_dump()

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok"}

    return app


class HttpEchoServer:
    def __init__(self, host: str, port: int, diagnostics: Optional[logging.Logger] = None,
                 log_level: str = "warning"):
        self.host = host
        self.port = port
        self.diagnostics = diagnostics or logger
        self.app = create_app(self.diagnostics)

        config = uvicorn.Config(
            app=self.app,
            host=host,
            port=port,
            log_level=log_level,
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._socket: Optional[socket.socket] = None
        self._serve_task: Optional[asyncio.Task] = None

    @property
    def bound_port(self) -> Optional[int]:
        """The port actually bound; differs from `port` when started with port 0."""
        if self._socket is None:
            return None
        return self._socket.getsockname()[1]

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            raise EndpointSetupFailure(f"Cannot bind {self.host}:{self.port}: {e}") from e
        return sock

    async def start(self):
        self.diagnostics.info(f"Starting HTTP echo service on {self.host}:{self.port}")
        # Bound here rather than by uvicorn, which exits the process on bind errors
        self._socket = self._bind()
        self._serve_task = asyncio.create_task(
            self._server.serve(sockets=[self._socket]), name="HttpEchoServer"
        )

        while not self._server.started:
            if self._serve_task.done():
                exc = None if self._serve_task.cancelled() else self._serve_task.exception()
                await self._release()
                raise EndpointSetupFailure(
                    f"HTTP echo service failed to start on {self.host}:{self.port}") from exc
            await asyncio.sleep(0.01)
        self.diagnostics.info(f"HTTP echo service listening on {self.host}:{self.bound_port}")

    async def serve_forever(self):
        if self._serve_task is None:
            await self.start()
        await self._serve_task

    async def _release(self):
        if self._serve_task is not None:
            await asyncio.gather(self._serve_task, return_exceptions=True)
            self._serve_task = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    async def stop(self):
        self.diagnostics.info("Stopping HTTP echo service...")
        self._server.should_exit = True
        await self._release()
        self.diagnostics.info("HTTP echo service stopped.")
