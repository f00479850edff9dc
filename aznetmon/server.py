"""HTTP and WebSocket transport for AzNetMon (FastAPI served by uvicorn)."""

import asyncio
import concurrent.futures
import logging
import threading

import uvicorn
from fastapi import APIRouter, FastAPI, Request, WebSocket
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse

from aznetmon.dashboard import DASHBOARD_HTML
from aznetmon.monitor import Monitor

logger = logging.getLogger(__name__)

SEND_TIMEOUT_SECONDS = 5.0

router = APIRouter()


class WebSocketChannel:
    """Adapts a FastAPI WebSocket to the broadcaster's message channel.

    Writes come from worker threads; each one is run on the server's event
    loop and waited for with a bounded timeout, so a stalled viewer turns
    into a write failure instead of a stuck worker.
    """

    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop, send_timeout: float = SEND_TIMEOUT_SECONDS):
        self._websocket = websocket
        self._loop = loop
        self._send_timeout = send_timeout

    def send_text(self, text: str) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            raise RuntimeError("send_text would block the server event loop")

        future = asyncio.run_coroutine_threadsafe(self._websocket.send_text(text), self._loop)
        try:
            future.result(timeout=self._send_timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise

    def close(self) -> None:
        if self._loop.is_closed():
            return
        asyncio.run_coroutine_threadsafe(self._close(), self._loop)

    async def _close(self) -> None:
        try:
            await self._websocket.close()
        except Exception as e:
            # Already closed by the peer or by the server
            logger.debug("WebSocket close ignored: %s", str(e) or type(e).__name__)


def _monitor(app: FastAPI) -> Monitor:
    return app.state.monitor


@router.get("/", response_class=HTMLResponse)
def dashboard() -> str:
    return DASHBOARD_HTML


@router.get("/api/results")
def get_results(request: Request) -> dict[str, dict]:
    return _monitor(request.app).results()


@router.get("/api/summary")
def get_summary(request: Request) -> dict[str, object]:
    return _monitor(request.app).summary().to_dict()


@router.get("/api/stats")
def get_stats(request: Request) -> dict[str, dict]:
    return _monitor(request.app).get_stats()


@router.websocket("/ws")
async def live_updates(websocket: WebSocket) -> None:
    monitor = _monitor(websocket.app)
    await websocket.accept()

    client = websocket.client
    name = f"{client.host}:{client.port}" if client else None
    channel = WebSocketChannel(websocket, asyncio.get_running_loop())

    # Snapshot writes block until the loop sends them, so subscribe off-loop
    handle = await run_in_threadpool(monitor.subscribe, channel, name)
    try:
        if not handle.closed:
            # Viewers never send anything meaningful: any message or a
            # disconnect ends the subscription
            message = await websocket.receive()
            logger.debug("Ending subscription %s on %s", handle.name, message.get("type"))
    finally:
        await run_in_threadpool(monitor.unsubscribe, handle)


def create_app(monitor: Monitor) -> FastAPI:
    app = FastAPI(title="AzNetMon")
    app.state.monitor = monitor
    app.include_router(router)
    return app


class ServerThread(threading.Thread):
    """Runs uvicorn on its own event loop next to the Qt event loop."""

    def __init__(self, app: FastAPI, host: str = "0.0.0.0", port: int = 8080):
        super().__init__(name="aznetmon-http", daemon=True)
        # log_config=None keeps the application's logging configuration
        config = uvicorn.Config(app, host=host, port=port, log_config=None)
        self.server = uvicorn.Server(config)

    def run(self):
        self.server.run()

    def stop(self, timeout: float = 5.0) -> None:
        self.server.should_exit = True
        self.join(timeout)
