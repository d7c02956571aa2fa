# Callback Server: short-lived local listener for OAuth redirects.
# Created: 2026-10-18

from __future__ import annotations

import asyncio
import html
import logging
import socket
from collections.abc import Awaitable, Callable, Mapping

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse

from lifehub.integrations.errors import ListenerStartupError

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"

# (status code, html body) answered to the browser
CallbackHandler = Callable[[Mapping[str, str]], Awaitable[tuple[int, str]]]

_PAGE_HTML = """<!DOCTYPE html>
<html><head><title>{title}</title></head>
<body style="font-family: system-ui; padding: 40px; text-align: center;">
<h1>{title}</h1>
<p>{message}</p>
<p>You can close this window.</p>
</body></html>"""

_ANY_METHOD = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def render_page(title: str, message: str) -> str:
    """Render the minimal page shown in the browser tab."""
    return _PAGE_HTML.format(title=html.escape(title), message=html.escape(message))


def create_app(handler: CallbackHandler) -> FastAPI:
    """Build the listener app: ``GET /callback`` is the only real route."""
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(CALLBACK_PATH)
    async def callback(request: Request):
        status, body = await handler(dict(request.query_params))
        return HTMLResponse(body, status_code=status)

    @app.api_route("/{path:path}", methods=_ANY_METHOD)
    async def not_found(path: str):
        return PlainTextResponse("Not found", status_code=404)

    return app


class CallbackServer:
    """uvicorn server bound to a socket we open ourselves.

    Binding up front lets a busy port surface as ListenerStartupError before
    anything else happens, instead of uvicorn exiting the process.
    """

    def __init__(self, handler: CallbackHandler, port: int, host: str = "127.0.0.1"):
        self.port = port
        self.host = host
        self._app = create_app(handler)
        self._sock: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def bind(self) -> None:
        """Bind and listen on the callback port."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen(16)
        except OSError as e:
            sock.close()
            raise ListenerStartupError(self.port, e.strerror or str(e)) from e
        sock.setblocking(False)
        self._sock = sock

    async def start(self) -> None:
        """Bind (if needed) and serve until :meth:`stop` is called."""
        if self._sock is None:
            self.bind()

        config = uvicorn.Config(
            self._app,
            log_level="warning",
            log_config=None,
            lifespan="off",
            timeout_graceful_shutdown=5,
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[self._sock]))

        while not self._server.started:
            if self._task.done():
                self._sock.close()
                exc = self._task.exception()
                reason = str(exc) if exc else "server exited during startup"
                raise ListenerStartupError(self.port, reason)
            await asyncio.sleep(0.01)

        logger.info("Callback server listening on http://localhost:%d", self.port)

    async def stop(self) -> None:
        """Shut the listener down; safe to call more than once."""
        if self._server is not None and self._task is not None:
            self._server.should_exit = True
            if not self._task.done():
                await asyncio.wait({self._task})
            if not self._task.cancelled() and self._task.exception() is not None:
                logger.warning(
                    "Callback server on port %d exited with error: %s",
                    self.port,
                    self._task.exception(),
                )
            self._server = None
            self._task = None
            logger.debug("Callback server on port %d closed", self.port)
        if self._sock is not None:
            self._sock.close()
            self._sock = None
