import asyncio
import logging
import threading
from typing import List, Optional

from hypercorn.asyncio import serve
from hypercorn.config import Config as HypercornConfig
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.routing import Router

import devserver.settings as default_settings
from devserver.local.config import RouteRegistrar
from devserver.local.errors import PortConflictError, ProcessRunError
from devserver.local.startup import port_in_use, wait_for_port

log = logging.getLogger("devserver.embedded")


async def placeholder_handler(request: Request) -> Response:
    """Answers every request when no routes have been registered."""
    return HTMLResponse("<h3>No routes registered in the embedded server</h3>")


def build_app(routes: Optional[List[RouteRegistrar]] = None) -> Starlette:
    """
    Builds the in-process application from route registration functions.

    Each registrar receives a `starlette.routing.Router` and adds its routes,
    e.g. `router.add_route("/health", health)`.

    :param routes: The registration functions, in order.
    :return Starlette: The ASGI application.
    """
    router = Router()
    if routes:
        for register in routes:
            register(router)
    else:
        router.add_route("/{path:path}", placeholder_handler, methods=["GET", "HEAD", "POST"])
    return Starlette(debug=False, routes=router.routes)


class EmbeddedServer:
    """
    Serves an ASGI application with Hypercorn on a background thread.

    The thread owns its own event loop; `shutdown` can be called from any
    other thread and returns once the server has drained or the graceful
    timeout has elapsed.
    """

    def __init__(
        self,
        app: Starlette,
        port: str,
        host: str = default_settings.APP_HOST,
        graceful_timeout: float = default_settings.GRACEFUL_SHUTDOWN_TIMEOUT,
    ) -> None:
        self.app = app
        self.port = port
        self.host = host
        self.graceful_timeout = graceful_timeout
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown_trigger: Optional[asyncio.Event] = None
        self._loop_ready = threading.Event()
        self._error: Optional[BaseException] = None

    def _hypercorn_config(self) -> HypercornConfig:
        config = HypercornConfig()
        config.bind = [f"{self.host}:{self.port}"]
        config.graceful_timeout = self.graceful_timeout
        config.accesslog = None
        return config

    async def _serve(self) -> None:
        self._shutdown_trigger = asyncio.Event()
        self._loop = asyncio.get_running_loop()
        self._loop_ready.set()
        await serve(self.app, self._hypercorn_config(), shutdown_trigger=self._shutdown_trigger.wait)

    def _run(self) -> None:
        try:
            asyncio.run(self._serve())
        except Exception as e:
            self._error = e
            log.error(f"Embedded server error: {e}")
        finally:
            self._loop_ready.set()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, ready_timeout: float = default_settings.PORT_READY_TIMEOUT) -> None:
        """
        Binds the port and waits until the server accepts connections.

        :raises PortConflictError: If the port is already taken.
        :raises ProcessRunError: If the server fails to come up.
        """
        if port_in_use(self.port, self.host):
            raise PortConflictError(self.port)

        self._thread = threading.Thread(target=self._run, daemon=True, name="EmbeddedServerThread")
        self._thread.start()

        if wait_for_port(self.port, ready_timeout, self.is_alive):
            return

        self.shutdown()
        if isinstance(self._error, OSError):
            raise PortConflictError(self.port, str(self._error)) from self._error
        raise ProcessRunError(f"embedded server did not start on port {self.port}: {self._error}")

    def shutdown(self) -> None:
        """Triggers a graceful shutdown and waits for the serving thread to finish."""
        thread = self._thread
        if thread is None:
            return
        self._loop_ready.wait(timeout=self.graceful_timeout)
        loop, trigger = self._loop, self._shutdown_trigger
        if loop is not None and trigger is not None and not loop.is_closed():
            try:
                loop.call_soon_threadsafe(trigger.set)
            except RuntimeError:
                pass  # The loop finished between the check and the call.
        thread.join(timeout=self.graceful_timeout + 1)
        if thread.is_alive():
            log.warning(f"Embedded server on port {self.port} did not stop within {self.graceful_timeout}s.")
        self._thread = None
