import logging
from typing import TYPE_CHECKING, Optional, Protocol

from devserver.local.errors import DevServerError

if TYPE_CHECKING:
    from .supervisor import ServerHandler

log = logging.getLogger(__name__)

STORE_KEY_EXTERNAL_SERVER = "server_external_mode"


class Store(Protocol):
    """Minimal persistent storage used to remember the selected mode."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class UI(Protocol):
    """Minimal UI hook refreshed after the mode changes."""

    def refresh_ui(self) -> None:
        ...


class ServerModeHandler:
    """Toggles the ServerHandler between embedded and external mode."""
    name = "ServerMode"

    def __init__(self, handler: "ServerHandler", store: Store, ui: Optional[UI] = None) -> None:
        self.handler = handler
        self.store = store
        self.ui = ui

    def _stored_external(self) -> bool:
        try:
            return self.store.get(STORE_KEY_EXTERNAL_SERVER) == "true"
        except (KeyError, OSError):
            return False

    def label(self) -> str:
        if self._stored_external():
            return "SERVER: EXTERNAL"
        return "SERVER: INTERNAL"

    def _report(self, message: str) -> None:
        log.info(f"{self.name}: {message}")

    def execute(self) -> None:
        """Flips the stored mode, applies it and refreshes the UI."""
        external = not self._stored_external()
        try:
            self.store.set(STORE_KEY_EXTERNAL_SERVER, "true" if external else "false")
        except OSError as e:
            log.error(f"Could not persist server mode: {e}")

        try:
            self.handler.set_mode(external, progress=self._report)
        except DevServerError as e:
            log.error(f"Server mode switch failed: {e}")
        else:
            log.info("Switched to External Server Mode" if external else "Switched to Internal Server Mode")

        if self.ui is not None:
            self.ui.refresh_ui()
