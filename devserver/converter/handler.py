import time
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler

import devserver.settings as default_settings
from devserver.local.errors import DevServerError

if TYPE_CHECKING:
    from devserver.local.supervisor import ServerHandler

log = logging.getLogger("devserver.watcher")

# watchdog event types mapped to the classifications the strategies understand
EVENT_KINDS = {
    "created": "create",
    "modified": "write",
    "deleted": "remove",
    "moved": "rename",
}


class SourceChangeHandler(FileSystemEventHandler):
    """A watchdog event handler that forwards source changes to the ServerHandler."""

    def __init__(self, server_handler: "ServerHandler", debounce_interval: Optional[float] = None):
        super().__init__()
        self.server_handler = server_handler
        self.debounce_cache: Dict[str, float] = {}
        self.debounce_interval = (
            default_settings.WATCHDOG_DEBOUNCE_SECONDS if debounce_interval is None else debounce_interval
        )

    def _is_relevant(self, path_str: str) -> bool:
        """Skips files the server does not build from and its own artifacts."""
        path = Path(path_str)
        if path.suffix.lower() not in self.server_handler.supported_extensions():
            return False
        unobserved = {str(Path(p).resolve()) for p in self.server_handler.unobserved_files()}
        return str(path.resolve()) not in unobserved

    def _should_process_event(self, path_str: str, kind: str) -> bool:
        """Check if the event should be processed or skipped due to debouncing."""
        key = f"{kind}:{path_str}"
        now = time.monotonic()
        last_seen = self.debounce_cache.get(key)
        if last_seen is not None and now - last_seen < self.debounce_interval:
            return False
        self.debounce_cache[key] = now
        return True

    def dispatch_change(self, path_str: str, kind: str) -> None:
        """Forwards a single classified change to the ServerHandler."""
        if not self._is_relevant(path_str) or not self._should_process_event(path_str, kind):
            return

        path = Path(path_str)
        log.debug(f"Source event: {kind} on {path}")
        try:
            self.server_handler.handle_file_event(path.name, path.suffix, str(path), kind)
        except DevServerError as e:
            # Already reported by the strategy; the next change retries.
            log.debug(f"Handling {kind} event for {path.name} failed: {e}")

    def on_any_event(self, event: FileSystemEvent) -> None:
        """The main event handler method for watchdog, called on any file change."""
        if event.is_directory:
            return

        kind = EVENT_KINDS.get(event.event_type)
        if kind is None:
            return

        self.dispatch_change(event.src_path, kind)

        # Editors that save atomically rename a temporary file over the source.
        dest_path = getattr(event, "dest_path", "")
        if kind == "rename" and dest_path:
            self.dispatch_change(dest_path, "write")
