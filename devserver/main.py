import sys
import logging
import threading

import setproctitle
from watchdog.observers import Observer

import devserver.settings as default_settings
from devserver.log import setup_logging
from devserver.converter import SourceChangeHandler
from devserver.local.errors import DevServerError
from devserver.local.supervisor import ServerHandler

log = logging.getLogger("devserver")


def _run_server(handler: ServerHandler) -> None:
    """Target for the server thread: the caller decides what a failure means."""
    try:
        handler.start()
    except DevServerError as e:
        log.warning(f"Server not running ({e}). Waiting for the next source change.")


def main() -> int:
    """The main entry point: supervise the app until Ctrl-C."""
    setup_logging(logging.DEBUG if default_settings.VERBOSE_LOGGING else logging.INFO)
    setproctitle.setproctitle(default_settings.PROCESS_TITLE)

    handler = ServerHandler()
    shutdown_event = handler.config.shutdown_event
    source_dir = handler.config.root / handler.config.source_dir
    source_dir.mkdir(parents=True, exist_ok=True)

    observer = Observer()
    observer.schedule(SourceChangeHandler(handler), str(source_dir), recursive=True)
    observer.start()
    log.info(f"Watching {source_dir} for changes ({handler.mode.value} mode).")

    server_thread = threading.Thread(target=_run_server, args=(handler,), daemon=True, name="ServerThread")
    server_thread.start()
    try:
        while not shutdown_event.wait(timeout=1):
            pass
    except KeyboardInterrupt:
        log.info("Interrupted by user, shutting down...")
    finally:
        shutdown_event.set()
        observer.stop()
        observer.join()
        try:
            handler.stop()
        except DevServerError as e:
            log.error(f"Server did not stop cleanly: {e}")
        server_thread.join(timeout=default_settings.GRACEFUL_SHUTDOWN_TIMEOUT + 1)

    return 0


if __name__ == "__main__":
    sys.exit(main())
