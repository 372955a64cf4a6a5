import os
import abc
import enum
import time
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import devserver.settings as default_settings
from devserver.local.errors import DevServerError, PortConflictError, is_benign_termination
from devserver.local.startup import port_in_use, wait_for_port
from devserver.local.supervisor.build import Compiler
from devserver.local.supervisor.process_utils import ProcessRunner
from devserver.web.server import EmbeddedServer, build_app

if TYPE_CHECKING:
    from .supervisor import ServerHandler


class ServerMode(enum.Enum):
    EMBEDDED = "embedded"
    EXTERNAL = "external"


class ServerStrategy(abc.ABC):
    """
    One way of running the application.

    Every instance owns a private cancellation token; the ServerHandler sets
    it (through `stop`) when the application as a whole shuts down.
    """
    mode: ServerMode
    name: str

    def __init__(self, handler: "ServerHandler") -> None:
        self.handler = handler
        self.config = handler.config
        self.log = handler.log
        self.cancelled = threading.Event()

    @abc.abstractmethod
    def start(self) -> None:
        ...

    @abc.abstractmethod
    def stop(self) -> None:
        ...

    @abc.abstractmethod
    def restart(self) -> bool:
        ...

    @abc.abstractmethod
    def handle_file_event(self, file_name: str, extension: str, file_path: str, event: str) -> None:
        ...

    def launch(self) -> None:
        """Starts the strategy without blocking the caller."""
        self.start()

    def _rearm(self) -> bool:
        """
        Clears the cancellation token for a new start.

        The token is set again at once if the shared shutdown signal has
        already fired, since nothing would be left to relay it.

        :return: False if the strategy must not start.
        """
        self.cancelled.clear()
        if self.config.shutdown_event.is_set():
            self.cancelled.set()
            self.log.info(f"Shutdown already requested, not starting the {self.name} server.")
            return False
        return True


#* --- Embedded Strategy ---
class EmbeddedStrategy(ServerStrategy):
    """Runs the application in-process from the configured route table."""
    mode = ServerMode.EMBEDDED
    name = "Embedded"

    def __init__(self, handler: "ServerHandler") -> None:
        super().__init__(handler)
        self._lock = threading.Lock()
        self._server: Optional[EmbeddedServer] = None

    @property
    def running(self) -> bool:
        return self._server is not None

    def launch(self) -> None:
        """
        Binds the listener and serves on a background thread.

        :raises PortConflictError: If the port is already taken.
        :raises ProcessRunError: If the server does not come up.
        """
        with self._lock:
            if self._server is not None:
                return
            if not self._rearm():
                return
            server = EmbeddedServer(build_app(self.config.routes), self.config.app_port)
            self.log.info(f"Starting embedded server on port: {self.config.app_port}")
            server.start()
            self._server = server

    def serve_until_cancelled(self) -> None:
        """Blocks until the cancellation token fires, then shuts down."""
        self.cancelled.wait()
        self.stop()

    def start(self) -> None:
        """Launches the server and blocks until it is cancelled."""
        self.launch()
        self.serve_until_cancelled()

    def stop(self) -> None:
        self.cancelled.set()
        with self._lock:
            server = self._server
            if server is None:
                return
            server.shutdown()
            self._server = None
        self.log.info("Embedded server stopped")

    def restart(self) -> bool:
        # The embedded application has no source of its own to rebuild.
        return False

    def handle_file_event(self, file_name: str, extension: str, file_path: str, event: str) -> None:
        return None


#* --- External Strategy ---
class ExternalProcessStrategy(ServerStrategy):
    """
    Compiles the application source and runs it as a child process.

    Start, stop and restart are serialized by a lifecycle lock. A restart
    requested while another is in flight is coalesced into a single extra
    cycle that runs once the current one finishes.
    """
    mode = ServerMode.EXTERNAL
    name = "External Process"

    def __init__(self, handler: "ServerHandler") -> None:
        super().__init__(handler)
        config = self.config
        main_file = config.main_file_path
        output_dir = config.root / config.output_dir

        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.log.error(f"Error creating output directory: {e}")

        self.compiler = Compiler(
            main_file=main_file,
            output_dir=output_dir,
            out_name=Path(config.main_input_file).stem,
            compile_arguments=config.compile_arguments,
        )
        self.runner = ProcessRunner(
            exec_path=self.compiler.output_path,
            working_dir=output_dir,
            run_arguments=config.run_arguments,
            env={
                "DEVSERVER_APP_ROOT": str(config.root.resolve()),
                "PYTHONPATH": os.pathsep.join(
                    p for p in (str((config.root / config.source_dir).resolve()), os.environ.get("PYTHONPATH", "")) if p
                ),
            },
            name="app",
            port=config.app_port,
        )
        self._lifecycle_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._restarting = False
        self._restart_pending = False

    def start(self) -> None:
        """
        Compiles, then runs. Always both, so the child reflects the latest source.

        :raises CompileError: If the source does not compile.
        :raises ProcessRunError: If the program cannot be launched or exits early.
        """
        with self._lifecycle_lock:
            if not self._rearm():
                return
            self._compile_and_run(stop_first=False)

    def stop(self) -> None:
        """
        Stops the child. Restarts requested afterwards are ignored until the next start.

        :raises ProcessStopError: If the child cannot be stopped.
        """
        self.cancelled.set()
        with self._lifecycle_lock:
            self.runner.stop()

    def restart(self) -> bool:
        """
        Stops the child, pauses briefly, recompiles and relaunches.

        If a restart is already in flight this call only schedules one more
        cycle and returns immediately. A compile failure leaves no child running.

        :return: False if the request was folded into a restart already in flight,
            or ignored because the strategy was stopped.
        :raises DevServerError: The failure of the last cycle, tagged with its phase.
        """
        with self._state_lock:
            if self._restarting:
                self._restart_pending = True
                self.log.info("Restart already in progress, another one will follow it")
                return False
            self._restarting = True

        error: Optional[DevServerError] = None
        restarted = False
        try:
            while True:
                try:
                    restarted = self._restart_once()
                    error = None
                except DevServerError as e:
                    error = e
                with self._state_lock:
                    if not self._restart_pending or self.cancelled.is_set():
                        break
                    self._restart_pending = False
        finally:
            with self._state_lock:
                self._restarting = False
                self._restart_pending = False

        if error is not None:
            raise error
        return restarted

    def _restart_once(self) -> bool:
        with self._lifecycle_lock:
            if self.cancelled.is_set():
                self.log.debug("External server was stopped, ignoring restart")
                return False
            self._compile_and_run(stop_first=True)
            self.log.info("Rebooted")
            return True

    def _compile_and_run(self, stop_first: bool) -> None:
        """Runs the stop/compile/run sequence. Must hold the lifecycle lock."""
        try:
            if stop_first:
                self.runner.stop()
                # Let the OS release the previous process's sockets and handles.
                time.sleep(default_settings.RESTART_GRACE_SECONDS)

            self.compiler.compile()

            if not stop_first:
                self.runner.stop()
            if port_in_use(self.config.app_port):
                raise PortConflictError(self.config.app_port)

            self.runner.run()
            if not wait_for_port(self.config.app_port, is_alive=self.runner.is_running):
                self.runner.raise_for_exit()
        except DevServerError as e:
            if is_benign_termination(e):
                self.log.debug(f"Server terminated during startup: {e}")
            else:
                self.log.error(f"Server failed: {e}")
            raise

        self.log.info(f"Started: {self.handler.main_input_file_relative_path()} Port: {self.config.app_port}")

    def handle_file_event(self, file_name: str, extension: str, file_path: str, event: str) -> None:
        """
        Restarts on writes; starts when the main file is created, unless stopped.

        :raises DevServerError: If the triggered start or restart fails.
        """
        if event == "write":
            self.log.info("Source file modified, restarting external server ...")
            try:
                restarted = self.restart()
            except DevServerError:
                self.log.info("Restart failed, waiting for the next change")
                raise
            if restarted:
                self.log.info("Restart succeeded")
        elif event == "create" and file_name == self.config.main_input_file:
            if self.cancelled.is_set():
                self.log.debug(f"External server was stopped, ignoring creation of {file_name}")
                return
            self.log.info(f"{file_name} created, starting external server ...")
            self.start()
