import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional

from devserver.converter.generator import Generator, TemplateData
from devserver.local.config import Config, resolve_config
from devserver.local.errors import DevServerError, is_benign_termination
from devserver.local.supervisor.strategies import (
    EmbeddedStrategy, ExternalProcessStrategy, ServerMode, ServerStrategy,
)
import devserver.settings as default_settings

ProgressCallback = Callable[[str], None]

_STRATEGIES = {
    ServerMode.EMBEDDED: EmbeddedStrategy,
    ServerMode.EXTERNAL: ExternalProcessStrategy,
}


def _no_progress(message: str) -> None:
    return None


class ServerHandler:
    """
    Supervises the application server during development.

    Holds exactly one active strategy. The current mode is always read from
    the active strategy itself, so mode and behavior cannot diverge. Mode
    switches and stops are serialized by a single lock.
    """
    name = "SERVER"

    def __init__(self, config: Optional[Config] = None) -> None:
        """
        Resolves the configuration and picks the initial strategy.

        The external strategy is chosen when the main source file already
        exists, the embedded one otherwise.

        :param config: A partially populated Config, or None for all defaults.
        """
        self.config = resolve_config(config)
        self.log: logging.Logger = self.config.logger
        self._lock = threading.RLock()
        self._relay_thread: Optional[threading.Thread] = None

        self.generator = Generator(
            self.config.main_file_path,
            TemplateData(port=self.config.app_port, public_dir=self.config.public_dir),
            logger=self.log,
        )

        if self.config.main_file_path.exists():
            self._strategy: ServerStrategy = ExternalProcessStrategy(self)
            self.log.info("Found existing server file, using External Process strategy.")
        else:
            self._strategy = EmbeddedStrategy(self)
            self.log.info("No existing server file, defaulting to Embedded strategy.")

    @property
    def strategy(self) -> ServerStrategy:
        return self._strategy

    @property
    def mode(self) -> ServerMode:
        return self._strategy.mode

    @property
    def external(self) -> bool:
        return self.mode is ServerMode.EXTERNAL

    def main_input_file_relative_path(self) -> Path:
        """Returns the main file path relative to the app root (e.g. 'web/main.py')."""
        return Path(self.config.source_dir) / self.config.main_input_file

    def supported_extensions(self) -> List[str]:
        return list(default_settings.SUPPORTED_EXTENSIONS)

    def unobserved_files(self) -> List[str]:
        """Returns the files that file watchers should not track."""
        strategy = self._strategy
        if isinstance(strategy, ExternalProcessStrategy):
            return strategy.compiler.unobserved_files()
        return []

    #* --- Lifecycle ---
    def _ensure_shutdown_relay(self) -> None:
        """Starts the thread that turns the shared shutdown signal into a stop."""
        with self._lock:
            if self._relay_thread is not None:
                return
            self._relay_thread = threading.Thread(
                target=self._relay_shutdown, daemon=True, name="ShutdownRelayThread"
            )
            self._relay_thread.start()

    def _relay_shutdown(self) -> None:
        self.config.shutdown_event.wait()
        self.log.info("Shutdown signal received, stopping server.")
        try:
            self.stop()
        except DevServerError as e:
            self.log.error(f"Stopping server on shutdown failed: {e}")

    def _prepare(self, strategy: ServerStrategy) -> None:
        """Generates the scaffold once before the external strategy first runs."""
        if strategy.mode is ServerMode.EXTERNAL and not self.config.main_file_path.exists():
            self.generator.generate()

    def start(self) -> None:
        """
        Starts the active strategy.

        Blocks until cancelled in embedded mode; returns once the child is
        running in external mode. Returns at once if the shutdown signal has
        already fired.

        :raises DevServerError: If generation, compilation or launch fails.
        """
        self._ensure_shutdown_relay()
        if self.config.shutdown_event.is_set():
            self.log.info("Shutdown already requested, not starting server.")
            return
        strategy = self._strategy
        try:
            self._prepare(strategy)
            strategy.start()
        except DevServerError as e:
            if not is_benign_termination(e):
                self.log.error(f"{strategy.name} server failed to start: {e}")
            raise

    def stop(self) -> None:
        """
        Stops the active strategy.

        :raises ProcessStopError: If the running server cannot be stopped.
        """
        with self._lock:
            self._strategy.stop()

    def set_mode(self, external: bool, progress: Optional[ProgressCallback] = None) -> None:
        """
        Switches between the embedded and external strategies.

        The old strategy is fully stopped before the new one starts. If the
        old one cannot be stopped, or the scaffold cannot be generated, the old
        strategy stays active. If the new one fails to start it stays active
        (stopped) and the error is raised; the next start or source change
        retries it.

        :param external: True for the external process, False for embedded.
        :param progress: Optional callable receiving a message for each step.
        :raises DevServerError: If stopping, generating or starting fails.
        """
        report = progress or _no_progress
        target = ServerMode.EXTERNAL if external else ServerMode.EMBEDDED
        self._ensure_shutdown_relay()
        with self._lock:
            if self._strategy.mode is target:
                self.log.debug(f"Server already in {target.value} mode.")
                report(f"Server is already in {target.value} mode.")
                return
            if self.config.shutdown_event.is_set():
                self.log.info(f"Shutdown already requested, not switching to {target.value} mode.")
                report("Shutdown already requested.")
                return

            self.log.info(f"Switching to {target.value} server mode...")
            current = self._strategy
            report(f"Stopping {current.name} Server...")
            try:
                current.stop()
            except DevServerError as e:
                self.log.error(f"Could not stop {current.name} server, staying in {current.mode.value} mode: {e}")
                report(f"Failed to stop {current.name} server: {e}")
                raise

            strategy = _STRATEGIES[target](self)
            if strategy.mode is ServerMode.EXTERNAL and not self.config.main_file_path.exists():
                report("Generating server files...")
                try:
                    self.generator.generate()
                except DevServerError as e:
                    self.log.error(f"Could not generate server files, staying in {current.mode.value} mode: {e}")
                    report(f"Failed to generate server files: {e}")
                    raise

            report(f"Switching to {strategy.name} Strategy...")
            self._strategy = strategy

            report(f"Starting {strategy.name} Server...")
            try:
                strategy.launch()
            except DevServerError as e:
                self.log.error(f"{strategy.name} server failed to start: {e}")
                report(f"Failed to start {strategy.name} server: {e}")
                raise

            if isinstance(strategy, EmbeddedStrategy):
                threading.Thread(
                    target=strategy.serve_until_cancelled, daemon=True, name="EmbeddedServeThread"
                ).start()
            self.log.info(f"Server switched to {target.value} mode.")
            report(f"Server successfully switched to {target.value} mode.")

    def create_template_server(self, progress: Optional[ProgressCallback] = None) -> None:
        """
        Turns the embedded server into a permanent external one.

        Generates the starter source file if it is missing, then compiles
        and runs it, reporting each step to `progress`.

        :raises DevServerError: If any step fails; `progress` receives the failed step first.
        """
        self.set_mode(True, progress)

    def handle_file_event(self, file_name: str, extension: str, file_path: str, event: str) -> None:
        """
        Forwards a file change to the active strategy.

        :param event: One of 'create', 'write', 'remove', 'rename'.
        """
        self._strategy.handle_file_event(file_name, extension, file_path, event)
