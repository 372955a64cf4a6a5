import os
import psutil
import logging
import threading
import subprocess
from pathlib import Path
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

import devserver.settings as default_settings
from devserver.local.app_process import get_popen_creation_flags, get_program_command, log_process_output
from devserver.local.errors import PortConflictError, ProcessExitError, ProcessRunError, ProcessStopError

log = logging.getLogger(__name__)

_ADDRESS_IN_USE_MARKERS = ("address already in use", "errno 98", "errno 48", "winerror 10048")


#* --- Process Shutdown ---
def _collect_process_tree(pid: int) -> List[psutil.Process]:
    """Returns the process and all of its descendants that still exist."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return []
    try:
        children = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        children = []
    return [parent, *children]


def terminate_process_tree(pid: int, timeout: float = default_settings.PROCESS_STOP_TIMEOUT) -> None:
    """
    Sends SIGTERM to a process tree and force-kills whatever survives the timeout.

    :param pid: The root process ID.
    :param timeout: Seconds to wait for a graceful exit.
    :raises psutil.AccessDenied: If the processes cannot be signalled.
    """
    procs = _collect_process_tree(pid)
    for proc in procs:
        try:
            proc.terminate()
        except psutil.NoSuchProcess:
            continue

    _, alive = psutil.wait_procs(procs, timeout=timeout)
    if not alive:
        return

    log.warning(f"{len(alive)} processes did not terminate gracefully. Forcing shutdown...")
    for proc in alive:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            continue
    psutil.wait_procs(alive, timeout=timeout)


#* --- Process Runner ---
class ProcessRunner:
    """
    Runs the compiled application as a single child process.

    Only one child is managed at a time: `run` stops any previous child first.
    """

    def __init__(
        self,
        exec_path: Path,
        working_dir: Path,
        run_arguments: Optional[Callable[[], List[str]]] = None,
        env: Optional[Dict[str, str]] = None,
        name: str = "app",
        port: str = "",
        startup_window: float = default_settings.PROCESS_STARTUP_WINDOW,
        stop_timeout: float = default_settings.PROCESS_STOP_TIMEOUT,
    ) -> None:
        self.exec_path = Path(exec_path)
        self.working_dir = Path(working_dir)
        self.run_arguments = run_arguments or (lambda: [])
        self.env = env or {}
        self.name = name
        self.port = port
        self.startup_window = startup_window
        self.stop_timeout = stop_timeout
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._stopping: Optional[subprocess.Popen] = None
        self._readers: List[threading.Thread] = []
        self._stderr_tail: Deque[str] = deque(maxlen=default_settings.STDERR_TAIL_LINES)

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    def is_running(self) -> bool:
        process = self._process
        return process is not None and process.poll() is None

    def run(self) -> None:
        """
        Launches the program and watches it briefly for an immediate exit.

        :raises ProcessRunError: If the program cannot be started.
        :raises ProcessExitError: If it exits within the startup window.
        :raises PortConflictError: If it exits reporting an address already in use.
        """
        with self._lock:
            if self._process is not None and self._process.poll() is None:
                self._stop_locked()

            args = [*get_program_command(self.exec_path), *self.run_arguments()]
            env = {**os.environ, **self.env}
            self._stderr_tail.clear()
            log.info(f"Starting process: {self.name}...")
            try:
                process = subprocess.Popen(
                    args, stdout=subprocess.PIPE, stderr=subprocess.PIPE, stdin=subprocess.DEVNULL,
                    cwd=str(self.working_dir.resolve()), env=env, **get_popen_creation_flags()
                )
            except OSError as e:
                raise ProcessRunError(f"failed to start {self.exec_path.name}: {e}") from e

            self._readers = log_process_output(process, self.name, self._stderr_tail.append)
            self._process = process
            threading.Thread(
                target=self._watch_exit, args=(process,), daemon=True, name=f"{self.name}-exit-watcher"
            ).start()

        try:
            process.wait(timeout=self.startup_window)
        except subprocess.TimeoutExpired:
            log.info(f"{self.name.capitalize()} started successfully with PID: {process.pid}")
            return
        self.raise_for_exit()

    def raise_for_exit(self) -> None:
        """
        Raises the error describing why the current child is no longer running.

        Does nothing while the child is alive.
        """
        process = self._process
        if process is None or process.poll() is None:
            return

        # Let the readers drain whatever the child wrote before exiting.
        for reader in self._readers:
            reader.join(timeout=1)
        detail = "\n".join(self._stderr_tail)
        if any(marker in detail.lower() for marker in _ADDRESS_IN_USE_MARKERS):
            raise PortConflictError(self.port or self.name, detail.splitlines()[-1])
        message = f"{self.exec_path.name} exited with status {process.returncode}"
        if detail:
            message = f"{message}: {detail}"
        raise ProcessExitError(message, process.returncode)

    def stop(self) -> None:
        """
        Stops the running child and its descendants, if any.

        :raises ProcessStopError: If the process tree cannot be signalled.
        """
        with self._lock:
            self._stop_locked()

    def _stop_locked(self) -> None:
        process = self._process
        if process is None:
            return
        if process.poll() is None:
            log.debug(f"Stopping {self.name} (PID {process.pid})")
            self._stopping = process
            try:
                terminate_process_tree(process.pid, self.stop_timeout)
            except psutil.Error as e:
                raise ProcessStopError(f"could not stop {self.name} (PID {process.pid}): {e}") from e
            process.wait()
        self._process = None

    def _watch_exit(self, process: subprocess.Popen) -> None:
        """Reports children that exit on their own."""
        returncode = process.wait()
        if process is self._stopping:
            log.debug(f"{self.name.capitalize()} (PID {process.pid}) stopped with status {returncode}.")
            return
        error = ProcessExitError(f"{self.name} exited with status {returncode}", returncode)
        if error.benign or returncode == 0:
            log.debug(f"{self.name.capitalize()} (PID {process.pid}) exited with status {returncode}.")
        else:
            log.warning(f"{self.name.capitalize()} (PID {process.pid}) exited unexpectedly with status {returncode}.")
