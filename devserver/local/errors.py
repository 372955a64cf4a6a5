"""
Exceptions raised by the server lifecycle.

Every error carries the phase it occurred in so callers can tell a process
that would not die apart from code that does not compile or a port that is
already taken.
"""
import signal
from typing import Optional

# Termination signals that are expected while a child is being restarted.
BENIGN_SIGNALS = {
    getattr(signal, name) for name in ("SIGKILL", "SIGTERM", "SIGINT") if hasattr(signal, name)
}


class DevServerError(Exception):
    """Base class for all lifecycle failures."""
    phase = "server"

    def __init__(self, message: str, phase: Optional[str] = None) -> None:
        super().__init__(message)
        if phase:
            self.phase = phase

    def __str__(self) -> str:
        return f"[{self.phase}] {super().__str__()}"


class GenerationError(DevServerError):
    """The scaffold file could not be written."""
    phase = "generate"


class CompileError(DevServerError):
    """The application source failed to compile."""
    phase = "compile"


class ProcessStopError(DevServerError):
    """A running server could not be stopped."""
    phase = "stop"


class ProcessRunError(DevServerError):
    """A server could not be launched."""
    phase = "run"


class ProcessExitError(ProcessRunError):
    """A freshly launched child exited before it was ready."""

    def __init__(self, message: str, returncode: Optional[int]) -> None:
        super().__init__(message)
        self.returncode = returncode

    @property
    def benign(self) -> bool:
        """True when the child was terminated by an expected signal."""
        return self.returncode is not None and self.returncode < 0 and -self.returncode in BENIGN_SIGNALS


class PortConflictError(ProcessRunError):
    """The listening port is held by another process."""

    def __init__(self, port: str, detail: str = "") -> None:
        message = f"port {port} is already in use"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.port = port


def is_benign_termination(error: BaseException) -> bool:
    """Returns True for errors that are expected noise during a restart."""
    return isinstance(error, ProcessExitError) and error.benign
