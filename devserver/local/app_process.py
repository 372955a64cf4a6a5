import sys
import logging
import subprocess
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from devserver.log import child_logger


def get_popen_creation_flags() -> Dict[str, Any]:
    """
    Returns platform-specific keyword arguments for subprocess.Popen.

    On Windows, this uses flags to run the process without a console window.
    On other platforms the child gets its own session, so a Ctrl-C in the
    supervisor's terminal does not reach it directly and its whole tree can
    be stopped together.

    :return dict: A dictionary of keyword arguments for Popen.
    """
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP | subprocess.CREATE_NO_WINDOW}
    return {"start_new_session": True}


def get_program_command(exec_path: Path) -> List[str]:
    """
    Returns the command prefix needed to execute a program artifact.

    Python sources and bytecode run under the current interpreter, anything
    else is executed directly (with '.exe' appended on Windows).

    :param exec_path: The path to the artifact produced by the compiler.
    :return list: The command-line prefix, without program arguments.
    """
    if exec_path.suffix in (".py", ".pyc"):
        return [sys.executable, str(exec_path)]
    if sys.platform == "win32" and not exec_path.suffix:
        exec_path = exec_path.with_suffix(".exe")
    return [str(exec_path)]


def _read_pipe(pipe, process_name: str, log_level: int, line_handler: Optional[Callable[[str], None]] = None):
    """Read from a pipe and log each line."""
    proc_logger = child_logger(process_name)
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            if line_handler:
                line_handler(line)
            proc_logger.log(log_level, line)
    except (OSError, ValueError) as e:
        proc_logger.debug(f"Pipe reader for {process_name} stream exited: {e}")
    finally:
        pipe.close()


def log_process_output(
    process: subprocess.Popen,
    process_name: str,
    stderr_handler: Optional[Callable[[str], None]] = None
) -> List[threading.Thread]:
    """
    Reads a process's stdout/stderr in threads and logs the output.

    This function spawns background daemon threads to consume the output pipes
    of a subprocess, preventing the pipes from filling up and blocking the child
    process. It logs each line using a logger named after the process.

    :param process: The `subprocess.Popen` object to monitor.
    :param process_name: The logical name of the process for logging context.
    :param stderr_handler: An optional callable that also receives every stderr line.
    :return list: The started reader threads.
    """
    readers = []
    if process.stdout:
        readers.append(threading.Thread(
            target=_read_pipe,
            args=(process.stdout, process_name, logging.INFO),
            daemon=True
        ))
    if process.stderr:
        readers.append(threading.Thread(
            target=_read_pipe,
            args=(process.stderr, process_name, logging.WARNING, stderr_handler),
            daemon=True
        ))
    for reader in readers:
        reader.start()
    return readers
