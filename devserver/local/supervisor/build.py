import sys
import logging
import subprocess
from pathlib import Path
from typing import Callable, List, Optional

import devserver.settings as default_settings
from devserver.local.errors import CompileError

log = logging.getLogger(__name__)

# Runs in the child interpreter: argv[1] is the source, argv[2] the artifact.
_COMPILE_SNIPPET = "import py_compile, sys; py_compile.compile(sys.argv[1], cfile=sys.argv[2], doraise=True)"


class Compiler:
    """
    Compiles the application entry file into a bytecode artifact.

    Compilation runs in a separate interpreter so that compile arguments
    (interpreter options such as '-O') apply and a hung build can be abandoned.
    """

    def __init__(
        self,
        main_file: Path,
        output_dir: Path,
        out_name: str,
        compile_arguments: Optional[Callable[[], List[str]]] = None,
        timeout: float = default_settings.COMPILE_TIMEOUT,
    ) -> None:
        self.main_file = Path(main_file)
        self.output_dir = Path(output_dir)
        self.out_name = out_name
        self.compile_arguments = compile_arguments or (lambda: [])
        self.timeout = timeout

    @property
    def output_path(self) -> Path:
        return self.output_dir / f"{self.out_name}.pyc"

    def unobserved_files(self) -> List[str]:
        """Build artifacts that file watchers should ignore."""
        return [str(self.output_path)]

    def compile(self) -> None:
        """
        Compiles the main file into `output_path`.

        :raises CompileError: If the source does not compile or the build times out.
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        cmd = [
            sys.executable, *self.compile_arguments(),
            "-c", _COMPILE_SNIPPET,
            str(self.main_file), str(self.output_path),
        ]
        log.debug(f"Compiling {self.main_file} -> {self.output_path}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout, check=False)
        except subprocess.TimeoutExpired as e:
            raise CompileError(f"compilation of {self.main_file.name} timed out after {self.timeout}s") from e
        except OSError as e:
            raise CompileError(f"could not start the compiler: {e}") from e

        if result.returncode != 0:
            detail = result.stderr.strip().splitlines()
            message = "\n".join(detail[-default_settings.STDERR_TAIL_LINES:]) or f"exit status {result.returncode}"
            raise CompileError(f"{self.main_file.name}: {message}")
