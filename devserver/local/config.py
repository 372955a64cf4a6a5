import logging
import threading
from pathlib import Path
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Dict, List, Optional

import devserver.settings as default_settings

log = logging.getLogger(__name__)

ArgumentProvider = Callable[[], List[str]]
RouteRegistrar = Callable[[Any], None]  # Receives a starlette.routing.Router


def _no_arguments() -> List[str]:
    return []


@dataclass(frozen=True)
class Config:
    """
    Immutable input for the ServerHandler.

    All fields are optional; `resolve_config` replaces any missing or empty
    value with its default from `settings.py` rather than rejecting it.
    """
    app_root_dir: str = ""                                # e.g. /home/user/project
    source_dir: str = ""                                  # location of main.py, relative to app_root_dir
    output_dir: str = ""                                  # compilation and execution directory, relative to app_root_dir
    public_dir: str = ""                                  # public assets served by the generated server
    main_input_file: str = ""                             # e.g. main.py or server.py
    app_port: str = ""                                    # e.g. 8080
    compile_arguments: Optional[ArgumentProvider] = None  # interpreter options, e.g. ["-O"]
    run_arguments: Optional[ArgumentProvider] = None      # arguments passed to the program, e.g. ["dev"]
    logger: Optional[logging.Logger] = None
    shutdown_event: Optional[threading.Event] = None      # global signal to stop everything
    routes: Optional[List[RouteRegistrar]] = None         # route registration for the embedded server

    @property
    def root(self) -> Path:
        return Path(self.app_root_dir)

    @property
    def main_file_path(self) -> Path:
        return self.root / self.source_dir / self.main_input_file


def default_values() -> Dict[str, Any]:
    """Returns the default value for every Config field."""
    return {
        "app_root_dir": default_settings.APP_ROOT_DIR,
        "source_dir": default_settings.SOURCE_DIR,
        "output_dir": default_settings.OUTPUT_DIR,
        "public_dir": default_settings.PUBLIC_DIR,
        "main_input_file": default_settings.MAIN_INPUT_FILE,
        "app_port": default_settings.APP_PORT,
        "compile_arguments": _no_arguments,
        "run_arguments": _no_arguments,
        "logger": logging.getLogger("devserver.server"),
        "shutdown_event": threading.Event(),
        "routes": None,
    }


def resolve_config(config: Optional[Config] = None) -> Config:
    """
    Returns a new Config with every missing or empty field filled in.

    The given instance is never modified. Non-string ports are coerced to str.

    :param config: A partially populated Config, or None for all defaults.
    :return Config: A fully populated Config.
    """
    defaults = default_values()
    if config is None:
        return Config(**defaults)

    filled: Dict[str, Any] = {}
    for field in fields(Config):
        value = getattr(config, field.name)
        if field.name == "routes":
            continue
        if value is None or value == "":
            filled[field.name] = defaults[field.name]
            log.debug(f"Config field '{field.name}' not set, using default.")

    if not isinstance(config.app_port, str) and config.app_port is not None:
        filled["app_port"] = str(config.app_port)

    return replace(config, **filled)
