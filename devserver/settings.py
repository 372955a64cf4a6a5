"""
This module contains the default configuration settings for devserver.
It defines paths, ports, timeouts and the layout of the supervised application.
Values can be overridden through environment variables or a .env file.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Scaffold Template ---
SERVER_TEMPLATE_NAME = "server_basic.md"

#* --- Application Layout (relative to APP_ROOT_DIR) ---
APP_ROOT_DIR = os.getenv("DEVSERVER_ROOT", ".")
SOURCE_DIR = os.getenv("DEVSERVER_SOURCE_DIR", "web")
OUTPUT_DIR = os.getenv("DEVSERVER_OUTPUT_DIR", "web")
PUBLIC_DIR = os.getenv("DEVSERVER_PUBLIC_DIR", "web/public")
MAIN_INPUT_FILE = os.getenv("DEVSERVER_MAIN_FILE", "main.py")

#* --- Web Server Settings ---
APP_HOST = os.getenv("DEVSERVER_HOST", "0.0.0.0")
APP_PORT = os.getenv("DEVSERVER_PORT", "8080")
PROBE_HOST = "127.0.0.1"  # Used for readiness checks against APP_HOST

#* --- Supervisor Settings ---
GRACEFUL_SHUTDOWN_TIMEOUT = 5.0  # seconds for the embedded server to drain
RESTART_GRACE_SECONDS = 0.1      # pause between stopping and recompiling
COMPILE_TIMEOUT = 30.0           # seconds before a compilation is abandoned
PROCESS_STOP_TIMEOUT = 5.0       # seconds before force-killing a child
PROCESS_STARTUP_WINDOW = 0.3     # seconds to watch a fresh child for an immediate exit
PORT_READY_TIMEOUT = float(os.getenv("DEVSERVER_PORT_READY_TIMEOUT", "10"))
STDERR_TAIL_LINES = 20

#* --- File Watching ---
SUPPORTED_EXTENSIONS = [".py"]
WATCHDOG_DEBOUNCE_SECONDS = 0.2

#* --- Mode Persistence ---
MODE_STORE_PATH = pathlib.Path(os.getenv("DEVSERVER_STATE_FILE", ".devserver/state.json"))

#* --- Application variables ---
VERBOSE_LOGGING = os.getenv("DEVSERVER_VERBOSE", "False").lower() in ('true', '1', 't')
PROCESS_TITLE = "DevServer - Supervisor"
