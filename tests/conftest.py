import socket
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import pytest
import requests

from devserver.local.config import Config


def _free_port() -> str:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return str(sock.getsockname()[1])


def wait_for_http(url: str, timeout: float = 10.0) -> Optional[requests.Response]:
    """Polls a URL until it answers or the timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            return requests.get(url, timeout=1)
        except requests.ConnectionError:
            time.sleep(0.1)
    return None


def port_is_free(port: str) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(("0.0.0.0", int(port)))
        except OSError:
            return False
    return True


@pytest.fixture
def free_port() -> str:
    return _free_port()


@pytest.fixture
def make_config(tmp_path: Path, free_port: str) -> Callable[..., Config]:
    """Builds a Config rooted in the test's temporary directory."""

    def factory(**overrides) -> Config:
        values = {
            "app_root_dir": str(tmp_path),
            "source_dir": "web",
            "output_dir": "build",
            "public_dir": "web/public",
            "main_input_file": "main.py",
            "app_port": free_port,
            "shutdown_event": threading.Event(),
        }
        values.update(overrides)
        return Config(**values)

    return factory


@pytest.fixture
def write_source(tmp_path: Path) -> Callable[[str, str], Path]:
    """Writes a file below <tmp>/web and returns its path."""

    def writer(content: str, name: str = "main.py") -> Path:
        path = tmp_path / "web" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return writer


# A minimal stdlib HTTP server the external strategy can compile and run.
# Every request answers with the value of MESSAGE.
HTTP_APP = '''
import sys
from http.server import BaseHTTPRequestHandler, HTTPServer

MESSAGE = "{message}"


class Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        body = MESSAGE.encode()
        self.send_response(200)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, *args):
        pass


HTTPServer.allow_reuse_address = True
HTTPServer(("0.0.0.0", {port}), Handler).serve_forever()
'''


def http_app(port: str, message: str = "hello") -> str:
    return HTTP_APP.format(port=int(port), message=message)
