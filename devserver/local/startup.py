import time
import socket
import logging
from typing import Callable, Optional

import devserver.settings as default_settings

log = logging.getLogger(__name__)


def port_in_use(port: str, host: str = default_settings.APP_HOST) -> bool:
    """
    Checks whether another socket is already listening on the port.

    :param port: The TCP port to test.
    :param host: The address the server will bind to.
    :return: True if binding the port fails because it is taken.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        # Match the servers' own option so lingering TIME_WAIT sockets are not reported.
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, int(port)))
        except OSError:
            return True
    return False


def wait_for_port(
    port: str,
    timeout: float = default_settings.PORT_READY_TIMEOUT,
    is_alive: Optional[Callable[[], bool]] = None,
    host: str = default_settings.PROBE_HOST,
) -> bool:
    """
    Waits for a server to become responsive on its port.

    :param port: The TCP port to probe.
    :param timeout: Seconds to wait before giving up.
    :param is_alive: Optional callable; waiting stops early when it returns False.
    :param host: The address to connect to.
    :return: True if the server is up, False if it timed out or died.
    """
    start_time = time.monotonic()
    while time.monotonic() - start_time < timeout:
        if is_alive is not None and not is_alive():
            return False
        try:
            with socket.create_connection((host, int(port)), timeout=1):
                log.debug(f"Server is up and listening on port {port}.")
                return True
        except OSError:
            time.sleep(0.1)
    log.warning(f"Server did not become available on port {port} after {timeout} seconds.")
    return False
