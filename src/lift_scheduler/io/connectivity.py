"""Connectivity probes."""

import logging
import socket

logger = logging.getLogger(__name__)


class StaticProbe:
    """Probe with a fixed answer; flip ``available`` to simulate network changes."""

    def __init__(self, available: bool = True):
        self.available = available

    def is_network_available(self) -> bool:
        return self.available


class TcpProbe:
    """
    Reports the network as available when a TCP connection to host:port opens.

    Args:
        host: Host to reach (defaults to a public DNS resolver)
        port: TCP port
        timeout: Connect timeout in seconds
    """

    def __init__(self, host: str = "1.1.1.1", port: int = 53, timeout: float = 2.0):
        self.host = host
        self.port = port
        self.timeout = timeout

    def is_network_available(self) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError as e:
            logger.debug("Connectivity probe to %s:%d failed: %s", self.host, self.port, e)
            return False
