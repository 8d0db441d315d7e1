"""Connectivity probe run once per host before any of its jobs."""

import logging
import socket
from dataclasses import dataclass

from .models import LOCAL_HOST

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    reachable: bool
    detail: str = ""


class ConnectivityProbe:
    """TCP connect check against a host's SSH port."""

    def check(self, host: str, port: int, timeout: float) -> ProbeResult:
        if host == LOCAL_HOST:
            return ProbeResult(True, "local filesystem")

        logger.debug("Probing %s:%d (timeout %.1fs)", host, port, timeout)
        try:
            with socket.create_connection((host, port), timeout=timeout):
                pass
        except socket.timeout:
            return ProbeResult(False, f"connection to {host}:{port} timed out after {timeout:g}s")
        except OSError as e:
            return ProbeResult(False, f"cannot connect to {host}:{port}: {e.strerror or e}")
        return ProbeResult(True, f"{host}:{port} reachable")
