"""
Preflight checks run before any container is started.

- Required commands exist on PATH
- The project directory and composition descriptor exist
- Required TCP ports have no listener

The port check reads the current listening-socket table. It is best-effort:
a port can still be taken between this check and the launch. No port is
reserved.
"""

from __future__ import annotations

import logging
import re
import shutil
import socket
import subprocess
from pathlib import Path
from typing import Callable, Iterable, Optional

from .errors import DescriptorNotFoundError, MissingToolError, PortInUseError
from .models import PortCheckResult

logger = logging.getLogger(__name__)


class PreflightChecker:
    def __init__(
        self,
        which: Callable[[str], Optional[str]] = shutil.which,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        probe_host: str = '127.0.0.1',
    ) -> None:
        self._which = which
        self._run = run
        self._probe_host = probe_host

    def check_tools(self, names: Iterable[str]) -> None:
        for name in sorted(set(names)):
            path = self._which(name)
            if not path:
                raise MissingToolError(name)
            logger.debug(f"  Found {name}: {path}")
        logger.info("All required tools are available.")

    def check_compose_file(self, project_dir: Path, compose_file: str) -> Path:
        if not project_dir.is_dir():
            raise DescriptorNotFoundError(f"{project_dir} (project folder not found)")

        descriptor = Path(compose_file)
        if not descriptor.is_absolute():
            descriptor = project_dir / descriptor
        if not descriptor.is_file():
            raise DescriptorNotFoundError(str(descriptor))

        logger.info(f"Found composition descriptor: {descriptor}")
        return descriptor

    def listening_ports(self) -> Optional[set[int]]:
        """
        Return the set of locally bound TCP/UDP ports, or None if `ss` is unavailable.
        """
        try:
            result = self._run(['ss', '-tuln'], capture_output=True, text=True, timeout=10)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            logger.debug(f"ss unavailable ({e}), falling back to connect probe")
            return None

        if result.returncode != 0:
            logger.debug(f"ss exited with {result.returncode}, falling back to connect probe")
            return None

        return parse_ss_output(result.stdout)

    def _port_accepts_connections(self, port: int) -> bool:
        try:
            with socket.create_connection((self._probe_host, port), timeout=1):
                return True
        except OSError:
            return False

    def check_ports_free(self, ports: Iterable[int]) -> list[PortCheckResult]:
        ports = sorted(set(ports))
        if not ports:
            return []

        logger.info(f"Checking ports {', '.join(str(p) for p in ports)}...")
        bound = self.listening_ports()

        results = []
        for port in ports:
            if bound is None:
                in_use = self._port_accepts_connections(port)
            else:
                in_use = port in bound
            results.append(PortCheckResult(port=port, free=not in_use))
            if in_use:
                raise PortInUseError(port)

        logger.info("All needed ports are free.")
        return results


# Local address column forms: 0.0.0.0:80, [::]:80, *:80, 127.0.0.1%lo:53
_LOCAL_ADDRESS_PORT = re.compile(r":(\d+)$")


def parse_ss_output(output: str) -> set[int]:
    """
    Extract local ports from `ss -tuln` output.

    Columns: Netid State Recv-Q Send-Q Local-Address:Port Peer-Address:Port
    """
    ports = set()
    for line in output.splitlines():
        fields = line.split()
        if len(fields) < 5 or fields[0] == 'Netid':
            continue
        match = _LOCAL_ADDRESS_PORT.search(fields[4])
        if match:
            ports.add(int(match.group(1)))
    return ports
