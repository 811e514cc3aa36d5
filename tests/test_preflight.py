"""
Preflight checker tests.
"""

import socket
import subprocess
from pathlib import Path
from unittest.mock import Mock

import pytest
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from stackup.errors import DescriptorNotFoundError, MissingToolError, PortInUseError  # noqa: E402
from stackup.models import PortCheckResult  # noqa: E402
from stackup.preflight import PreflightChecker, parse_ss_output  # noqa: E402


SS_OUTPUT = """\
Netid State  Recv-Q Send-Q Local Address:Port  Peer Address:Port Process
udp   UNCONN 0      0      127.0.0.53%lo:53         0.0.0.0:*
tcp   LISTEN 0      4096         0.0.0.0:8080       0.0.0.0:*
tcp   LISTEN 0      511             [::]:443           [::]:*
tcp   LISTEN 0      128                *:5000             *:*
"""


def _ss(stdout: str = SS_OUTPUT, returncode: int = 0) -> Mock:
    return Mock(return_value=Mock(returncode=returncode, stdout=stdout, stderr=""))


class TestCheckTools:
    def test_all_tools_present(self):
        checker = PreflightChecker(which=lambda name: f"/usr/bin/{name}")

        checker.check_tools(["docker", "ss"])

    def test_missing_tool_raises(self):
        checker = PreflightChecker(which=lambda name: None if name == "docker" else f"/usr/bin/{name}")

        with pytest.raises(MissingToolError) as exc_info:
            checker.check_tools(["curl", "docker"])

        assert exc_info.value.name == "docker"
        assert "MissingToolError{docker}" in str(exc_info.value)

    def test_empty_tool_list(self):
        which = Mock()
        PreflightChecker(which=which).check_tools([])

        which.assert_not_called()


class TestCheckComposeFile:
    def test_finds_descriptor(self, tmp_path):
        (tmp_path / "docker-compose.yml").write_text("services: {}\n")

        path = PreflightChecker().check_compose_file(tmp_path, "docker-compose.yml")

        assert path == tmp_path / "docker-compose.yml"

    def test_missing_descriptor(self, tmp_path):
        with pytest.raises(DescriptorNotFoundError) as exc_info:
            PreflightChecker().check_compose_file(tmp_path, "docker-compose.yml")

        assert "docker-compose.yml" in exc_info.value.path

    def test_missing_project_folder(self, tmp_path):
        with pytest.raises(DescriptorNotFoundError):
            PreflightChecker().check_compose_file(tmp_path / "nope", "docker-compose.yml")

    def test_absolute_descriptor_path(self, tmp_path):
        compose = tmp_path / "elsewhere.yml"
        compose.write_text("services: {}\n")

        assert PreflightChecker().check_compose_file(tmp_path, str(compose)) == compose


class TestParseSsOutput:
    def test_extracts_local_ports(self):
        assert parse_ss_output(SS_OUTPUT) == {53, 8080, 443, 5000}

    def test_ignores_header_and_short_lines(self):
        assert parse_ss_output("Netid State Recv-Q Send-Q Local Peer\n\ngarbage\n") == set()

    def test_does_not_match_peer_column(self):
        output = "tcp ESTAB 0 0 10.0.0.2:41234 10.0.0.9:80\n"

        assert parse_ss_output(output) == {41234}


class TestCheckPortsFree:
    def test_all_ports_free(self):
        checker = PreflightChecker(run=_ss())

        results = checker.check_ports_free([80, 3000])

        assert results == [PortCheckResult(80, True), PortCheckResult(3000, True)]

    def test_bound_port_raises(self):
        checker = PreflightChecker(run=_ss())

        with pytest.raises(PortInUseError) as exc_info:
            checker.check_ports_free([80, 5000])

        assert exc_info.value.port == 5000
        assert str(exc_info.value).startswith("PortInUseError{5000}")

    def test_reports_lowest_bound_port_first(self):
        checker = PreflightChecker(run=_ss())

        with pytest.raises(PortInUseError) as exc_info:
            checker.check_ports_free([8080, 443])

        assert exc_info.value.port == 443

    def test_no_ports_skips_lookup(self):
        run = Mock()

        assert PreflightChecker(run=run).check_ports_free([]) == []
        run.assert_not_called()

    def test_falls_back_to_connect_probe_without_ss(self):
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)
        port = listener.getsockname()[1]
        try:
            checker = PreflightChecker(run=Mock(side_effect=FileNotFoundError("ss")))
            with pytest.raises(PortInUseError) as exc_info:
                checker.check_ports_free([port])
        finally:
            listener.close()

        assert exc_info.value.port == port

    def test_falls_back_when_ss_fails(self):
        checker = PreflightChecker(run=_ss(stdout="", returncode=1))
        checker._port_accepts_connections = Mock(return_value=False)

        results = checker.check_ports_free([80])

        assert results == [PortCheckResult(80, True)]
        checker._port_accepts_connections.assert_called_once_with(80)

    def test_ss_timeout_uses_fallback(self):
        checker = PreflightChecker(run=Mock(side_effect=subprocess.TimeoutExpired("ss", 10)))

        assert checker.listening_ports() is None
