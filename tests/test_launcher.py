"""
Stack launcher tests.
"""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, Mock

import pytest
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from stackup.errors import LaunchError, MissingToolError  # noqa: E402
from stackup.launcher import StackLauncher, resolve_compose_command  # noqa: E402
from stackup.models import DeploymentPlan, ServiceSpec  # noqa: E402


PLAN = DeploymentPlan(services=(ServiceSpec("Backend", "http://localhost:5000/status", 5000),))


def _fake_popen(lines, returncode=0):
    proc = MagicMock()
    proc.stdout = iter(lines)
    proc.returncode = returncode
    return Mock(return_value=proc)


class TestResolveComposeCommand:
    def test_prefers_standalone_binary(self):
        run = Mock()

        cmd = resolve_compose_command(which=lambda name: f"/usr/bin/{name}", run=run)

        assert cmd == ["docker-compose"]
        run.assert_not_called()

    def test_falls_back_to_plugin(self):
        which = lambda name: "/usr/bin/docker" if name == "docker" else None  # noqa: E731
        run = Mock(return_value=Mock(returncode=0))

        cmd = resolve_compose_command(which=which, run=run)

        assert cmd == ["docker", "compose"]
        assert run.call_args[0][0] == ["docker", "compose", "version"]

    def test_plugin_not_installed(self):
        which = lambda name: "/usr/bin/docker" if name == "docker" else None  # noqa: E731
        run = Mock(return_value=Mock(returncode=1))

        with pytest.raises(MissingToolError):
            resolve_compose_command(which=which, run=run)

    def test_nothing_available(self):
        with pytest.raises(MissingToolError) as exc_info:
            resolve_compose_command(which=lambda name: None, run=Mock())

        assert exc_info.value.name == "docker compose"


class TestLaunch:
    def test_runs_up_detached_with_build(self, tmp_path):
        compose = tmp_path / "docker-compose.yml"
        compose.write_text("services: {}\n")
        popen = _fake_popen(["Container backend  Started\n"])

        StackLauncher(compose_command=["docker", "compose"], popen=popen).launch(PLAN, compose)

        cmd = popen.call_args[0][0]
        assert cmd == ["docker", "compose", "-f", str(compose), "up", "-d", "--build"]
        assert popen.call_args.kwargs["cwd"] == str(tmp_path)
        assert popen.call_args.kwargs["stderr"] == subprocess.STDOUT

    def test_resolves_command_lazily(self, tmp_path):
        compose = tmp_path / "docker-compose.yml"
        compose.write_text("services: {}\n")
        popen = _fake_popen([])
        launcher = StackLauncher(which=lambda name: f"/usr/bin/{name}", popen=popen)

        launcher.launch(PLAN, compose)

        assert popen.call_args[0][0][0] == "docker-compose"

    def test_non_zero_exit_raises_launch_error(self, tmp_path):
        compose = tmp_path / "docker-compose.yml"
        compose.write_text("services: {}\n")
        popen = _fake_popen(["building backend\n", "failed to solve: bad Dockerfile\n"], returncode=17)

        with pytest.raises(LaunchError) as exc_info:
            StackLauncher(compose_command=["docker-compose"], popen=popen).launch(PLAN, compose)

        assert exc_info.value.exit_code == 17
        assert "bad Dockerfile" in exc_info.value.stderr

    def test_unrunnable_compose_raises_launch_error(self, tmp_path):
        compose = tmp_path / "docker-compose.yml"
        compose.write_text("services: {}\n")
        popen = Mock(side_effect=FileNotFoundError(2, "No such file or directory", "docker-compose"))

        with pytest.raises(LaunchError) as exc_info:
            StackLauncher(compose_command=["docker-compose"], popen=popen).launch(PLAN, compose)

        assert exc_info.value.exit_code == 127
        assert "docker-compose" in exc_info.value.stderr

    def test_unwritable_template_output_raises_launch_error(self, tmp_path):
        template = tmp_path / "docker-compose.yml.j2"
        template.write_text("services: {}\n")
        (tmp_path / "docker-compose.yml").mkdir()
        popen = _fake_popen([])

        with pytest.raises(LaunchError) as exc_info:
            StackLauncher(compose_command=["docker-compose"], popen=popen).launch(PLAN, template)

        assert exc_info.value.exit_code == 127
        popen.assert_not_called()

    def test_renders_jinja2_compose_template(self, tmp_path):
        template = tmp_path / "docker-compose.yml.j2"
        template.write_text("name: {{ deploy.project_name }}\n")
        popen = _fake_popen([])
        launcher = StackLauncher(
            compose_command=["docker-compose"],
            popen=popen,
            template_context={"deploy": {"project_name": "pixel-river"}},
        )

        launcher.launch(PLAN, template)

        rendered = tmp_path / "docker-compose.yml"
        assert rendered.read_text() == "name: pixel-river"
        assert str(rendered) in popen.call_args[0][0]


class TestDescribeStack:
    def test_logs_images_and_containers(self, caplog):
        run = Mock(return_value=Mock(returncode=0, stdout="REPOSITORY TAG\nnginx alpine\n"))

        with caplog.at_level("INFO"):
            StackLauncher(compose_command=["docker-compose"], run=run).describe_stack()

        assert [c[0][0] for c in run.call_args_list] == [["docker", "images"], ["docker", "ps"]]
        assert "nginx alpine" in caplog.text

    def test_failures_are_only_warnings(self, caplog):
        run = Mock(side_effect=FileNotFoundError("docker"))

        with caplog.at_level("WARNING"):
            StackLauncher(compose_command=["docker-compose"], run=run).describe_stack()

        assert "Could not run docker images" in caplog.text
