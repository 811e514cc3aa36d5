"""
Stack launcher: resolve the compose invocation and bring the stack up.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Optional

from .config import render_jinja2
from .config_constants import COMPOSE_COMMAND_CANDIDATES, strip_template_suffix
from .errors import LaunchError, MissingToolError
from .models import DeploymentPlan

logger = logging.getLogger(__name__)

LAUNCH_ERROR_TAIL_LINES = 20
# shell convention for "command could not be executed"
LAUNCH_EXEC_FAILED = 127


def resolve_compose_command(
    which: Callable[[str], Optional[str]] = shutil.which,
    run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> list[str]:
    """
    Pick the compose invocation available on this host.

    Candidates are probed in order and the first available one is used:
    the standalone `docker-compose` binary, then the `docker compose` plugin.
    """
    for candidate in COMPOSE_COMMAND_CANDIDATES:
        if not which(candidate[0]):
            continue
        if len(candidate) == 1:
            return list(candidate)

        # Subcommand form: the plugin must answer `version`.
        try:
            result = run(candidate + ['version'], capture_output=True, text=True, timeout=10)
        except (FileNotFoundError, subprocess.TimeoutExpired):
            continue
        if result.returncode == 0:
            return list(candidate)

    raise MissingToolError('docker compose')


def render_compose_template(template_path: Path, context: dict) -> Path:
    """
    Render docker-compose.yml.j2 next to itself as docker-compose.yml.
    """
    output_path = template_path.with_name(strip_template_suffix(template_path.name))
    output_path.write_text(render_jinja2(template_path, context), encoding='utf-8')
    logger.info(f"Rendered compose template: {template_path.name} -> {output_path.name}")
    return output_path


class StackLauncher:
    def __init__(
        self,
        compose_command: Optional[list[str]] = None,
        which: Callable[[str], Optional[str]] = shutil.which,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
        template_context: Optional[dict] = None,
    ) -> None:
        self._compose_command = compose_command
        self._which = which
        self._run = run
        self._popen = popen
        self._template_context = template_context or {}

    @property
    def compose_command(self) -> list[str]:
        if self._compose_command is None:
            self._compose_command = resolve_compose_command(self._which, self._run)
            logger.info(f"Using compose command: {' '.join(self._compose_command)}")
        return self._compose_command

    def launch(self, plan: DeploymentPlan, compose_file: Path) -> None:
        """
        Build and start the stack detached. Non-zero exit raises LaunchError.
        """
        compose_file = Path(compose_file)
        if compose_file.suffix == '.j2':
            context = {**self._template_context, 'env': dict(os.environ)}
            try:
                compose_file = render_compose_template(compose_file, context)
            except OSError as e:
                raise LaunchError(LAUNCH_EXEC_FAILED, f"Could not render {compose_file}: {e}") from e

        cmd = self.compose_command + ['-f', str(compose_file), 'up', '-d', '--build']
        logger.info(f"Building and starting the services: {', '.join(plan.service_names()) or '(all)'}")
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            proc = self._popen(
                cmd,
                cwd=str(compose_file.parent),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except OSError as e:
            raise LaunchError(LAUNCH_EXEC_FAILED, f"Could not run {' '.join(cmd)}: {e}") from e
        output_lines = []
        try:
            for line in proc.stdout:
                logger.info(f"  [COMPOSE] {line.rstrip()}")
                output_lines.append(line)
            proc.wait()
        except KeyboardInterrupt:
            logger.warning("Interrupted, terminating compose...")
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
            raise

        # stderr is merged into stdout; keep the tail for the error report
        if proc.returncode != 0:
            raise LaunchError(proc.returncode, ''.join(output_lines[-LAUNCH_ERROR_TAIL_LINES:]))

        logger.info("Everything is now running.")

    def describe_stack(self) -> None:
        """
        Log `docker images` and `docker ps` output. Informational only.
        """
        for title, cmd in (("Docker Images:", ['docker', 'images']), ("Running Containers:", ['docker', 'ps'])):
            try:
                result = self._run(cmd, capture_output=True, text=True, timeout=30)
            except (FileNotFoundError, subprocess.TimeoutExpired) as e:
                logger.warning(f"Could not run {' '.join(cmd)}: {e}")
                continue
            if result.returncode != 0:
                logger.warning(f"{' '.join(cmd)} failed (exit {result.returncode})")
                continue
            logger.info(title)
            for line in result.stdout.splitlines():
                logger.info(f"  {line}")
