"""
Environment inspection after the stack is confirmed live.

Best-effort: every failure here is an InspectionError, which the
orchestrator logs and suppresses.
"""

from __future__ import annotations

import json
import logging
import subprocess
from pathlib import Path
from typing import Callable

from .errors import ContainerNotFoundError, InspectionError
from .models import InspectionReport

logger = logging.getLogger(__name__)


class EnvironmentInspector:
    def __init__(self, run: Callable[..., subprocess.CompletedProcess] = subprocess.run) -> None:
        self._run = run

    def _docker(self, args: list[str]) -> subprocess.CompletedProcess:
        cmd = ['docker'] + args
        try:
            return self._run(cmd, capture_output=True, text=True, timeout=30)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            raise InspectionError(f"Could not run {' '.join(cmd)}: {e}") from e

    def locate_running_container(self, image_ref: str) -> str:
        logger.info(f"Looking for the active {image_ref} container...")
        result = self._docker(['ps', '--filter', f'ancestor={image_ref}', '--format', '{{.ID}}'])
        if result.returncode != 0:
            raise ContainerNotFoundError(
                image_ref,
                f"docker ps failed (exit {result.returncode}): {result.stderr.strip()}",
            )

        ids = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if not ids:
            raise ContainerNotFoundError(image_ref)

        logger.info(f"{image_ref} container ID: {ids[0]}")
        return ids[0]

    def inspect(self, image_ref: str) -> InspectionReport:
        logger.info(f"Collecting details about the {image_ref} image...")
        result = self._docker(['image', 'inspect', image_ref])
        if result.returncode != 0:
            raise InspectionError(
                f"docker image inspect {image_ref} failed (exit {result.returncode}): {result.stderr.strip()}"
            )
        return parse_image_inspect(image_ref, result.stdout)


def parse_image_inspect(image_ref: str, payload: str) -> InspectionReport:
    """
    Build a report from `docker image inspect` JSON (a one-element list).
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise InspectionError(f"Malformed inspect output for {image_ref}: {e}") from e

    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        raise InspectionError(f"No inspect data returned for {image_ref}")

    image = data[0]
    config = image.get('Config') or {}
    return InspectionReport(
        image_ref=image_ref,
        tags=list(image.get('RepoTags') or []),
        created_at=image.get('Created'),
        os=image.get('Os'),
        architecture=image.get('Architecture'),
        exposed_ports=set((config.get('ExposedPorts') or {}).keys()),
    )


def write_report(report: InspectionReport, path: Path) -> Path:
    """
    Write the report as JSON, replacing any previous artifact.
    """
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(report.to_dict(), indent=2) + '\n', encoding='utf-8')
    except OSError as e:
        raise InspectionError(f"Could not write inspection report {path}: {e}") from e

    logger.info(f"Saved {report.image_ref} details to {path}")
    logger.info(f"  RepoTags: {', '.join(report.tags) or '(none)'}")
    logger.info(f"  Created: {report.created_at}")
    logger.info(f"  Operating system: {report.os}")
    logger.info(f"  Exposed ports: {', '.join(sorted(report.exposed_ports)) or '(none)'}")
    return path
