"""
Single-pass startup orchestration.

    Init -> ToolsChecked -> PortsChecked -> Launched -> Verified -> Inspected -> Done
                 \\              \\             \\          \\
                  +--------------+-------------+----------+--> Failed(reason)

Phases run strictly in order; each one is a precondition for the next.
Inspection is diagnostic only and never moves the run to Failed.
"""

from __future__ import annotations

import enum
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from .config_constants import DEFAULT_REQUIRED_TOOLS, INSPECTION_REPORT_FILE
from .errors import (
    ConfigError,
    DescriptorNotFoundError,
    HealthCheckExhaustedError,
    InspectionError,
    LaunchError,
    MissingToolError,
    PortInUseError,
)
from .inspector import EnvironmentInspector, write_report
from .launcher import StackLauncher
from .models import DeploymentPlan, HealthCheckResult, InspectionReport
from .preflight import PreflightChecker
from .readiness import ReadinessVerifier

logger = logging.getLogger(__name__)

FATAL_ERRORS = (
    ConfigError,
    MissingToolError,
    DescriptorNotFoundError,
    PortInUseError,
    LaunchError,
    HealthCheckExhaustedError,
)


class Phase(enum.Enum):
    INIT = 'Init'
    TOOLS_CHECKED = 'ToolsChecked'
    PORTS_CHECKED = 'PortsChecked'
    LAUNCHED = 'Launched'
    VERIFIED = 'Verified'
    INSPECTED = 'Inspected'
    DONE = 'Done'
    FAILED = 'Failed'

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.DONE, Phase.FAILED)


@dataclass
class OrchestrationResult:
    deployment_id: str
    phase: Phase = Phase.INIT
    trace: list[Phase] = field(default_factory=lambda: [Phase.INIT])
    health_results: list[HealthCheckResult] = field(default_factory=list)
    report: Optional[InspectionReport] = None
    failure_reason: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def exit_code(self) -> int:
        return 0 if self.phase is Phase.DONE else 1

    def advance(self, phase: Phase) -> None:
        if self.phase.is_terminal:
            raise RuntimeError(f"Run already finished in {self.phase.value}")
        self.phase = phase
        self.trace.append(phase)


class Orchestrator:
    def __init__(
        self,
        plan: DeploymentPlan,
        project_dir: Path,
        preflight: Optional[PreflightChecker] = None,
        launcher: Optional[StackLauncher] = None,
        verifier: Optional[ReadinessVerifier] = None,
        inspector: Optional[EnvironmentInspector] = None,
        required_tools: Iterable[str] = DEFAULT_REQUIRED_TOOLS,
        report_path: Optional[Path] = None,
        skip_inspect: bool = False,
        describe_stack: bool = True,
    ) -> None:
        self.plan = plan
        self.project_dir = Path(project_dir)
        self.preflight = preflight or PreflightChecker()
        self.launcher = launcher or StackLauncher()
        self.verifier = verifier or ReadinessVerifier()
        self.inspector = inspector or EnvironmentInspector()
        self.required_tools = list(required_tools)
        self.report_path = Path(report_path) if report_path else self.project_dir / INSPECTION_REPORT_FILE
        self.skip_inspect = skip_inspect
        self.describe_stack = describe_stack

    def run(self) -> OrchestrationResult:
        result = OrchestrationResult(deployment_id=uuid.uuid4().hex[:8])
        start = time.monotonic()

        try:
            self._run_phases(result)
        except FATAL_ERRORS as e:
            result.failure_reason = str(e)
            result.advance(Phase.FAILED)
            logger.error(f"ERROR: {e}")
        finally:
            result.duration_seconds = time.monotonic() - start

        self._log_summary(result)
        return result

    def _run_phases(self, result: OrchestrationResult) -> None:
        logger.info("Checking that required tools are ready...")
        self.preflight.check_tools(self.required_tools)
        descriptor = self.preflight.check_compose_file(self.project_dir, self.plan.compose_file)
        result.advance(Phase.TOOLS_CHECKED)

        self.preflight.check_ports_free(self.plan.required_ports())
        result.advance(Phase.PORTS_CHECKED)

        self.launcher.launch(self.plan, descriptor)
        result.advance(Phase.LAUNCHED)
        if self.describe_stack:
            self.launcher.describe_stack()

        self.verifier.verify_plan(self.plan.services, result.health_results)
        result.advance(Phase.VERIFIED)

        if not self.skip_inspect:
            result.report = self._inspect()
            result.advance(Phase.INSPECTED)

        result.advance(Phase.DONE)

    def _inspect(self) -> Optional[InspectionReport]:
        image_ref = self.plan.base_image
        container_id = None
        try:
            container_id = self.inspector.locate_running_container(image_ref)
        except InspectionError as e:
            logger.warning(f"{e} (continuing, inspection is best-effort)")

        try:
            report = self.inspector.inspect(image_ref)
            report.container_id = container_id
            write_report(report, self.report_path)
        except InspectionError as e:
            logger.warning(f"Inspection of {image_ref} failed: {e} (continuing)")
            return None
        return report

    def _log_summary(self, result: OrchestrationResult) -> None:
        verified = sum(1 for r in result.health_results if r.succeeded)
        lines = [
            f"  Deployment ID: {result.deployment_id}",
            f"  Duration: {int(result.duration_seconds)}s",
            f"  Phases: {' -> '.join(p.value for p in result.trace)}",
            f"  Services verified: {verified}/{len(self.plan.services)}",
        ]
        if result.phase is Phase.DONE:
            logger.info("[DEPLOYMENT COMPLETE]")
            for line in lines:
                logger.info(line)
        else:
            logger.error("[DEPLOYMENT FAILED]")
            for line in lines:
                logger.error(line)
            logger.error(f"  Reason: {result.failure_reason}")
