"""stackup package."""

from __future__ import annotations

import os
from datetime import datetime, timezone


def _build_date_version() -> str:
	override = os.getenv("STACKUP_BUILD_VERSION")
	if override:
		return override
	return datetime.now(timezone.utc).strftime("%Y%m%d")


__version__ = _build_date_version()

from .errors import (  # noqa: E402
	ConfigError,
	ContainerNotFoundError,
	DescriptorNotFoundError,
	HealthCheckExhaustedError,
	InspectionError,
	LaunchError,
	MissingToolError,
	PortInUseError,
	StackupError,
)
from .models import (  # noqa: E402
	DeploymentPlan,
	HealthCheckResult,
	InspectionReport,
	PortCheckResult,
	ServiceSpec,
)
from .orchestrator import OrchestrationResult, Orchestrator, Phase  # noqa: E402

__all__ = [
	"__version__",
	"ConfigError",
	"ContainerNotFoundError",
	"DeploymentPlan",
	"DescriptorNotFoundError",
	"HealthCheckExhaustedError",
	"HealthCheckResult",
	"InspectionError",
	"InspectionReport",
	"LaunchError",
	"MissingToolError",
	"OrchestrationResult",
	"Orchestrator",
	"Phase",
	"PortCheckResult",
	"PortInUseError",
	"ServiceSpec",
	"StackupError",
]
