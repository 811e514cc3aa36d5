"""
Error taxonomy for stackup.

Fatal errors (halt the run, non-zero exit):
    MissingToolError, DescriptorNotFoundError, PortInUseError,
    LaunchError, HealthCheckExhaustedError, ConfigError

Non-fatal:
    InspectionError (and ContainerNotFoundError) - logged and suppressed
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import HealthCheckResult


class StackupError(Exception):
    """Base class for all stackup errors."""


class ConfigError(StackupError):
    """Stack configuration is missing values or cannot be parsed."""


class MissingToolError(StackupError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"MissingToolError{{{name}}}: required command not found: {name}")


class DescriptorNotFoundError(StackupError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"DescriptorNotFoundError{{{path}}}: composition descriptor not found")


class PortInUseError(StackupError):
    def __init__(self, port: int) -> None:
        self.port = port
        super().__init__(
            f"PortInUseError{{{port}}}: port {port} is already in use. "
            "Close the program using it first."
        )


class LaunchError(StackupError):
    def __init__(self, exit_code: int, stderr: str = "") -> None:
        self.exit_code = exit_code
        self.stderr = stderr
        message = f"LaunchError{{{exit_code}}}: compose up failed with exit code {exit_code}"
        if stderr.strip():
            message = f"{message}\n{stderr.strip()}"
        super().__init__(message)


class HealthCheckExhaustedError(StackupError):
    def __init__(self, result: "HealthCheckResult") -> None:
        self.result = result
        message = (
            f"HealthCheckExhaustedError{{{result.service}}}: "
            f"{result.service} did not respond in time ({result.attempts} attempts)"
        )
        if result.last_error:
            message = f"{message}; last error: {result.last_error}"
        super().__init__(message)


class InspectionError(StackupError):
    """Image inspection failed. Never aborts a run."""


class ContainerNotFoundError(InspectionError):
    def __init__(self, image_ref: str, message: Optional[str] = None) -> None:
        self.image_ref = image_ref
        super().__init__(message or f"Could not locate a running container for image {image_ref}")
