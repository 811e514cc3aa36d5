"""Data model shared by the orchestration phases."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .config_constants import DEFAULT_BASE_IMAGE, DOCKER_COMPOSE_FILE


@dataclass(frozen=True)
class ServiceSpec:
    name: str
    health_url: str
    required_port: Optional[int] = None


@dataclass(frozen=True)
class DeploymentPlan:
    """
    Ordered set of services to start and verify.

    Services are listed in dependency order: infrastructure first,
    the edge-facing service (reverse proxy) last.
    """

    services: tuple[ServiceSpec, ...] = ()
    ports: tuple[int, ...] = ()
    compose_file: str = DOCKER_COMPOSE_FILE
    base_image: str = DEFAULT_BASE_IMAGE

    def required_ports(self) -> list[int]:
        ports = set(self.ports)
        ports.update(s.required_port for s in self.services if s.required_port is not None)
        return sorted(ports)

    def service_names(self) -> list[str]:
        return [s.name for s in self.services]


@dataclass(frozen=True)
class PortCheckResult:
    port: int
    free: bool


@dataclass(frozen=True)
class HealthCheckResult:
    service: str
    attempts: int
    succeeded: bool
    last_error: Optional[str] = None


@dataclass
class InspectionReport:
    image_ref: str
    tags: list[str] = field(default_factory=list)
    created_at: Optional[str] = None
    os: Optional[str] = None
    exposed_ports: set[str] = field(default_factory=set)
    architecture: Optional[str] = None
    container_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            'image_ref': self.image_ref,
            'tags': list(self.tags),
            'created_at': self.created_at,
            'os': self.os,
            'architecture': self.architecture,
            'exposed_ports': sorted(self.exposed_ports),
            'container_id': self.container_id,
        }
