#!/usr/bin/env python3
"""
Stack configuration loading.

Resolution order inside the project directory:
1. stackup.toml.j2 - rendered with Jinja2 (env available as ``env``), then parsed
2. stackup.toml    - parsed as-is
3. Built-in defaults (DEFAULT_CONFIG)

$VAR / ${VAR} placeholders are expanded from os.environ before parsing.
A missing value is a hard error, never silently empty.
"""

from __future__ import annotations

import copy
import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .config_constants import (
    DEFAULT_BASE_IMAGE,
    DEFAULT_INTERVAL_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_REQUIRED_TOOLS,
    DOCKER_COMPOSE_FILE,
    INSPECTION_REPORT_FILE,
    STACK_CONFIG,
    STACK_CONFIG_TEMPLATE,
)
from .errors import ConfigError
from .models import DeploymentPlan, ServiceSpec

logger = logging.getLogger(__name__)


# Mirrors the local bank deployment: backend and portfolio behind nginx.
# The transactions service is internal only, so it is not health checked.
DEFAULT_CONFIG: dict[str, Any] = {
    'deploy': {
        'project_name': 'pixel-river',
        'compose_file': DOCKER_COMPOSE_FILE,
        'log_level': 'INFO',
        'report_file': INSPECTION_REPORT_FILE,
    },
    'preflight': {
        'tools': list(DEFAULT_REQUIRED_TOOLS),
        'ports': [80, 3000, 5000],
    },
    'readiness': {
        'max_attempts': DEFAULT_MAX_ATTEMPTS,
        'interval': DEFAULT_INTERVAL_SECONDS,
        'request_timeout': DEFAULT_REQUEST_TIMEOUT_SECONDS,
    },
    'inspect': {
        'base_image': DEFAULT_BASE_IMAGE,
    },
    'services': [
        {'name': 'Backend', 'health_url': 'http://localhost:5000/status', 'port': 5000},
        {'name': 'Student Portfolio', 'health_url': 'http://localhost:3000', 'port': 3000},
        {'name': 'nginx front-end', 'health_url': 'http://localhost', 'port': 80},
    ],
}


@dataclass
class StackConfig:
    plan: DeploymentPlan
    project_name: str = 'stack'
    tools: list[str] = field(default_factory=lambda: list(DEFAULT_REQUIRED_TOOLS))
    report_file: str = INSPECTION_REPORT_FILE
    log_level: str = 'INFO'
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    interval: float = DEFAULT_INTERVAL_SECONDS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    source: Optional[Path] = None
    raw: dict = field(default_factory=dict)


def parse_toml_string(toml_text: str, source: str) -> dict:
    """
    Parse TOML from a string with fail-fast error context.
    """
    try:
        return tomllib.loads(toml_text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse TOML from {source}: {e}") from e


ENV_VAR_PATTERN = re.compile(r"\$(\w+)|\$\{([^}]+)\}")


def expand_env_vars_or_fail(raw_text: str, source: str, environ: Optional[dict] = None) -> str:
    """
    Expand $VAR / ${VAR} from the environment; fail-fast on missing values.
    """
    env = os.environ if environ is None else environ
    missing = set()

    def _replace(match: re.Match) -> str:
        var_name = match.group(1) or match.group(2)
        value = env.get(var_name)
        if value is None or value == "":
            missing.add(var_name)
            return match.group(0)
        return value

    expanded = ENV_VAR_PATTERN.sub(_replace, raw_text)

    if missing:
        missing_list = ", ".join(sorted(missing))
        raise ConfigError(f"Missing required environment values in {source}: {missing_list}")

    return expanded


def render_jinja2(template_path: Path, context: dict) -> str:
    """
    Render a Jinja2 template file with the given context.
    """
    from jinja2 import StrictUndefined, Template, TemplateError

    if not template_path.exists():
        raise FileNotFoundError(f"Template file not found: {template_path}")

    template_content = template_path.read_text(encoding='utf-8')
    logger.debug(f"Rendering Jinja2 template: {template_path} ({len(template_content)} bytes)")

    try:
        rendered = Template(template_content, undefined=StrictUndefined).render(**context)
    except TemplateError as e:
        raise ConfigError(f"Failed to render template {template_path}: {e}") from e

    logger.debug(f"  Rendered output size: {len(rendered)} bytes")
    return rendered


def find_config_file(project_dir: Path) -> Optional[Path]:
    for name in (STACK_CONFIG_TEMPLATE, STACK_CONFIG):
        candidate = project_dir / name
        if candidate.exists():
            return candidate
    return None


def read_config_file(path: Path) -> dict:
    """
    Read a stack config file (.toml or .toml.j2) into a dict.
    """
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    if path.suffix == '.j2':
        text = render_jinja2(path, {'env': dict(os.environ)})
    else:
        text = path.read_text(encoding='utf-8')

    return parse_toml_string(expand_env_vars_or_fail(text, str(path)), str(path))


def deep_merge_configs(base: dict, override: dict) -> dict:
    """
    Key-level merge: nested dicts merge, everything else (lists included) replaces.
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge_configs(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _as_int(value: Any, where: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ConfigError(f"{where} must be an integer, got {value!r}")
    try:
        return int(value)
    except ValueError as e:
        raise ConfigError(f"{where} must be an integer, got {value!r}") from e


def _as_float(value: Any, where: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{where} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{where} must be a number, got {value!r}") from e


def _parse_services(entries: Any) -> tuple[ServiceSpec, ...]:
    if not isinstance(entries, list):
        raise ConfigError("'services' must be an array of tables")

    services = []
    seen = set()
    for idx, entry in enumerate(entries):
        where = f"services[{idx}]"
        if not isinstance(entry, dict):
            raise ConfigError(f"{where} must be a table")
        name = entry.get('name')
        url = entry.get('health_url')
        if not name or not url:
            raise ConfigError(f"{where} requires 'name' and 'health_url'")
        if name in seen:
            raise ConfigError(f"Duplicate service name: {name}")
        seen.add(name)

        port = entry.get('port')
        if port is not None:
            port = _as_int(port, f"{where}.port")
            if not 0 < port < 65536:
                raise ConfigError(f"{where}.port is not a valid TCP port: {port}")
        services.append(ServiceSpec(name=str(name), health_url=str(url), required_port=port))
    return tuple(services)


def build_stack_config(data: dict, source: Optional[Path] = None) -> StackConfig:
    """
    Turn a parsed config dict into a StackConfig (defaults filled in).
    """
    merged = deep_merge_configs(DEFAULT_CONFIG, data)
    deploy = merged.get('deploy', {})
    preflight = merged.get('preflight', {})
    readiness = merged.get('readiness', {})
    inspect = merged.get('inspect', {})

    ports = tuple(_as_int(p, 'preflight.ports') for p in preflight.get('ports', []))
    for port in ports:
        if not 0 < port < 65536:
            raise ConfigError(f"preflight.ports contains an invalid TCP port: {port}")

    plan = DeploymentPlan(
        services=_parse_services(merged.get('services', [])),
        ports=ports,
        compose_file=str(deploy.get('compose_file', DOCKER_COMPOSE_FILE)),
        base_image=str(inspect.get('base_image', DEFAULT_BASE_IMAGE)),
    )

    max_attempts = _as_int(readiness.get('max_attempts', DEFAULT_MAX_ATTEMPTS), 'readiness.max_attempts')
    if max_attempts < 1:
        raise ConfigError("readiness.max_attempts must be at least 1")
    interval = _as_float(readiness.get('interval', DEFAULT_INTERVAL_SECONDS), 'readiness.interval')
    if interval < 0:
        raise ConfigError("readiness.interval must not be negative")

    return StackConfig(
        plan=plan,
        project_name=str(deploy.get('project_name', 'stack')),
        tools=[str(t) for t in preflight.get('tools', DEFAULT_REQUIRED_TOOLS)],
        report_file=str(deploy.get('report_file', INSPECTION_REPORT_FILE)),
        log_level=str(deploy.get('log_level', 'INFO')),
        max_attempts=max_attempts,
        interval=interval,
        request_timeout=_as_float(
            readiness.get('request_timeout', DEFAULT_REQUEST_TIMEOUT_SECONDS),
            'readiness.request_timeout',
        ),
        source=source,
        raw=merged,
    )


def load_stack_config(project_dir: Path, config_path: Optional[Path] = None) -> StackConfig:
    """
    Load the stack config for a project directory.

    An explicit config_path must exist. Without one, the project directory
    is searched and the built-in defaults are used when nothing is found.
    """
    if config_path is not None:
        path = config_path if config_path.is_absolute() else project_dir / config_path
        logger.info(f"Loading stack config: {path}")
        return build_stack_config(read_config_file(path), source=path)

    found = find_config_file(project_dir)
    if found is None:
        logger.info(f"No {STACK_CONFIG} in {project_dir}, using built-in defaults")
        return build_stack_config({})

    logger.info(f"Loading stack config: {found}")
    return build_stack_config(read_config_file(found), source=found)


def write_default_config(output_path: Path) -> None:
    """
    Write the built-in default config to disk as TOML using tomli_w.
    """
    import tomli_w

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'wb') as f:
        tomli_w.dump(DEFAULT_CONFIG, f)
    logger.info(f"Wrote default stack config: {output_path}")
