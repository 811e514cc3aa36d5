#!/usr/bin/env python3
"""
Configuration filename constants and runtime defaults for stackup.

This is the single place for config filenames and default values.
Other modules import from here instead of hardcoding strings.

Naming Convention:
- stackup.toml.j2 = Template config (rendered with Jinja2, then parsed)
- stackup.toml    = Plain stack config
- docker-compose.yml.j2 = Compose template (rendered before launch)
"""

# ============================================================================
# Configuration Filenames
# ============================================================================

STACK_CONFIG_TEMPLATE = 'stackup.toml.j2'
STACK_CONFIG = 'stackup.toml'

DOCKER_COMPOSE_FILE = 'docker-compose.yml'
DOCKER_COMPOSE_TEMPLATE = 'docker-compose.yml.j2'

INSPECTION_REPORT_FILE = 'nginx-inspect.json'

# ============================================================================
# Runtime Defaults
# ============================================================================

DEFAULT_REQUIRED_TOOLS = ['docker']

# Readiness polling: worst case per service is attempts x interval seconds.
DEFAULT_MAX_ATTEMPTS = 15
DEFAULT_INTERVAL_SECONDS = 4.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 5.0

DEFAULT_BASE_IMAGE = 'nginx:alpine'

HEALTHCHECK_USER_AGENT = 'stackup-healthcheck/1.0'

# Compose invocation candidates, probed in order. First available wins.
COMPOSE_COMMAND_CANDIDATES = [
    ['docker-compose'],
    ['docker', 'compose'],
]

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def strip_template_suffix(filename: str) -> str:
    """
    Get the rendered filename for a Jinja2 template.

    Examples:
        >>> strip_template_suffix('docker-compose.yml.j2')
        'docker-compose.yml'
        >>> strip_template_suffix('stackup.toml')
        'stackup.toml'
    """
    if filename.endswith('.j2'):
        return filename[:-len('.j2')]
    return filename
