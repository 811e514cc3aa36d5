#!/usr/bin/env python3
"""
stackup CLI entry point.

Runs one preflight -> launch -> verify -> inspect pass over a docker
compose project and exits 0 on success, 1 on a fatal failure.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from .config import StackConfig, load_stack_config, write_default_config
from .config_constants import LOG_DATE_FORMAT, LOG_FORMAT, STACK_CONFIG
from .errors import ConfigError
from .inspector import EnvironmentInspector
from .launcher import StackLauncher
from .orchestrator import Orchestrator
from .preflight import PreflightChecker
from .readiness import ReadinessVerifier

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def get_cli_version() -> str:
    try:
        from importlib.metadata import PackageNotFoundError, version as package_version

        return package_version("stackup")
    except PackageNotFoundError:
        from . import __version__

        return __version__


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure logging module with specified level.
    """
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR
    }

    level = level_map.get(log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        force=True  # Reconfigure if already configured
    )

    logger.debug(f"Logging configured: {log_level.upper()}")


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog='stackup',
        description='Start a docker compose stack and verify every service is reachable',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  # Start and verify the stack in the current directory
  %(prog)s

  # Start the stack in a specific project folder
  %(prog)s -d /srv/bank-app

  # Faster polling, no image inspection
  %(prog)s --max-attempts 5 --interval 2 --skip-inspect

  # Write the default stack config to edit
  %(prog)s --write-config
        '''
    )

    parser.add_argument(
        '-d', '--dir',
        type=Path,
        default=Path.cwd(),
        metavar='PATH',
        help='Project directory containing the compose file (default: current directory)'
    )

    parser.add_argument(
        '-f', '--file',
        type=str,
        default=None,
        metavar='NAME',
        help='Compose file name (default: deploy.compose_file from config, docker-compose.yml)'
    )

    parser.add_argument(
        '-c', '--config',
        type=Path,
        default=None,
        metavar='PATH',
        help=f'Stack config file (default: {STACK_CONFIG} in the project directory)'
    )

    parser.add_argument(
        '--report',
        type=Path,
        default=None,
        metavar='PATH',
        help='Inspection report path (default: deploy.report_file in the project directory)'
    )

    parser.add_argument(
        '--max-attempts',
        type=int,
        default=None,
        metavar='N',
        help='Health check attempts per service (default: 15)'
    )

    parser.add_argument(
        '--interval',
        type=float,
        default=None,
        metavar='SECONDS',
        help='Seconds between health check attempts (default: 4)'
    )

    parser.add_argument(
        '--base-image',
        type=str,
        default=None,
        metavar='IMAGE',
        help='Image to inspect after startup (default: nginx:alpine)'
    )

    parser.add_argument(
        '--skip-inspect',
        action='store_true',
        help='Skip image inspection after the stack is verified'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Log level (default: deploy.log_level from config, INFO)'
    )

    parser.add_argument(
        '--write-config',
        action='store_true',
        help=f'Write the default {STACK_CONFIG} into the project directory and exit'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {get_cli_version()}'
    )

    return parser.parse_args(argv)


def apply_overrides(config: StackConfig, args: argparse.Namespace) -> StackConfig:
    """
    Apply command-line overrides on top of the loaded config.
    """
    plan = config.plan
    if args.file:
        plan = replace(plan, compose_file=args.file)
    if args.base_image:
        plan = replace(plan, base_image=args.base_image)

    updates = {'plan': plan}
    if args.max_attempts is not None:
        if args.max_attempts < 1:
            raise ConfigError("--max-attempts must be at least 1")
        updates['max_attempts'] = args.max_attempts
    if args.interval is not None:
        if args.interval < 0:
            raise ConfigError("--interval must not be negative")
        updates['interval'] = args.interval
    if args.log_level:
        updates['log_level'] = args.log_level
    return replace(config, **updates)


def build_orchestrator(config: StackConfig, project_dir: Path, args: argparse.Namespace) -> Orchestrator:
    report_path = args.report or Path(config.report_file)
    if not report_path.is_absolute():
        report_path = project_dir / report_path

    return Orchestrator(
        plan=config.plan,
        project_dir=project_dir,
        preflight=PreflightChecker(),
        launcher=StackLauncher(template_context=config.raw),
        verifier=ReadinessVerifier(
            max_attempts=config.max_attempts,
            interval=config.interval,
            request_timeout=config.request_timeout,
        ),
        inspector=EnvironmentInspector(),
        required_tools=config.tools,
        report_path=report_path,
        skip_inspect=args.skip_inspect,
    )


def main(argv: Optional[list] = None) -> int:
    args = parse_arguments(argv)
    project_dir = args.dir.resolve()

    configure_logging(args.log_level or "INFO")

    if args.write_config:
        target = project_dir / STACK_CONFIG
        if target.exists():
            logger.error(f"ERROR: {target} already exists, not overwriting")
            return EXIT_CONFIG_ERROR
        write_default_config(target)
        return 0

    try:
        config = apply_overrides(load_stack_config(project_dir, args.config), args)
    except ConfigError as e:
        logger.error(f"ERROR: {e}")
        return EXIT_CONFIG_ERROR

    if not args.log_level and config.log_level.upper() != "INFO":
        configure_logging(config.log_level)

    logger.info(f"========== Starting {config.project_name} setup ==========")
    logger.info(f"Project folder: {project_dir}")

    try:
        result = build_orchestrator(config, project_dir, args).run()
    except KeyboardInterrupt:
        logger.warning("Interrupted, run not recorded")
        return EXIT_INTERRUPTED

    if result.exit_code == 0:
        logger.info(f"========== Setup complete for {config.project_name} ==========")
    return result.exit_code


if __name__ == '__main__':
    sys.exit(main())
