#!/usr/bin/env python3
"""CLI entry point for wikirun-driver.

Running with no arguments performs the complete deployment (deploy-all):

    wikirun

Other workflows:
- wikirun --scenario deploy       Infrastructure only
- wikirun --scenario push-image   Push the wiki image, optionally update Cloud Run
- wikirun --scenario destroy      Tear everything down
"""

import argparse
import contextlib
import json
import logging
import os
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Optional

import terminal
from common import run_command
from config import (
    ConfigError,
    DeployConfig,
    default_config_file,
    ensure_config_file,
    get_base_dir,
    load_deploy_config,
)
from scenarios import DEFAULT_SCENARIO, Orchestrator, get_scenario, list_scenarios
from validation import validate_readiness

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

logger = logging.getLogger(__name__)


def get_version() -> str:
    """Installed package version, or 'dev' when running from a checkout."""
    try:
        return version('wikirun-driver')
    except PackageNotFoundError:
        return 'dev'


def configure_logging(verbose: bool = False, json_output: bool = False) -> None:
    """Configure root logging; --json-output keeps stdout for the report."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, datefmt=LOG_DATEFMT)

    if json_output:
        # Remove existing handlers and redirect to stderr
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        root_logger.addHandler(stderr_handler)

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def open_editor(config_file: Path, editor: str) -> bool:
    """Open the config file in the operator's editor. Returns True on clean exit."""
    rc, _, err = run_command([editor, str(config_file)], capture=False, timeout=24 * 3600)
    if rc != 0:
        logger.warning(f"Editor '{editor}' exited with {rc}: {err}")
        return False
    return True


def prepare_config(config_file: Path, assume_yes: bool = False,
                   editor: Optional[str] = None) -> DeployConfig:
    """Make sure a usable terraform.tfvars exists and load it.

    Copies the template when the file is missing, then asks the operator
    to confirm the project ID until they answer yes (a 'no' opens the
    editor). --yes skips the question.

    Raises:
        ConfigError: no config and no template, or project_id unusable
    """
    if ensure_config_file(config_file):
        terminal.warn(f"{config_file} not found. Created it from {config_file.name}.example")

    if not assume_yes:
        while not terminal.confirm(f"Did you enter your project ID in {config_file}?"):
            terminal.step(f"Opening {config_file} for editing...")
            terminal.step("Please change 'your-gcp-project-id' to your actual GCP project ID")
            open_editor(config_file, editor or os.environ.get('EDITOR', 'nano'))
            terminal.step("File saved. Let's check again...")
        terminal.success("Continuing with deployment...")

    return load_deploy_config(config_file)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='wikirun',
        description='Deploy Wiki.js to Cloud Run with Cloud SQL, Artifact Registry and Terraform'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'wikirun-driver {get_version()}'
    )
    parser.add_argument(
        '--scenario', '-S',
        choices=list_scenarios(),
        default=DEFAULT_SCENARIO,
        help=f'Workflow to run (default: {DEFAULT_SCENARIO})'
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        default=None,
        help='Path to terraform.tfvars (default: terraform/terraform.tfvars)'
    )
    parser.add_argument(
        '--report-dir', '-r',
        type=Path,
        default=get_base_dir() / 'reports',
        help='Directory for run reports'
    )
    parser.add_argument(
        '--skip', '-s',
        action='append',
        default=[],
        help='Phases to skip (can be repeated)'
    )
    parser.add_argument(
        '--yes', '-y',
        action='store_true',
        help='Answer yes to every prompt (non-interactive runs)'
    )
    parser.add_argument(
        '--list-scenarios',
        action='store_true',
        help='List available scenarios and exit'
    )
    parser.add_argument(
        '--list-phases',
        action='store_true',
        help='List phases for the selected scenario and exit'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be executed without running actions'
    )
    parser.add_argument(
        '--skip-preflight',
        action='store_true',
        help='Skip tool and credential checks'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs go to stderr)'
    )
    return parser


def _print_scenarios() -> None:
    print("Available scenarios:")
    for name in list_scenarios():
        scenario = get_scenario(name)
        runtime = getattr(scenario, 'expected_runtime', None)
        if runtime:
            runtime_str = f"~{runtime // 60}m" if runtime >= 60 else f"~{runtime}s"
            print(f"  {name:14} {runtime_str:>6}  {scenario.description}")
        else:
            print(f"  {name:14}         {scenario.description}")


def _print_preflight_errors(errors: list[str]) -> None:
    terminal.error("Pre-flight validation failed:")
    for error in errors:
        for i, line in enumerate(error.split('\n')):
            prefix = "  ✗ " if i == 0 else "    "
            terminal.detail(f"{prefix}{line}")
    terminal.detail("")
    terminal.detail("Use --skip-preflight to bypass these checks")


def _print_result(scenario, config: DeployConfig, orchestrator: Orchestrator, success: bool) -> None:
    if not success:
        failed = [p for p in orchestrator.report.phases if p.status == 'failed']
        if failed:
            terminal.error(f"{failed[-1].name}: {failed[-1].message}")
        terminal.error(f"Scenario '{scenario.name}' failed")
        return

    for phase in orchestrator.report.phases:
        if phase.status == 'warning':
            terminal.warn(f"{phase.name}: {phase.message}")

    print("")
    terminal.header(f"{scenario.name.upper()} COMPLETED SUCCESSFULLY!")
    service_url = orchestrator.context.get('service_url') or orchestrator.context.get('wiki_js_url')
    if service_url:
        terminal.success("Your Wiki.js application is available at:")
        terminal.url(service_url)
        print("")
    if hasattr(scenario, 'summary'):
        for line in scenario.summary(config, orchestrator.context):
            terminal.detail(line)


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=args.verbose, json_output=args.json_output)
    if args.json_output:
        terminal.set_stderr()

    if args.list_scenarios:
        _print_scenarios()
        return 0

    scenario = get_scenario(args.scenario)
    config_file = args.config or default_config_file()

    if not args.json_output:
        terminal.header(f"Starting {scenario.name}: {scenario.description}")

    try:
        config = prepare_config(config_file, assume_yes=args.yes)
    except ConfigError as e:
        terminal.error(f"Error: {e}")
        return 1

    terminal.info("Configuration:")
    terminal.detail(f"   Project ID: {config.project_id}")
    terminal.detail(f"   Region: {config.region}")
    terminal.detail(f"   Zone: {config.zone}")

    if args.list_phases:
        print(f"Phases for scenario '{scenario.name}':")
        for name, _action, desc in scenario.get_phases(config):
            print(f"  {name}: {desc}")
        return 0

    if not args.skip_preflight and not args.dry_run:
        errors = validate_readiness(config, type(scenario))
        if errors:
            _print_preflight_errors(errors)
            return 1
        logger.info("Pre-flight validation passed")

    if getattr(scenario, 'requires_confirmation', False) and not args.yes and not args.dry_run:
        terminal.warn(f"'{scenario.name}' is destructive. Project: {config.project_id}")
        terminal.warn("This action cannot be undone.")
        if not terminal.confirm("Continue?"):
            terminal.warn("Aborted.")
            return 1

    orchestrator = Orchestrator(
        scenario=scenario,
        config=config,
        report_dir=args.report_dir,
        skip_phases=args.skip,
        dry_run=args.dry_run
    )
    orchestrator.context['assume_yes'] = args.yes

    if args.json_output:
        # Keep stdout for the report; the dry-run preview prints
        with contextlib.redirect_stdout(sys.stderr):
            success = orchestrator.run()
    else:
        success = orchestrator.run()

    if args.json_output:
        print(json.dumps(orchestrator.report.to_dict(orchestrator.context), indent=2))
    elif not args.dry_run:
        _print_result(scenario, config, orchestrator, success)

    return 0 if success else 1


def run() -> None:
    """Console script wrapper."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        terminal.error("Interrupted")
        sys.exit(130)
    except EOFError:
        terminal.error("No input available for a prompt; use --yes for non-interactive runs")
        sys.exit(1)


if __name__ == '__main__':
    run()
