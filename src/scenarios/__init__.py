"""Scenario definitions and orchestration."""

import logging
import time
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from config import DeployConfig
from reporting import DeployReport

logger = logging.getLogger(__name__)


@runtime_checkable
class Scenario(Protocol):
    """Protocol for scenario definitions.

    Class attributes:
        name: Scenario identifier (e.g., 'deploy-all')
        description: Human-readable description
        required_tools: Executables checked by preflight (default: gcloud + terraform)
        requires_confirmation: If True, ask before running unless --yes (default: False)
        expected_runtime: Expected runtime in seconds for --list-scenarios display (default: None)
    """
    name: str
    description: str

    def get_phases(self, config: DeployConfig) -> list[tuple[str, Any, str]]:
        """Return list of (phase_name, action, description) tuples."""
        ...


class Orchestrator:
    """Runs a scenario's phases in order, sharing a context between them."""

    def __init__(
        self,
        scenario: Scenario,
        config: DeployConfig,
        report_dir: Path,
        skip_phases: Optional[list[str]] = None,
        dry_run: bool = False
    ):
        self.scenario = scenario
        self.config = config
        self.report_dir = report_dir
        self.skip_phases = skip_phases or []
        self.dry_run = dry_run
        self.report = DeployReport(project=config.name, report_dir=report_dir, scenario=scenario.name)
        self.context: dict[str, Any] = {}

    def preview(self) -> bool:
        """Show what would be executed without running. Returns True."""
        phases = self.scenario.get_phases(self.config)

        print("")
        print("═══════════════════════════════════════════════════════════════")
        print(f"  DRY-RUN: {self.scenario.name}")
        print(f"  Project: {self.config.project_id}  Region: {self.config.region}")
        print("═══════════════════════════════════════════════════════════════")
        print("")

        print("Phases to execute:")
        phase_count = 0
        skip_count = 0

        for phase_name, action, description in phases:
            action_type = type(action).__name__
            if phase_name in self.skip_phases:
                print(f"  [SKIP] {phase_name}: {description}")
                skip_count += 1
            else:
                print(f"  [ OK ] {phase_name}: {description}")
                phase_count += 1
            print(f"         Action: {action_type}")
            if hasattr(action, 'timeout') and action.timeout:
                print(f"         Timeout: {action.timeout}s")
            print("")

        print("═══════════════════════════════════════════════════════════════")
        print(f"  Summary: {phase_count} phases to execute, {skip_count} to skip")
        print("  Mode: DRY-RUN (no changes made)")
        print("═══════════════════════════════════════════════════════════════")
        print("")

        return True

    def run(self) -> bool:
        """Run all phases. Returns True if no fatal phase failed."""
        if self.dry_run:
            return self.preview()

        logger.info(f"Starting scenario '{self.scenario.name}' for project: {self.config.project_id}")
        self.report.start()

        phases = self.scenario.get_phases(self.config)
        all_passed = True
        start_time = time.time()

        for phase_name, action, description in phases:
            if phase_name in self.skip_phases:
                logger.info(f"Skipping phase: {phase_name}")
                self.report.skip_phase(phase_name, description)
                continue

            logger.info(f"Running phase: {phase_name} - {description}")
            self.report.start_phase(phase_name, description)

            try:
                result = action.run(self.config, self.context)
            except Exception as e:
                logger.exception(f"Phase {phase_name} raised exception")
                self.report.fail_phase(phase_name, str(e), 0)
                all_passed = False
                break

            self.context.update(result.context_updates or {})
            if result.success:
                logger.info(f"Phase {phase_name} passed")
                self.report.pass_phase(phase_name, result.message, result.duration)
            elif result.continue_on_failure:
                logger.warning(f"Phase {phase_name} failed (continuing): {result.message}")
                self.report.warn_phase(phase_name, result.message, result.duration)
            else:
                logger.error(f"Phase {phase_name} failed: {result.message}")
                self.report.fail_phase(phase_name, result.message, result.duration)
                all_passed = False
                break

        total_time = time.time() - start_time
        logger.info(f"Scenario completed in {total_time:.1f}s")
        self.report.finish(all_passed)
        return all_passed


# Registry of available scenarios
_scenarios: dict[str, type[Scenario]] = {}

DEFAULT_SCENARIO = 'deploy-all'


def register_scenario(cls: type[Scenario]) -> type[Scenario]:
    """Decorator to register a scenario class."""
    _scenarios[cls.name] = cls
    return cls


def get_scenario(name: str) -> Scenario:
    """Get a scenario instance by name."""
    if name not in _scenarios:
        available = list(_scenarios.keys())
        raise ValueError(f"Unknown scenario: {name}. Available: {available}")
    return _scenarios[name]()


def list_scenarios() -> list[str]:
    """List available scenario names."""
    return sorted(_scenarios.keys())


# Import scenarios to trigger registration
from scenarios import deploy  # noqa: E402, F401
from scenarios import push_image  # noqa: E402, F401
from scenarios import destroy  # noqa: E402, F401
