"""Terraform actions for the declarative resource graph."""

import json
import logging
import os
import time
from dataclasses import dataclass
from typing import Optional

from common import ActionResult, run_command, tool_error
from config import DeployConfig
from readiness import InstanceState, wait_for_sql_instance
from stack import (
    IMAGE_VARS_FILENAME,
    SQL_INSTANCE_ADDRESS,
    apply_order,
    clear_image_vars,
    render_stack,
    write_stack,
)

logger = logging.getLogger(__name__)

# Outputs downstream phases cannot do without
REQUIRED_OUTPUTS = ('artifact_registry_url',)

NO_COLOR_COMMANDS = ('init', 'plan', 'apply', 'import', 'output', 'destroy')

# Apply errors that mean "still creating", where the Cloud SQL fallback applies
TIMEOUT_MARKERS = ('timeout', 'timed out', 'context deadline exceeded')


def run_terraform(config: DeployConfig, args: list[str], timeout: int) -> tuple[int, str, str]:
    """Run the terraform binary in the terraform directory, non-interactively.

    Subcommands that accept it get -no-color so diagnostics stay readable
    in messages and reports.
    """
    env = {**os.environ, 'TF_IN_AUTOMATION': '1', 'TF_INPUT': '0'}
    if args and args[0] in NO_COLOR_COMMANDS:
        args = [args[0], '-no-color'] + args[1:]
    cmd = [config.terraform_bin] + args
    return run_command(cmd, cwd=config.terraform_dir, timeout=timeout, env=env)


def is_timeout_error(rc: int, err: str) -> bool:
    """True if a failed apply looks like it ran out of time, not a hard error."""
    if rc == -1:
        return True
    text = err.lower()
    return any(marker in text for marker in TIMEOUT_MARKERS)


def terraform_state_list(config: DeployConfig, timeout: int = 120) -> Optional[list[str]]:
    """Addresses tracked in state, or None if state cannot be read."""
    rc, out, err = run_terraform(config, ['state', 'list'], timeout)
    if rc != 0:
        # No state yet reads as an empty graph, not an error
        if 'No state file was found' in err:
            return []
        logger.debug(f"terraform state list failed: {err.strip()}")
        return None
    return [line.strip() for line in out.splitlines() if line.strip()]


def terraform_import(config: DeployConfig, address: str, resource_id: str,
                     timeout: int = 600) -> tuple[bool, str]:
    """Register an existing cloud resource in state."""
    rc, _, err = run_terraform(config, ['import', '-input=false', address, resource_id], timeout)
    if rc != 0:
        return False, tool_error(err) or f"terraform import exited {rc}"
    return True, f"Imported {resource_id} as {address}"


@dataclass
class RenderStackAction:
    """Write main.tf.json for the deployment."""
    name: str

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        """Render the resource graph into the terraform directory."""
        start = time.time()

        if not config.terraform_dir.is_dir():
            return ActionResult(
                success=False,
                message=f"Terraform directory not found: {config.terraform_dir}",
                duration=time.time() - start
            )

        try:
            order = apply_order(render_stack(config))
            path = write_stack(config, config.terraform_dir)
        except (OSError, ValueError) as e:
            return ActionResult(
                success=False,
                message=f"Failed to render stack: {e}",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Wrote {path} ({len(order)} resources)")
        logger.debug(f"[{self.name}] Dependency order: {', '.join(order)}")
        return ActionResult(
            success=True,
            message=f"Rendered {len(order)} resources",
            duration=time.time() - start,
            context_updates={'stack_file': str(path)}
        )


@dataclass
class TerraformInitAction:
    """Run terraform init."""
    name: str
    timeout: int = 300

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Initializing Terraform...")
        rc, _, err = run_terraform(config, ['init', '-input=false'], self.timeout)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"terraform init failed: {tool_error(err)}",
                duration=time.time() - start
            )
        return ActionResult(
            success=True,
            message="Terraform initialized",
            duration=time.time() - start
        )


@dataclass
class TerraformPlanAction:
    """Run terraform plan (informational, fails only on plan errors)."""
    name: str
    timeout: int = 600

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Planning Terraform deployment...")
        rc, out, err = run_terraform(config, ['plan', '-input=false'], self.timeout)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"terraform plan failed: {tool_error(err)}",
                duration=time.time() - start
            )
        summary = next((line.strip() for line in out.splitlines() if line.strip().startswith('Plan:')),
                       'No changes')
        return ActionResult(
            success=True,
            message=summary,
            duration=time.time() - start
        )


@dataclass
class TerraformApplyAction:
    """Run terraform apply -auto-approve."""
    name: str
    timeout: Optional[int] = None  # defaults to config.apply_timeout

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()
        timeout = self.timeout or config.apply_timeout
        logger.info(f"[{self.name}] Applying Terraform deployment...")
        rc, _, err = run_terraform(config, ['apply', '-auto-approve', '-input=false'], timeout)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"terraform apply failed: {tool_error(err)}",
                duration=time.time() - start
            )
        return ActionResult(
            success=True,
            message="Terraform apply completed",
            duration=time.time() - start
        )


@dataclass
class ProvisionStackAction:
    """Apply the stack, recovering when the SQL instance outlives the apply.

    Cloud SQL creation regularly takes longer than a terraform run. When
    the instance is missing from state afterwards, poll the provider until
    it is RUNNABLE, import it, and apply again to create the rest.
    """
    name: str
    address: str = SQL_INSTANCE_ADDRESS
    timeout: Optional[int] = None  # defaults to config.apply_timeout

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()
        timeout = self.timeout or config.apply_timeout

        logger.info(f"[{self.name}] Applying Terraform deployment...")
        rc, _, err = run_terraform(config, ['apply', '-auto-approve', '-input=false'], timeout)
        apply_error = tool_error(err) if rc != 0 else ''

        tracked = terraform_state_list(config)
        if tracked is None:
            return ActionResult(
                success=False,
                message=f"terraform apply failed: {apply_error}" if apply_error
                else "Could not read terraform state",
                duration=time.time() - start
            )

        if self.address in tracked:
            if apply_error:
                return ActionResult(
                    success=False,
                    message=f"terraform apply failed: {apply_error}",
                    duration=time.time() - start
                )
            return ActionResult(
                success=True,
                message="Infrastructure deployed",
                duration=time.time() - start
            )

        # Only a timed-out apply can leave the instance still being created
        if apply_error and not is_timeout_error(rc, err):
            return ActionResult(
                success=False,
                message=f"terraform apply failed: {apply_error}",
                duration=time.time() - start
            )

        logger.warning(f"[{self.name}] {self.address} not in state; Terraform may have timed out on Cloud SQL")
        return self._recover(config, start, apply_error)

    def _recover(self, config: DeployConfig, start: float, apply_error: str = '') -> ActionResult:
        """Wait for the instance, import it, and finish the apply."""
        instance = config.sql_instance
        reported = f". Terraform reported: {apply_error}" if apply_error else ''
        result = wait_for_sql_instance(
            config.project_id,
            instance,
            attempts=config.poll_attempts,
            interval=config.poll_interval,
        )

        if result.status is InstanceState.NOT_FOUND:
            return ActionResult(
                success=False,
                message=(
                    f"Cloud SQL instance {instance} not found; check the GCP Console "
                    f"for creation errors{reported}"
                ),
                duration=time.time() - start
            )
        if not result.ready:
            return ActionResult(
                success=False,
                message=(
                    f"Cloud SQL instance {instance} did not become ready within "
                    f"{config.poll_attempts} checks (status: {result.status.value}){reported}"
                ),
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Cloud SQL instance is ready, importing into state...")
        imported, message = terraform_import(config, self.address, f'{config.project_id}:{instance}')
        if not imported:
            # Already tracked from an earlier run is fine; the apply below decides
            logger.warning(f"[{self.name}] Import skipped: {message}")

        logger.info(f"[{self.name}] Completing Terraform deployment...")
        rc, _, err = run_terraform(config, ['plan', '-input=false'], 600)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"terraform plan failed: {tool_error(err)}",
                duration=time.time() - start
            )
        rc, _, err = run_terraform(config, ['apply', '-auto-approve', '-input=false'], config.apply_timeout)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"terraform apply failed: {tool_error(err)}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message=f"Infrastructure deployed after waiting for {instance}",
            duration=time.time() - start
        )


@dataclass
class TerraformOutputAction:
    """Read terraform outputs into the context.

    Sensitive outputs are never copied; only their names are recorded.
    """
    name: str
    timeout: int = 120

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()
        rc, out, err = run_terraform(config, ['output', '-json'], self.timeout)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"terraform output failed: {tool_error(err)}",
                duration=time.time() - start
            )

        try:
            outputs = json.loads(out or '{}')
        except json.JSONDecodeError as e:
            return ActionResult(
                success=False,
                message=f"Invalid terraform output JSON: {e}",
                duration=time.time() - start
            )

        context_updates: dict = {}
        sensitive = []
        for key, entry in outputs.items():
            if entry.get('sensitive'):
                sensitive.append(key)
                continue
            context_updates[key] = entry.get('value')
        context_updates['sensitive_outputs'] = sorted(sensitive)

        missing = [key for key in REQUIRED_OUTPUTS if not context_updates.get(key)]
        if missing:
            return ActionResult(
                success=False,
                message=f"Missing terraform outputs: {', '.join(missing)}. Has Terraform been applied?",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Artifact Registry URL: {context_updates['artifact_registry_url']}")
        return ActionResult(
            success=True,
            message=f"Read {len(outputs)} outputs",
            duration=time.time() - start,
            context_updates=context_updates
        )


@dataclass
class TerraformDestroyAction:
    """Run terraform destroy -auto-approve."""
    name: str
    timeout: int = 1800

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()

        tracked = terraform_state_list(config)
        if tracked == []:
            self._clear_pin(config)
            return ActionResult(
                success=True,
                message="No resources in state, nothing to destroy",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Running terraform destroy...")
        rc, _, err = run_terraform(config, ['destroy', '-auto-approve', '-input=false'], self.timeout)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"terraform destroy failed: {tool_error(err)}",
                duration=time.time() - start
            )
        self._clear_pin(config)
        return ActionResult(
            success=True,
            message="Terraform destroy completed",
            duration=time.time() - start
        )

    def _clear_pin(self, config: DeployConfig) -> None:
        # The pinned image lives in a registry that no longer exists
        if clear_image_vars(config.terraform_dir):
            logger.info(f"[{self.name}] Removed {IMAGE_VARS_FILENAME}")
