"""Pre-flight validation checks for scenarios.

Catches missing tooling and credentials before anything touches the
cloud project, with actionable error messages.
"""

import logging

from common import run_command, which
from config import DeployConfig

logger = logging.getLogger(__name__)

DEFAULT_TOOLS = ('gcloud', 'terraform')

INSTALL_HINTS = {
    'gcloud': 'Install the Google Cloud SDK: https://cloud.google.com/sdk/docs/install',
    'terraform': 'Install Terraform (or set terraform_bin: tofu in site.yaml)',
    'docker': 'Install Docker and make sure the daemon is running',
}


# -----------------------------------------------------------------------------
# Tooling
# -----------------------------------------------------------------------------

def validate_tools(tools: tuple, config: DeployConfig) -> list[str]:
    """Check that every required executable is on PATH.

    'terraform' resolves to config.terraform_bin, so tofu works too.

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []
    for tool in tools:
        binary = config.terraform_bin if tool == 'terraform' else tool
        if which(binary) is None:
            errors.append(
                f"{binary} not found on PATH\n"
                f"  {INSTALL_HINTS.get(tool, 'Install it and retry')}"
            )
    return errors


# -----------------------------------------------------------------------------
# Credentials
# -----------------------------------------------------------------------------

def validate_gcloud_auth(timeout: int = 30) -> list[str]:
    """Check gcloud has an active account.

    Returns:
        List of validation error messages (empty if valid)
    """
    rc, out, err = run_command(
        ['gcloud', 'auth', 'list', '--filter=status:ACTIVE', '--format=value(account)'],
        timeout=timeout,
    )
    if rc != 0:
        return [f"Could not query gcloud credentials: {err.strip() or f'exit {rc}'}"]

    account = out.strip().splitlines()[0] if out.strip() else ''
    if not account:
        return [
            "No active gcloud account\n"
            "  Run: gcloud auth login\n"
            "  And: gcloud auth application-default login"
        ]

    logger.info(f"gcloud authenticated as {account}")
    return []


def validate_docker_daemon(timeout: int = 30) -> list[str]:
    """Check the docker daemon answers."""
    rc, _, err = run_command(['docker', 'info', '--format', '{{.ServerVersion}}'], timeout=timeout)
    if rc != 0:
        return [
            "Docker daemon not reachable\n"
            f"  {err.strip().splitlines()[-1] if err.strip() else 'docker info failed'}\n"
            "  Check: the daemon is running and your user may access it"
        ]
    return []


# -----------------------------------------------------------------------------
# Combined readiness
# -----------------------------------------------------------------------------

def validate_readiness(config: DeployConfig, scenario_class: type) -> list[str]:
    """Run every check the scenario needs.

    Args:
        config: Deployment settings
        scenario_class: Scenario class (reads required_tools)

    Returns:
        List of validation error messages (empty if ready)
    """
    tools = getattr(scenario_class, 'required_tools', DEFAULT_TOOLS)

    errors = validate_tools(tools, config)
    if errors:
        return errors  # credential checks need the tools

    if 'gcloud' in tools:
        errors.extend(validate_gcloud_auth())
    if 'docker' in tools:
        errors.extend(validate_docker_daemon())

    return errors
