"""gcloud CLI actions: project selection, API activation, Cloud Run updates."""

import logging
import time
from dataclasses import dataclass, field

import terminal
from common import ActionResult, run_command, tool_error
from config import DeployConfig

logger = logging.getLogger(__name__)

REQUIRED_APIS = [
    'cloudresourcemanager.googleapis.com',
    'sqladmin.googleapis.com',
    'sql-component.googleapis.com',
    'run.googleapis.com',
    'artifactregistry.googleapis.com',
    'cloudbuild.googleapis.com',
    'iam.googleapis.com',
    'compute.googleapis.com',
    'secretmanager.googleapis.com',
]


def api_dashboard_url(project_id: str) -> str:
    return f'https://console.developers.google.com/apis/dashboard?project={project_id}'


@dataclass
class SetProjectAction:
    """Point the gcloud CLI at the target project."""
    name: str
    timeout: int = 60

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()
        rc, _, err = run_command(
            ['gcloud', 'config', 'set', 'project', config.project_id],
            timeout=self.timeout,
        )
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"gcloud config set project failed: {tool_error(err)}",
                duration=time.time() - start
            )
        return ActionResult(
            success=True,
            message=f"Project set to {config.project_id}",
            duration=time.time() - start
        )


@dataclass
class EnableApisAction:
    """Enable each required API independently.

    One failed activation does not stop the others. If any failed, the
    operator decides whether to continue (context['assume_yes'] answers
    yes without asking).
    """
    name: str
    apis: list = field(default_factory=lambda: list(REQUIRED_APIS))
    timeout: int = 300

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()

        failed = []
        for api in self.apis:
            logger.info(f"[{self.name}] Enabling {api}...")
            rc, _, err = run_command(
                ['gcloud', 'services', 'enable', api, f'--project={config.project_id}'],
                timeout=self.timeout,
            )
            if rc != 0:
                logger.debug(f"[{self.name}] {api}: {err.strip()}")
                terminal.error(f"Failed to enable {api} - you may need to enable it manually")
                failed.append(api)
            else:
                terminal.success(f"{api} enabled")

        if not failed:
            return ActionResult(
                success=True,
                message=f"All {len(self.apis)} APIs enabled",
                duration=time.time() - start,
                context_updates={'failed_apis': []}
            )

        terminal.warn("Some APIs failed to enable automatically.")
        terminal.warn(f"You can enable them manually at: {api_dashboard_url(config.project_id)}")
        terminal.warn(f"Failed APIs: {', '.join(failed)}")

        if context.get('assume_yes'):
            proceed = True
            logger.warning(f"[{self.name}] Continuing despite {len(failed)} failed APIs (--yes)")
        else:
            proceed = terminal.confirm("Do you want to continue anyway?")

        if not proceed:
            return ActionResult(
                success=False,
                message="Deployment cancelled. Please enable the APIs manually and try again.",
                duration=time.time() - start,
                context_updates={'failed_apis': failed}
            )

        return ActionResult(
            success=True,
            message=f"{len(failed)} of {len(self.apis)} APIs not enabled (continuing)",
            duration=time.time() - start,
            context_updates={'failed_apis': failed}
        )


@dataclass
class ConfigureDockerAuthAction:
    """Register gcloud as docker credential helper for the registry host."""
    name: str
    timeout: int = 60

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Configuring Docker authentication for {config.registry_host}...")
        rc, _, err = run_command(
            ['gcloud', 'auth', 'configure-docker', config.registry_host, '--quiet'],
            timeout=self.timeout,
        )
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"gcloud auth configure-docker failed: {tool_error(err)}",
                duration=time.time() - start
            )
        return ActionResult(
            success=True,
            message=f"Docker authenticated for {config.registry_host}",
            duration=time.time() - start
        )


@dataclass
class UpdateServiceImageAction:
    """Point the Cloud Run service at the pushed image."""
    name: str
    image_key: str = 'pushed_image'  # context key with the full image reference
    timeout: int = 600

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()

        image = context.get(self.image_key)
        if not image:
            return ActionResult(
                success=False,
                message=f"No {self.image_key} in context",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Updating {config.service_name} to {image}...")
        rc, _, err = run_command(
            ['gcloud', 'run', 'services', 'update', config.service_name,
             f'--image={image}',
             f'--region={config.region}',
             f'--project={config.project_id}'],
            timeout=self.timeout,
        )
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"gcloud run services update failed: {tool_error(err)}",
                duration=time.time() - start
            )
        return ActionResult(
            success=True,
            message=f"{config.service_name} now serves {image}",
            duration=time.time() - start
        )


@dataclass
class DescribeServiceUrlAction:
    """Read the public URL of the Cloud Run service."""
    name: str
    url_key: str = 'service_url'
    timeout: int = 60

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()
        rc, out, err = run_command(
            ['gcloud', 'run', 'services', 'describe', config.service_name,
             f'--region={config.region}',
             f'--project={config.project_id}',
             '--format=value(status.url)'],
            timeout=self.timeout,
        )
        url = out.strip()
        if rc != 0 or not url:
            return ActionResult(
                success=False,
                message=f"Could not read URL of {config.service_name}: {tool_error(err) or 'empty response'}",
                duration=time.time() - start
            )
        return ActionResult(
            success=True,
            message=url,
            duration=time.time() - start,
            context_updates={self.url_key: url}
        )
