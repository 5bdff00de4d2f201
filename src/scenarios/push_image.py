"""Push the wiki image into an already provisioned registry."""

from actions import (
    ConfigureDockerAuthAction,
    ConfirmedAction,
    PushImageAction,
    TerraformApplyAction,
    TerraformOutputAction,
)
from config import DeployConfig
from scenarios import register_scenario


@register_scenario
class PushImage:
    """Mirror the upstream image and optionally roll it out with terraform."""

    name = 'push-image'
    description = 'Push the wiki image to Artifact Registry, optionally update Cloud Run'
    required_tools = ('gcloud', 'terraform', 'docker')
    expected_runtime = 180

    def get_phases(self, config: DeployConfig) -> list[tuple[str, object, str]]:
        """Return phases for pushing the image."""
        return [
            ('outputs', TerraformOutputAction(
                name='terraform-output',
            ), 'Read Terraform outputs'),

            ('docker_auth', ConfigureDockerAuthAction(
                name='docker-auth',
            ), 'Configure Docker authentication for Artifact Registry'),

            ('push_image', PushImageAction(
                name='push-image',
            ), 'Pull, tag and push the wiki image'),

            ('update_service', ConfirmedAction(
                name='update-service',
                question="Do you want to update the Cloud Run service now?",
                action=TerraformApplyAction(name='terraform-apply'),
            ), 'Optionally apply Terraform with the pushed image'),

            ('outputs_final', TerraformOutputAction(
                name='terraform-output-final',
            ), 'Read service URL'),
        ]

    def summary(self, config: DeployConfig, context: dict) -> list[str]:
        return [
            f"Image pushed: {context.get('pushed_image', '')}",
            "If you skipped the update, run: terraform apply",
        ]
