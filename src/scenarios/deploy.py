"""Deployment scenarios.

deploy-all provisions everything, pushes the wiki image and points Cloud
Run at it. deploy stops after the infrastructure and prints the manual
steps for the image.
"""

from actions import (
    ConfigureDockerAuthAction,
    ConfirmedAction,
    DescribeServiceUrlAction,
    EnableApisAction,
    ProvisionStackAction,
    PushImageAction,
    RenderStackAction,
    SetProjectAction,
    TerraformApplyAction,
    TerraformInitAction,
    TerraformOutputAction,
    TerraformPlanAction,
    UpdateServiceImageAction,
    VerifyServiceAction,
)
from config import DeployConfig
from scenarios import register_scenario


def _infrastructure_phases(provision_action) -> list[tuple[str, object, str]]:
    return [
        ('set_project', SetProjectAction(
            name='set-project',
        ), 'Set gcloud project'),

        ('enable_apis', EnableApisAction(
            name='enable-apis',
        ), 'Enable required GCP APIs'),

        ('render', RenderStackAction(
            name='render-stack',
        ), 'Render resource graph'),

        ('init', TerraformInitAction(
            name='terraform-init',
        ), 'Initialize Terraform'),

        ('plan', TerraformPlanAction(
            name='terraform-plan',
        ), 'Plan Terraform deployment'),

        ('apply', provision_action, 'Apply Terraform deployment'),

        ('outputs', TerraformOutputAction(
            name='terraform-output',
        ), 'Read Terraform outputs'),
    ]


@register_scenario
class DeployAll:
    """Provision infrastructure, push the wiki image, update Cloud Run."""

    name = 'deploy-all'
    description = 'Provision infrastructure, push image, update Cloud Run (full cycle)'
    required_tools = ('gcloud', 'terraform', 'docker')
    expected_runtime = 1200

    def get_phases(self, config: DeployConfig) -> list[tuple[str, object, str]]:
        """Return phases for a complete deployment."""
        return _infrastructure_phases(ProvisionStackAction(name='provision-stack')) + [
            ('docker_auth', ConfigureDockerAuthAction(
                name='docker-auth',
            ), 'Configure Docker authentication for Artifact Registry'),

            ('push_image', PushImageAction(
                name='push-image',
            ), 'Pull, tag and push the wiki image'),

            ('update_service', UpdateServiceImageAction(
                name='update-service',
            ), 'Point Cloud Run at the pushed image'),

            ('reapply', ConfirmedAction(
                name='reapply',
                question="Re-apply Terraform so the service definition records the pushed image?",
                action=TerraformApplyAction(name='terraform-reapply'),
            ), 'Optionally re-apply with the pinned image'),

            ('service_url', DescribeServiceUrlAction(
                name='service-url',
            ), 'Read service URL'),

            ('verify', VerifyServiceAction(
                name='verify-service',
            ), 'Check the service responds'),
        ]

    def summary(self, config: DeployConfig, context: dict) -> list[str]:
        """Lines printed after a successful run."""
        registry = context.get('artifact_registry_url', config.registry_url)
        return [
            "Deployment Summary:",
            f"   Project ID: {config.project_id}",
            f"   Region: {config.region}",
            f"   Service: {config.service_name}",
            f"   Database: {config.sql_instance}",
            f"   Registry: {registry}",
            "",
            "Next Steps:",
            "1. Visit the URL above to complete Wiki.js setup",
            "2. The database connection is pre-configured",
            "3. Create your admin account and start using Wiki.js!",
            "",
            "Useful commands:",
            f"   View logs: gcloud run services logs read {config.service_name} --region={config.region}",
            "   Destroy all: wikirun --scenario destroy",
        ]


@register_scenario
class DeployInfrastructure:
    """Provision infrastructure only; the image is pushed separately."""

    name = 'deploy'
    description = 'Provision infrastructure only (push the image with push-image)'
    required_tools = ('gcloud', 'terraform')
    expected_runtime = 900

    def get_phases(self, config: DeployConfig) -> list[tuple[str, object, str]]:
        """Return phases for infrastructure provisioning."""
        return _infrastructure_phases(TerraformApplyAction(name='terraform-apply'))

    def summary(self, config: DeployConfig, context: dict) -> list[str]:
        registry = context.get('artifact_registry_url', config.registry_url)
        upstream = config.upstream_image
        target = f'{registry}/{config.image_name}:{config.primary_tag}'
        return [
            "Next steps:",
            "1. Push the Wiki.js image to Artifact Registry:",
            f"   docker pull {upstream}",
            f"   docker tag {upstream} {target}",
            f"   gcloud auth configure-docker {config.registry_host}",
            f"   docker push {target}",
            "   (or run: wikirun --scenario push-image)",
            "",
            "2. Update the Cloud Run service to use the pushed image:",
            "   wikirun --scenario push-image   (pins the image for later applies)",
            f"   or: terraform apply -var container_image={target}",
            "   A plain terraform apply keeps the placeholder image.",
        ]
