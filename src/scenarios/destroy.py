"""Tear the deployment down."""

from actions import RenderStackAction, TerraformDestroyAction, TerraformInitAction
from config import DeployConfig
from scenarios import register_scenario


@register_scenario
class Destroy:
    """Destroy every resource tracked in terraform state."""

    name = 'destroy'
    description = 'Destroy all provisioned resources (terraform destroy)'
    required_tools = ('terraform',)
    requires_confirmation = True
    expected_runtime = 600

    def get_phases(self, config: DeployConfig) -> list[tuple[str, object, str]]:
        """Return phases for teardown."""
        return [
            ('render', RenderStackAction(
                name='render-stack',
            ), 'Render resource graph'),

            ('init', TerraformInitAction(
                name='terraform-init',
            ), 'Initialize Terraform'),

            ('destroy', TerraformDestroyAction(
                name='terraform-destroy',
            ), 'Destroy all resources'),
        ]
