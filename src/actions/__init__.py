"""Reusable deployment actions."""

from actions.terraform import (
    RenderStackAction,
    TerraformInitAction,
    TerraformPlanAction,
    TerraformApplyAction,
    ProvisionStackAction,
    TerraformOutputAction,
    TerraformDestroyAction,
)
from actions.gcloud import (
    SetProjectAction,
    EnableApisAction,
    ConfigureDockerAuthAction,
    UpdateServiceImageAction,
    DescribeServiceUrlAction,
)
from actions.docker import PushImageAction
from actions.service import VerifyServiceAction
from actions.interactive import ConfirmedAction

__all__ = [
    'RenderStackAction',
    'TerraformInitAction',
    'TerraformPlanAction',
    'TerraformApplyAction',
    'ProvisionStackAction',
    'TerraformOutputAction',
    'TerraformDestroyAction',
    'SetProjectAction',
    'EnableApisAction',
    'ConfigureDockerAuthAction',
    'UpdateServiceImageAction',
    'DescribeServiceUrlAction',
    'PushImageAction',
    'VerifyServiceAction',
    'ConfirmedAction',
]
