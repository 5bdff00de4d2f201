"""Docker actions: mirror the upstream image into Artifact Registry."""

import logging
import time
from dataclasses import dataclass

from common import ActionResult, run_command, tool_error
from config import DeployConfig
from stack import write_image_vars

logger = logging.getLogger(__name__)


@dataclass
class PushImageAction:
    """Pull the upstream image, retag it for the registry and push every tag.

    Any docker failure aborts the action. On success the primary tag is
    pinned in image.auto.tfvars.json so later terraform applies keep it.
    """
    name: str
    registry_key: str = 'artifact_registry_url'
    pin_image: bool = True
    timeout_pull: int = 900
    timeout_push: int = 900

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()

        registry = context.get(self.registry_key)
        if not registry:
            return ActionResult(
                success=False,
                message=f"No {self.registry_key} in context",
                duration=time.time() - start
            )

        upstream = config.upstream_image
        targets = [f'{registry}/{config.image_name}:{tag}' for tag in config.image_tags]

        logger.info(f"[{self.name}] Pulling {upstream}...")
        rc, _, err = run_command(['docker', 'pull', upstream], timeout=self.timeout_pull)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"docker pull {upstream} failed: {tool_error(err)}",
                duration=time.time() - start
            )

        for target in targets:
            rc, _, err = run_command(['docker', 'tag', upstream, target], timeout=60)
            if rc != 0:
                return ActionResult(
                    success=False,
                    message=f"docker tag {target} failed: {tool_error(err)}",
                    duration=time.time() - start
                )

        for target in targets:
            logger.info(f"[{self.name}] Pushing {target}...")
            rc, _, err = run_command(['docker', 'push', target], timeout=self.timeout_push)
            if rc != 0:
                return ActionResult(
                    success=False,
                    message=f"docker push {target} failed: {tool_error(err)}",
                    duration=time.time() - start
                )

        pushed_image = targets[0]
        if self.pin_image:
            path = write_image_vars(pushed_image, config.terraform_dir)
            logger.debug(f"[{self.name}] Pinned {pushed_image} in {path}")

        return ActionResult(
            success=True,
            message=f"Pushed {', '.join(targets)}",
            duration=time.time() - start,
            context_updates={'pushed_image': pushed_image, 'pushed_tags': targets}
        )
