"""Post-deploy checks against the running service."""

import logging
import time
from dataclasses import dataclass

from common import ActionResult
from config import DeployConfig
from readiness import check_service_url

logger = logging.getLogger(__name__)


@dataclass
class VerifyServiceAction:
    """Check the service answers over HTTP.

    Non-fatal: Wiki.js may still be running its first-start migrations.
    """
    name: str
    url_key: str = 'service_url'
    attempts: int = 3
    interval: int = 10
    timeout: float = 30.0

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()

        url = context.get(self.url_key) or context.get('wiki_js_url')
        if not url:
            return ActionResult(
                success=False,
                message=f"No {self.url_key} in context",
                duration=time.time() - start,
                continue_on_failure=True
            )

        message = ''
        for attempt in range(1, self.attempts + 1):
            ok, message = check_service_url(url, timeout=self.timeout)
            if ok:
                return ActionResult(
                    success=True,
                    message=message,
                    duration=time.time() - start
                )
            logger.debug(f"[{self.name}] Attempt {attempt}/{self.attempts}: {message}")
            if attempt < self.attempts:
                time.sleep(self.interval)

        return ActionResult(
            success=False,
            message=message,
            duration=time.time() - start,
            continue_on_failure=True
        )
