"""Actions gated on an operator answer."""

import logging
import time
from dataclasses import dataclass
from typing import Any

import terminal
from common import ActionResult
from config import DeployConfig

logger = logging.getLogger(__name__)


@dataclass
class ConfirmedAction:
    """Run the wrapped action only if the operator says yes.

    A declined prompt is a successful no-op. context['assume_yes'] skips
    the question.
    """
    name: str
    question: str
    action: Any

    def run(self, config: DeployConfig, context: dict) -> ActionResult:
        start = time.time()
        if not context.get('assume_yes') and not terminal.confirm(self.question):
            logger.info(f"[{self.name}] Skipped by operator")
            return ActionResult(
                success=True,
                message="Skipped by operator",
                duration=time.time() - start
            )
        return self.action.run(config, context)
