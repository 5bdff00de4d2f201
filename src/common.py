"""Common utilities and types for deployment automation."""

import logging
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_ANSI_ESCAPE = re.compile(r'\x1b\[[0-9;]*[A-Za-z]')
_FRAME_CHARS = '╷│╵ '


@dataclass
class ActionResult:
    """Result returned by an action."""
    success: bool
    message: str = ''
    duration: float = 0.0
    context_updates: dict = field(default_factory=dict)
    continue_on_failure: bool = False


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: int = 600,
    capture: bool = True,
    env: Optional[dict] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr)."""
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=env,
            check=False  # We handle return codes explicitly
        )
        return result.returncode, result.stdout or '', result.stderr or ''
    except subprocess.TimeoutExpired:
        return -1, '', f'Command timed out after {timeout}s'
    except OSError as e:
        return -1, '', str(e)


def which(tool: str) -> Optional[str]:
    """Return the full path of an executable on PATH, or None."""
    return shutil.which(tool)


def tool_error(text: str) -> str:
    """Command stderr as a readable message.

    Keeps every line of the diagnostic, dropping ANSI color codes and the
    box-drawing frame terraform puts around error blocks.
    """
    text = _ANSI_ESCAPE.sub('', text)
    lines = []
    for line in text.splitlines():
        line = line.lstrip(_FRAME_CHARS).strip()
        if line:
            lines.append(line)
    return '\n'.join(lines)
