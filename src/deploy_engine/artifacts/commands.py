"""Thin wrapper over subprocess for the external tools a deployment drives."""
import logging
import subprocess
from typing import Callable, List, Optional

from deploy_engine.core.exceptions import ArtifactError

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


def run_command(cmd: List[str], run: Runner = subprocess.run, cwd: Optional[str] = None,
                input: Optional[str] = None, timeout: Optional[float] = None,
                description: Optional[str] = None, check: bool = True) -> subprocess.CompletedProcess:
    """Run ``cmd`` capturing text output.

    Raises:
        ArtifactError: the command is missing, timed out, or (with ``check``) exited non-zero
    """
    description = description or cmd[0]
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = run(cmd, capture_output=True, text=True, cwd=cwd, input=input, timeout=timeout)
    except FileNotFoundError as e:
        raise ArtifactError(f"Required command '{cmd[0]}' not found. Please install it.") from e
    except subprocess.TimeoutExpired as e:
        raise ArtifactError(f"{description} timed out after {timeout}s") from e

    if check and result.returncode != 0:
        logger.error(f"{description} failed with exit code {result.returncode}")
        if result.stdout:
            logger.error(f"Command output: {result.stdout.strip()}")
        if result.stderr:
            logger.error(f"Command error: {result.stderr.strip()}")
        raise ArtifactError(
            f"{description} failed: {(result.stderr or result.stdout or '').strip()}",
            last_status=str(result.returncode),
        )
    return result
