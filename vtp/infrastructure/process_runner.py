import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from vtp.domain.errors import ProcessFailure

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    stdout: str
    stderr: str
    returncode: int = 0


def run_process(command: str, args: List[str], cwd: Optional[Path] = None) -> ProcessResult:
    """Runs an external tool to completion and captures both output streams.

    Raises ProcessFailure on non-zero exit or when the executable cannot be started.
    """
    cmd = [command, *args]
    logger.debug(f"PROCESS_START: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            errors="replace",
            cwd=str(cwd) if cwd else None,
        )
    except OSError as exc:
        raise ProcessFailure(command, None, str(exc)) from exc

    if result.returncode != 0:
        logger.debug(f"PROCESS_END: {command} code={result.returncode}")
        raise ProcessFailure(command, result.returncode, result.stderr or "")

    return ProcessResult(stdout=result.stdout or "", stderr=result.stderr or "", returncode=0)
