import logging
from pathlib import Path
from typing import List, Optional

from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
LOG_FILE_NAME = "transcoding.log"


def setup_logging(
    log_dir: Path,
    debug: bool = False,
    log_path: Optional[Path] = None,
    console: bool = False,
) -> logging.Logger:
    """Configures the root logger for a VTP process.

    Log lines go to ``<log_dir>/transcoding.log`` unless ``log_path`` names
    another file. ``debug`` lowers the level to DEBUG (ffmpeg command lines,
    process exits). ``console`` adds a rich handler on stderr for CLI runs.
    """
    log_file = Path(log_path) if log_path else Path(log_dir) / LOG_FILE_NAME
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    handlers: List[logging.Handler] = [logging.FileHandler(log_file)]
    if console:
        # rich prints its own time and level columns
        rich_handler = RichHandler(show_path=False, rich_tracebacks=True)
        rich_handler.setFormatter(logging.Formatter("%(message)s"))
        handlers.append(rich_handler)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging to {log_file} (debug={'on' if debug else 'off'})")
    return logger
