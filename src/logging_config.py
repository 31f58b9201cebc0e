"""Root logger setup for the holdfast CLI and API server.

``configure_logging`` accepts either a logging constant or a level name as it
appears in config/holdfast.yaml (``info``, ``DEBUG``). It only touches the
root logger when nothing else has configured it, so an embedding application
(or pytest's capture) keeps its own handlers.
"""

import logging
import os
from typing import Optional, Union

LOG_FILENAME = "holdfast.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(level: Union[int, str] = logging.INFO, log_dir: Optional[str] = "logs") -> None:
    """Attach console and file handlers to the root logger.

    Args:
        level: Logging constant or level name; unknown names fall back to INFO
        log_dir: Directory for holdfast.log, or None for console only
    """
    root = logging.getLogger()
    if root.handlers:
        return

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_dir is not None:
        try:
            os.makedirs(log_dir, exist_ok=True)
            fh = logging.FileHandler(os.path.join(log_dir, LOG_FILENAME), mode="a")
            fh.setFormatter(formatter)
            root.addHandler(fh)
        except OSError as e:
            logging.getLogger(__name__).warning(f"File logging disabled ({log_dir}): {e}")

    root.setLevel(_resolve_level(level))
