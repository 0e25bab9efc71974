from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .lib.env import PATHS, resolve_home

DEFAULT_LOG_PATH = PATHS.log_default
FALLBACK_LOG_REL_PATH = ".relay-installer/relay-installer.log"

_configured_path: Optional[str] = None


class _TagFilter(logging.Filter):
    """Stamps every record with the name of the process's role."""

    def __init__(self, tag: str):
        super().__init__()
        self.tag = tag

    def filter(self, record: logging.LogRecord) -> bool:
        record.tag = self.tag
        return True


def _open_file_handler(log_path: str) -> tuple[logging.Handler, str]:
    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path), log_path
    except OSError:
        fallback = resolve_home() / FALLBACK_LOG_REL_PATH
        fallback.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(fallback), str(fallback)


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    *,
    tag: str = "install",
    verbose: bool = False,
    also_console: bool = True,
) -> str:
    """Configure logging for this process and return the file actually used.

    The orchestrator and every step process append to the same file, so each
    line carries the process id and ``tag`` (``install`` or the step name).
    The file always gets DEBUG; the console gets INFO unless ``verbose``.

    An unprivileged process usually cannot create files in /var/log. Then the
    log goes to ~/.relay-installer/relay-installer.log and the orchestrator
    hands that path on to its children.
    """

    global _configured_path
    if _configured_path is not None:
        return _configured_path

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    fmt = logging.Formatter(
        fmt="%(asctime)s [%(process)d %(tag)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    tag_filter = _TagFilter(tag)

    file_handler, chosen_path = _open_file_handler(log_path)
    file_handler.setLevel(logging.DEBUG)
    handlers = [file_handler]

    if also_console:
        console = logging.StreamHandler()
        console.setLevel(logging.DEBUG if verbose else logging.INFO)
        handlers.append(console)

    for h in handlers:
        h.setFormatter(fmt)
        h.addFilter(tag_filter)
        root.addHandler(h)

    _configured_path = chosen_path
    if chosen_path != log_path:
        logging.getLogger(__name__).warning("Cannot write %s, logging to %s", log_path, chosen_path)
    return chosen_path
