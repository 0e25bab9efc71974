from __future__ import annotations

import logging
from typing import Sequence

from ..errors import MissingPrerequisiteError
from .command import CommandRunner

logger = logging.getLogger(__name__)


def check_requirements(runner: CommandRunner, bin_reqs: Sequence[str]) -> None:
    """Fail before any mutation if an executable is not on PATH."""

    logger.info("Checking required executables: %s", ", ".join(bin_reqs))
    missing = [r for r in bin_reqs if not runner.which(r)]
    for r in missing:
        logger.error("%s not found", r)
    if missing:
        raise MissingPrerequisiteError(missing)
