from __future__ import annotations

import logging
from typing import Iterable

from .command import CommandRunner

logger = logging.getLogger(__name__)


def open_firewall_ports_and_enable(runner: CommandRunner, ports: Iterable[int]) -> None:
    # ufw allow is additive; re-running adds nothing new.
    for port in ports:
        runner.run(["ufw", "allow", str(port)])
    runner.run(["ufw", "--force", "enable"])
    logger.info("Firewall enabled")
