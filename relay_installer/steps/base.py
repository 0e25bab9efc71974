from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Protocol

from ..lib.acme import CertificateIssuer
from ..lib.command import CommandRunner
from ..lib.env import PATHS, Paths
from ..lib.version import Version
from ..state_store import InstallState


class Step(str, Enum):
    """Install stages in execution order."""

    DOWNLOAD_BINARY = "download-binary"
    INSTALL_BINARY = "install-binary"
    CONFIGURE_FIREWALL = "configure-firewall"
    CONFIGURE_CERTIFICATE = "configure-certificate"
    CONFIGURE_REMAINDER = "configure-remainder"

    @property
    def requires_root(self) -> bool:
        return self is not Step.DOWNLOAD_BINARY

    @classmethod
    def parse(cls, name: str) -> "Step":
        try:
            return cls(name)
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"unknown step {name!r} (expected one of: {valid})") from None

    def __str__(self) -> str:
        return self.value


ORDERED_STEPS = list(Step)


@dataclass(frozen=True)
class StepContext:
    """Collaborators a step may touch besides the install state."""

    runner: CommandRunner
    issuer: CertificateIssuer
    latest_version: Callable[[], Version]
    paths: Paths = PATHS
    out: Callable[[str], None] = field(default=print)


class InstallStep(Protocol):
    step_id: Step

    def run(self, ctx: StepContext, state: InstallState) -> InstallState:
        ...
