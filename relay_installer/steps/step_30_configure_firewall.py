from __future__ import annotations

import logging

from ..lib.firewall import open_firewall_ports_and_enable
from ..lib.requirements import check_requirements
from ..state_store import InstallState
from .base import Step, StepContext

logger = logging.getLogger(__name__)

# ssh, ACME http-01 + redirect, VLESS/TLS
FIREWALL_PORTS = (22, 80, 443)


class ConfigureFirewallStep:
    step_id = Step.CONFIGURE_FIREWALL

    def run(self, ctx: StepContext, state: InstallState) -> InstallState:
        check_requirements(ctx.runner, ["ufw"])
        open_firewall_ports_and_enable(ctx.runner, FIREWALL_PORTS)
        return state
