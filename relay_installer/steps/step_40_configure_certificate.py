from __future__ import annotations

import logging

from ..lib.acme import CertRequest
from ..state_store import InstallState
from .base import Step, StepContext

logger = logging.getLogger(__name__)


class ConfigureCertificateStep:
    step_id = Step.CONFIGURE_CERTIFICATE

    def run(self, ctx: StepContext, state: InstallState) -> InstallState:
        req = CertRequest(home=state.home_dir, domain=state.args.domain, email=state.args.email)
        logger.info("Issuing certificate for %s via %s", req.domain, ctx.issuer.name)
        cert_dir = ctx.issuer.issue(ctx.runner, req)
        return state.with_cert_dir(cert_dir)
