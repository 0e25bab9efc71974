from __future__ import annotations

import logging

from ..lib.fetch import fetch_and_verify
from ..lib.requirements import check_requirements
from ..state_store import InstallState
from .base import Step, StepContext

logger = logging.getLogger(__name__)

ARTIFACTS_DIR = "xray-artifacts"
DOWNLOAD_EXE_REQUIRED = ["wget", "unzip"]


class DownloadBinaryStep:
    step_id = Step.DOWNLOAD_BINARY

    def run(self, ctx: StepContext, state: InstallState) -> InstallState:
        check_requirements(ctx.runner, DOWNLOAD_EXE_REQUIRED)

        version = ctx.latest_version()
        logger.info("Latest xray version: %s", version.prefixed)

        dest = state.home_dir / ARTIFACTS_DIR / version.value
        fetch_and_verify(ctx.runner, version, dest)
        return state.with_download_dir(dest)
