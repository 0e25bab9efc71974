from __future__ import annotations

import logging
import shutil

from ..errors import InstallError
from ..state_store import InstallState
from .base import Step, StepContext

logger = logging.getLogger(__name__)

GEO_FILES = ("geoip.dat", "geosite.dat")


class InstallBinaryStep:
    """Move the unpacked release into its system locations.

    The move consumes the download directory, so this step cannot be repeated
    without running download-binary again.
    """

    step_id = Step.INSTALL_BINARY

    def run(self, ctx: StepContext, state: InstallState) -> InstallState:
        src_dir = state.require_download_dir()
        sources = [src_dir / "xray", *(src_dir / f for f in GEO_FILES)]
        missing = [str(p) for p in sources if not p.exists()]
        if missing:
            raise InstallError(
                f"release files not found: {', '.join(missing)} "
                "(already installed? re-run download-binary first)"
            )

        xray_bin = ctx.paths.on_host(ctx.paths.xray_bin)
        xray_bin.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src_dir / "xray"), str(xray_bin))
        xray_bin.chmod(0o755)
        logger.info("Installed %s", xray_bin)

        share_dir = ctx.paths.on_host(ctx.paths.xray_share_dir)
        share_dir.mkdir(parents=True, exist_ok=True)
        for name in GEO_FILES:
            shutil.move(str(src_dir / name), str(share_dir / name))
        logger.info("Installed %s into %s", ", ".join(GEO_FILES), share_dir)

        ctx.paths.on_host(ctx.paths.xray_config_dir).mkdir(parents=True, exist_ok=True)
        return state
