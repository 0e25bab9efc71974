from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

from ..lib.requirements import check_requirements
from ..lib.templates import assert_no_tokens, load_template, write_rendered
from ..state_store import InstallState
from ..users import connection_uri, populate_clients
from ..xray_config import FALLBACK_PORT, XrayConfig
from .base import Step, StepContext

logger = logging.getLogger(__name__)

REMAINDER_EXE_REQUIRED = ["systemctl", "nginx"]
RENEW_SCRIPT = "acme-renew.sh"
RENEW_UNIT = "acme-renew"


def template_values(ctx: StepContext, state: InstallState) -> Dict[str, str]:
    cert_dir = state.require_cert_dir()
    return {
        "XRAY_BIN": ctx.paths.xray_bin,
        "XRAY_CONFIG_DIR": ctx.paths.xray_config_dir,
        "DOMAIN": state.args.domain,
        "DOMAIN_RENEW_URL": state.args.domain_renew_url or "",
        "HOME": state.home,
        "CERT_DIR": str(cert_dir),
        "RENEW_SCRIPT": str(state.home_dir / RENEW_SCRIPT),
        "FALLBACK_PORT": str(FALLBACK_PORT),
    }


class ConfigureRemainderStep:
    """Write xray fragments, service units, nginx site and renewal job, then start everything."""

    step_id = Step.CONFIGURE_REMAINDER

    def run(self, ctx: StepContext, state: InstallState) -> InstallState:
        cert_dir = state.require_cert_dir()
        check_requirements(ctx.runner, REMAINDER_EXE_REQUIRED)
        args = state.args

        config = XrayConfig.new(cert_dir, api=args.api, api_port=args.api_port)
        populate_clients(config.users(), args)

        config_dir = ctx.paths.on_host(ctx.paths.xray_config_dir)
        written: List[Path] = config.write_fragments(config_dir)

        values = template_values(ctx, state)
        systemd_dir = ctx.paths.on_host(ctx.paths.systemd_dir)
        written += [
            write_rendered(systemd_dir / "xray.service", load_template("xray.service"), values),
            write_rendered(ctx.paths.on_host(ctx.paths.nginx_site), load_template("nginx.conf"), values),
            write_rendered(state.home_dir / RENEW_SCRIPT, load_template(RENEW_SCRIPT), values, mode=0o755),
            write_rendered(systemd_dir / f"{RENEW_UNIT}.service", load_template(f"{RENEW_UNIT}.service"), values),
            write_rendered(systemd_dir / f"{RENEW_UNIT}.timer", load_template(f"{RENEW_UNIT}.timer"), values),
        ]
        assert_no_tokens(written)

        ctx.runner.run(
            [str(ctx.paths.on_host(ctx.paths.xray_bin)), "run", "-test", "-confdir", str(config_dir)]
        )

        ctx.runner.run(["systemctl", "daemon-reload"])
        ctx.runner.run(["systemctl", "enable", "xray"])
        ctx.runner.run(["systemctl", "restart", "xray"])
        ctx.runner.run(["systemctl", "enable", "nginx"])
        ctx.runner.run(["systemctl", "restart", "nginx"])
        ctx.runner.run(["systemctl", "enable", "--now", f"{RENEW_UNIT}.timer"])

        clients = config.clients()
        logger.info("Configured %d client(s) for %s", len(clients), args.domain)
        for client in clients:
            ctx.out(connection_uri(client, args.domain))
        return state
