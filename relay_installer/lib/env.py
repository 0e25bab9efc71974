from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_HOME = "/root"
STATE_REL_PATH = ".relay-installer/xray-state.json"


@dataclass(frozen=True)
class Paths:
    """Host locations written by the installer.

    Every attribute is the path as the installed services see it. ``on_host``
    maps it below ``root`` so a scratch directory can stand in for ``/``.
    """

    root: str = "/"
    log_default: str = "/var/log/relay-installer.log"
    xray_bin: str = "/usr/local/bin/xray"
    xray_share_dir: str = "/usr/local/share/xray"
    xray_config_dir: str = "/usr/local/etc/xray"
    systemd_dir: str = "/etc/systemd/system"
    nginx_site: str = "/etc/nginx/conf.d/xray-fallback.conf"

    def on_host(self, path: str) -> Path:
        return Path(self.root) / path.lstrip("/")


PATHS = Paths()


def paths_from_env() -> Paths:
    root = os.environ.get("RELAY_INSTALLER_ROOT")
    if root:
        return Paths(root=root)
    return PATHS


def default_state_path() -> str:
    """$RELAY_INSTALLER_STATE, else ~/.relay-installer/xray-state.json."""

    return os.environ.get("RELAY_INSTALLER_STATE") or str(resolve_home() / STATE_REL_PATH)


def resolve_home() -> Path:
    home = os.environ.get("HOME")
    if not home:
        logger.warning("HOME is not set, using %s", DEFAULT_HOME)
        home = DEFAULT_HOME
    return Path(home)


def cert_strategy_from_env() -> str:
    return (os.environ.get("RELAY_INSTALLER_CERT_STRATEGY") or "acme").strip().lower()


def pinned_xray_version() -> str | None:
    v = os.environ.get("RELAY_INSTALLER_XRAY_VERSION")
    return v.strip() if v and v.strip() else None
