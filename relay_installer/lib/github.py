from __future__ import annotations

import logging

import requests

from ..errors import InstallerError
from .version import Version

logger = logging.getLogger(__name__)

API_URL = "https://api.github.com/repos/{owner}/{repo}/releases/latest"


def get_latest_release_tag(owner: str, repo: str, *, timeout: float = 30.0) -> str:
    url = API_URL.format(owner=owner, repo=repo)
    logger.info("Fetching latest release of %s/%s", owner, repo)
    try:
        resp = requests.get(
            url,
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=timeout,
        )
        resp.raise_for_status()
        tag = resp.json().get("tag_name")
    except (requests.RequestException, ValueError) as e:
        raise InstallerError(f"failed to get latest release of {owner}/{repo}: {e}") from e
    if not tag:
        raise InstallerError(f"no tag_name in latest release of {owner}/{repo}")
    return str(tag)


def get_latest_xray_version() -> Version:
    tag = get_latest_release_tag("XTLS", "Xray-core")
    try:
        return Version.parse(tag)
    except ValueError as e:
        raise InstallerError(f"got invalid version from latest release: {e}") from e
