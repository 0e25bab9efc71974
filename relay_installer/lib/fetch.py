from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from ..errors import VerificationError
from .command import CommandRunner
from .version import Version

logger = logging.getLogger(__name__)

DL_URL = "https://github.com/XTLS/Xray-core/releases/download"
DL_FILE = "Xray-linux-64.zip"
DGST_SUFFIX = ".dgst"


def download_url(version: Version, filename: str = DL_FILE) -> str:
    return f"{DL_URL}/{version.prefixed}/{filename}"


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_digest(archive: Path, dgst: Path) -> str:
    """Check that the archive's SHA-256 appears in the published digest file.

    Xray ships one ``.dgst`` per archive listing several algorithms
    (``SHA2-256= ...``); presence of our hex digest is enough.
    """

    digest = sha256_file(archive)
    text = dgst.read_text(encoding="utf-8", errors="replace")
    if digest.lower() not in text.lower():
        logger.error("%s:\n%s", dgst.name, text)
        raise VerificationError(f"hash check failed for {archive.name}: sha256 {digest} not in {dgst.name}")
    logger.info("Verified %s (sha256 %s)", archive.name, digest)
    return digest


def fetch_and_verify(runner: CommandRunner, version: Version, dest_dir: Path) -> Path:
    """Download the release archive and its digest into dest_dir, verify, unpack.

    Returns dest_dir. Nothing is unpacked when verification fails.
    """

    dest_dir.mkdir(parents=True, exist_ok=True)
    url = download_url(version)

    runner.run(["wget", "--no-clobber", "--quiet", url], cwd=str(dest_dir))
    runner.run(["wget", "--no-clobber", "--quiet", url + DGST_SUFFIX], cwd=str(dest_dir))

    archive = dest_dir / DL_FILE
    verify_digest(archive, dest_dir / (DL_FILE + DGST_SUFFIX))

    runner.run(["unzip", "-o", "-q", str(archive), "-d", str(dest_dir)])
    return dest_dir
