from __future__ import annotations

import logging
import shlex
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .command import CommandRunner
from .requirements import check_requirements

logger = logging.getLogger(__name__)

CERT_DIR_NAME = "xray-cert"
CERT_FILE = "xray.crt"
KEY_FILE = "xray.key"

ACME_CA = "zerossl"
ACME_INSTALL_URL = "https://get.acme.sh"
ACME_EXE_REQUIRED = ["curl", "socat"]


def cert_dir_for(home: Path) -> Path:
    return home / CERT_DIR_NAME


@dataclass(frozen=True)
class CertRequest:
    home: Path
    domain: str
    email: str


class CertificateIssuer(Protocol):
    name: str

    def issue(self, runner: CommandRunner, req: CertRequest) -> Path:
        """Make ``xray.crt``/``xray.key`` available and return their directory."""
        ...


class AcmeShIssuer:
    """Issue a certificate with acme.sh in standalone mode.

    Each sub-step checks what acme.sh already left in ``~/.acme.sh`` so a
    re-run skips bootstrap, account registration and issuance.
    """

    name = "acme"

    def _acme_home(self, home: Path) -> Path:
        return home / ".acme.sh"

    def _acme(self, home: Path, *args: str) -> list[str]:
        acme_home = self._acme_home(home)
        return [str(acme_home / "acme.sh"), "--home", str(acme_home), *args]

    def is_installed(self, home: Path) -> bool:
        return (self._acme_home(home) / "acme.sh").exists()

    def has_account(self, home: Path) -> bool:
        ca_dir = self._acme_home(home) / "ca"
        return ca_dir.exists() and any(ca_dir.rglob("account.json"))

    def has_certificate(self, home: Path, domain: str) -> bool:
        return (self._acme_home(home) / f"{domain}_ecc" / f"{domain}.cer").exists()

    def issue(self, runner: CommandRunner, req: CertRequest) -> Path:
        check_requirements(runner, ACME_EXE_REQUIRED)
        env = {"HOME": str(req.home)}

        if not self.is_installed(req.home):
            logger.info("Installing acme.sh into %s", self._acme_home(req.home))
            runner.run(
                ["sh", "-c", f"curl -fsSL {ACME_INSTALL_URL} | sh -s email={shlex.quote(req.email)}"],
                cwd=str(req.home),
                env=env,
            )

        runner.run(self._acme(req.home, "--upgrade"), env=env)
        runner.run(self._acme(req.home, "--set-default-ca", "--server", ACME_CA), env=env)

        if self.has_account(req.home):
            logger.info("ACME account already registered, skipping")
        else:
            runner.run(self._acme(req.home, "--register-account", "-m", req.email), env=env)

        if self.has_certificate(req.home, req.domain):
            logger.info("Certificate for %s already issued, skipping", req.domain)
        else:
            runner.run(
                self._acme(
                    req.home,
                    "--issue",
                    "-d",
                    req.domain,
                    "--standalone",
                    "--keylength",
                    "ec-256",
                    "--pre-hook",
                    "systemctl stop nginx || true",
                    "--post-hook",
                    "systemctl start nginx || true",
                ),
                env=env,
            )

        cert_dir = cert_dir_for(req.home)
        cert_dir.mkdir(parents=True, exist_ok=True)
        runner.run(
            self._acme(
                req.home,
                "--install-cert",
                "-d",
                req.domain,
                "--ecc",
                "--fullchain-file",
                str(cert_dir / CERT_FILE),
                "--key-file",
                str(cert_dir / KEY_FILE),
                "--reloadcmd",
                "systemctl try-restart xray || true",
            ),
            env=env,
        )
        return cert_dir


class PlaceholderIssuer:
    """Write the bundled self-signed pair instead of talking to a CA."""

    name = "placeholder"

    def issue(self, runner: CommandRunner, req: CertRequest) -> Path:
        assets = Path(__file__).resolve().parents[1] / "assets"
        cert_dir = cert_dir_for(req.home)
        cert_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(assets / "placeholder.crt", cert_dir / CERT_FILE)
        shutil.copyfile(assets / "placeholder.key", cert_dir / KEY_FILE)
        (cert_dir / KEY_FILE).chmod(0o600)
        logger.warning("Using placeholder certificate for %s (not CA-issued)", req.domain)
        return cert_dir


ISSUERS = {
    AcmeShIssuer.name: AcmeShIssuer,
    PlaceholderIssuer.name: PlaceholderIssuer,
}


def issuer_for(strategy: str) -> CertificateIssuer:
    try:
        return ISSUERS[strategy]()
    except KeyError:
        raise ValueError(f"unknown certificate strategy {strategy!r} (expected one of {sorted(ISSUERS)})") from None
