from __future__ import annotations

import hashlib
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from relay_installer.errors import CommandError
from relay_installer.install_config import InstallArgs
from relay_installer.lib.acme import PlaceholderIssuer
from relay_installer.lib.command import CmdResult
from relay_installer.lib.env import Paths
from relay_installer.lib.fetch import DGST_SUFFIX
from relay_installer.lib.version import Version
from relay_installer.steps import StepContext

ARCHIVE_BYTES = b"PK\x03\x04 fake xray release archive"
XRAY_VERSION = Version("1.8.4")


class FakeRunner:
    """Records commands instead of running them.

    ``handlers`` maps an executable name to a callable(argv, cwd) that fakes
    its side effects on disk.
    """

    def __init__(
        self,
        *,
        missing: Sequence[str] = (),
        handlers: Optional[Dict[str, Callable[[List[str], Optional[str]], None]]] = None,
        fail: Optional[Callable[[List[str]], bool]] = None,
    ):
        self.missing = set(missing)
        self.handlers = dict(handlers or {})
        self.fail = fail
        self.calls: List[Tuple[List[str], Optional[str]]] = []

    def which(self, exe: str) -> bool:
        return exe not in self.missing

    def run(self, argv, *, check=True, env=None, cwd=None) -> CmdResult:
        argv = list(argv)
        self.calls.append((argv, cwd))
        handler = self.handlers.get(Path(argv[0]).name)
        if handler is not None:
            handler(argv, cwd)
        rc = 1 if (self.fail is not None and self.fail(argv)) else 0
        if check and rc != 0:
            raise CommandError(argv, rc, "fake failure")
        return CmdResult(argv=argv, returncode=rc, stdout="", stderr="")

    def argvs(self) -> List[List[str]]:
        return [a for a, _ in self.calls]


def fake_wget(digest_text: Optional[str] = None):
    def handler(argv: List[str], cwd: Optional[str]) -> None:
        name = argv[-1].rsplit("/", 1)[-1]
        target = Path(cwd or ".") / name
        if name.endswith(DGST_SUFFIX):
            text = digest_text
            if text is None:
                text = f"SHA2-256= {hashlib.sha256(ARCHIVE_BYTES).hexdigest()}\n"
            target.write_text(text, encoding="utf-8")
        else:
            target.write_bytes(ARCHIVE_BYTES)

    return handler


def fake_unzip(argv: List[str], cwd: Optional[str]) -> None:
    dest = Path(argv[argv.index("-d") + 1])
    for name in ("xray", "geoip.dat", "geosite.dat"):
        (dest / name).write_bytes(b"payload " + name.encode())


@pytest.fixture
def home(tmp_path: Path) -> Path:
    p = tmp_path / "home"
    p.mkdir()
    return p


@pytest.fixture
def paths(tmp_path: Path) -> Paths:
    root = tmp_path / "root"
    root.mkdir()
    return Paths(root=str(root))


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner(handlers={"wget": fake_wget(), "unzip": fake_unzip})


@pytest.fixture
def printed() -> List[str]:
    return []


@pytest.fixture
def ctx(runner: FakeRunner, paths: Paths, printed: List[str]) -> StepContext:
    return StepContext(
        runner=runner,
        issuer=PlaceholderIssuer(),
        latest_version=lambda: XRAY_VERSION,
        paths=paths,
        out=printed.append,
    )


@pytest.fixture
def install_args() -> InstallArgs:
    return InstallArgs(domain="example.com", email="admin@example.com", add_users_count=2)


@pytest.fixture
def state_path(tmp_path: Path) -> str:
    return str(tmp_path / "state" / "xray-state.json")
