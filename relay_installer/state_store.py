from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import yaml

from .errors import ConcurrentRunError, SerializationError, StateConsistencyError, StateFileError
from .install_config import InstallArgs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallState:
    """Everything one step invocation learns from the previous ones.

    ``download_dir`` is set by download-binary, ``cert_dir`` by
    configure-certificate. ``home`` is the string form of ``home_dir`` used in
    generated files and shell commands.
    """

    run_id: str
    args: InstallArgs
    home_dir: Path
    home: str
    download_dir: Optional[Path] = None
    cert_dir: Optional[Path] = None

    @classmethod
    def create(cls, args: InstallArgs, home_dir: Path) -> "InstallState":
        return cls(run_id=new_run_id(), args=args, home_dir=home_dir, home=str(home_dir))

    def require_download_dir(self) -> Path:
        if self.download_dir is None:
            raise StateConsistencyError("download_dir missing from install state; run download-binary first")
        return self.download_dir

    def require_cert_dir(self) -> Path:
        if self.cert_dir is None:
            raise StateConsistencyError("cert_dir missing from install state; run configure-certificate first")
        return self.cert_dir

    def with_download_dir(self, path: Path) -> "InstallState":
        return replace(self, download_dir=path)

    def with_cert_dir(self, path: Path) -> "InstallState":
        return replace(self, cert_dir=path)

    def with_new_run_id(self) -> "InstallState":
        return replace(self, run_id=new_run_id())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "args": self.args.to_dict(),
            "home_dir": str(self.home_dir),
            "home": self.home,
            "download_dir": str(self.download_dir) if self.download_dir is not None else None,
            "cert_dir": str(self.cert_dir) if self.cert_dir is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstallState":
        try:
            download_dir = data.get("download_dir")
            cert_dir = data.get("cert_dir")
            return cls(
                run_id=str(data["run_id"]),
                args=InstallArgs.from_dict(data["args"]).validate(),
                home_dir=Path(data["home_dir"]),
                home=str(data["home"]),
                download_dir=Path(download_dir) if download_dir else None,
                cert_dir=Path(cert_dir) if cert_dir else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise StateFileError(f"malformed install state: {e}") from e


def new_run_id() -> str:
    return uuid.uuid4().hex


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"json", "yaml", "yml"}:
        return ext
    # Default to JSON for unknown extensions.
    return "json"


def load_state(path: str) -> InstallState:
    p = Path(path)
    if not p.exists():
        raise StateFileError(f"install state not found: {p}")

    fmt = _detect_format(p)
    try:
        text = p.read_text(encoding="utf-8")
        if fmt in {"yaml", "yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise StateFileError(f"cannot read install state {p}: {e}") from e

    if not isinstance(data, dict):
        raise StateFileError(f"State file must be an object/dict, got {type(data)}")

    return InstallState.from_dict(data)


def save_state(path: str, state: InstallState) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    fmt = _detect_format(p)
    try:
        if fmt in {"yaml", "yml"}:
            text = yaml.safe_dump(state.to_dict(), sort_keys=False)
        else:
            text = json.dumps(state.to_dict(), indent=2, sort_keys=True) + "\n"
    except (TypeError, ValueError, yaml.YAMLError) as e:
        raise SerializationError(f"cannot serialize install state: {e}") from e

    _write_replacing(p, text)
    logger.debug("Saved install state to %s", p)


def _write_replacing(p: Path, text: str) -> None:
    """Write via a temp file in the same directory and rename it over ``p``.

    The temp file gets the previous file's mode and, when running as root, its
    owner before the rename, so a root-run step leaves the file with the
    operator and a reader never sees a partial write.
    """

    try:
        previous = p.stat()
    except FileNotFoundError:
        previous = None

    fd, tmp = tempfile.mkstemp(prefix=".tmp.", suffix=p.suffix or ".json", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as wf:
            wf.write(text)
            wf.flush()
            os.fsync(wf.fileno())
        if previous is not None:
            os.chmod(tmp, previous.st_mode & 0o777)
            if os.geteuid() == 0:
                os.chown(tmp, previous.st_uid, previous.st_gid)
        os.replace(tmp, p)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


def lock_path_for(state_path: str) -> Path:
    return Path(state_path + ".lock")


@contextmanager
def state_lock(state_path: str, *, blocking: bool = False) -> Iterator[None]:
    """Advisory single-writer lock next to the state file."""

    lock = lock_path_for(state_path)
    lock.parent.mkdir(parents=True, exist_ok=True)
    with lock.open("a+", encoding="utf-8") as fp:
        flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
        try:
            fcntl.flock(fp.fileno(), flags)
        except BlockingIOError:
            raise ConcurrentRunError(f"another installation holds {lock}") from None
        try:
            yield
        finally:
            fcntl.flock(fp.fileno(), fcntl.LOCK_UN)


def check_run_id(state: InstallState, run_id: Optional[str]) -> None:
    if run_id is not None and state.run_id != run_id:
        raise ConcurrentRunError(
            f"install state belongs to run {state.run_id}, not {run_id}; another installation rewrote it"
        )
