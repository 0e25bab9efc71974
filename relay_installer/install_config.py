from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlsplit

import yaml

MAX_PORT = 65535
DEFAULT_API_PORT = 10085

# Values below end up in systemd units, nginx config and root-run shell text.
_LABEL_RE = re.compile(r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?")
_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+")
_URL_UNSAFE = set("\"'`$\\ ")


def is_hostname(value: str) -> bool:
    if not value or len(value) > 253:
        return False
    return all(_LABEL_RE.fullmatch(label) for label in value.split("."))


def is_safe_url(value: str) -> bool:
    if any(ord(c) < 0x20 or ord(c) == 0x7F or c in _URL_UNSAFE for c in value):
        return False
    parts = urlsplit(value)
    return parts.scheme in {"http", "https"} and bool(parts.netloc)


@dataclass(frozen=True)
class InstallArgs:
    """Caller-supplied parameters of one Xray installation.

    ``add_user_ids`` takes precedence over ``add_users_count``.
    """

    domain: str
    email: str
    api: bool = False
    api_port: int = DEFAULT_API_PORT
    domain_renew_url: Optional[str] = None
    add_users_count: int = 0
    add_user_ids: List[str] = field(default_factory=list)

    def validate(self) -> "InstallArgs":
        if not is_hostname(self.domain):
            raise ValueError(f"invalid domain: {self.domain!r}")
        if not _EMAIL_RE.fullmatch(self.email) or not is_hostname(self.email.rsplit("@", 1)[1]):
            raise ValueError(f"invalid email: {self.email!r}")
        if self.domain_renew_url is not None and not is_safe_url(self.domain_renew_url):
            raise ValueError(f"invalid domain_renew_url: {self.domain_renew_url!r}")
        if self.api and not (1 <= int(self.api_port) <= MAX_PORT):
            raise ValueError("api_port out of range")
        if int(self.add_users_count) < 0:
            raise ValueError("add_users_count must be >= 0")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "InstallArgs":
        renew = raw.get("domain_renew_url")
        return cls(
            domain=str(raw.get("domain") or ""),
            email=str(raw.get("email") or ""),
            api=bool(raw.get("api", False)),
            api_port=int(raw.get("api_port") or DEFAULT_API_PORT),
            domain_renew_url=str(renew) if renew else None,
            add_users_count=int(raw.get("add_users_count") or 0),
            add_user_ids=[str(i) for i in (raw.get("add_user_ids") or [])],
        )


def load_install_config(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("install config must be YAML")

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{p.name} must contain a mapping/object")

    # Accept the section either at top level or under "xray:".
    section = raw.get("xray", raw)
    if not isinstance(section, dict):
        raise ValueError(f"{p.name}: xray section must be a mapping")
    return section


def build_install_args(
    *,
    config_path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> InstallArgs:
    """Merge the YAML file (if any) with CLI values; CLI values that are set win."""

    raw: Dict[str, Any] = {}
    if config_path:
        raw.update(load_install_config(config_path))
    for k, v in (overrides or {}).items():
        if v is None or v == [] or v is False:
            continue
        raw[k] = v
    return InstallArgs.from_dict(raw).validate()


def parse_user_ids_file(text: str) -> List[str]:
    """One id per line; blank lines and ``#`` comments are skipped."""

    out: List[str] = []
    for line in text.splitlines():
        s = line.strip()
        if s and not s.startswith("#"):
            out.append(s)
    return out
