from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Mapping

from ..errors import TemplateError

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "%%"
_TOKEN_RE = re.compile(r"%%[A-Za-z0-9_]*%%?")


def token(name: str) -> str:
    return f"{TOKEN_PREFIX}{name}{TOKEN_PREFIX}"


def _assets_dir() -> Path:
    # relay_installer/lib/templates.py -> relay_installer/assets
    return Path(__file__).resolve().parents[1] / "assets"


def load_template(name: str) -> str:
    return (_assets_dir() / name).read_text(encoding="utf-8")


def render(text: str, values: Mapping[str, str]) -> str:
    """Replace every ``%%NAME%%`` occurrence for every known NAME."""

    out = text
    for name, value in values.items():
        out = out.replace(token(name), value)
    return out


def find_leftover_tokens(text: str) -> List[str]:
    if TOKEN_PREFIX not in text:
        return []
    return _TOKEN_RE.findall(text) or [TOKEN_PREFIX]


def assert_no_tokens(paths: Iterable[Path]) -> None:
    bad = {}
    for p in paths:
        left = find_leftover_tokens(p.read_text(encoding="utf-8"))
        if left:
            bad[str(p)] = sorted(set(left))
    if bad:
        raise TemplateError(f"unsubstituted template tokens: {bad}")


def write_rendered(path: Path, template: str, values: Mapping[str, str], *, mode: int = 0o644) -> Path:
    text = render(template, values)
    left = find_leftover_tokens(text)
    if left:
        raise TemplateError(f"unsubstituted template tokens in {path}: {sorted(set(left))}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    path.chmod(mode)
    logger.info("Wrote %s", path)
    return path
