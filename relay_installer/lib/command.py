from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from typing import Mapping, Sequence

from ..errors import CommandError

logger = logging.getLogger(__name__)

# Same code a shell reports for an unknown command.
EXIT_NOT_FOUND = 127


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


class CommandRunner:
    """Process capability handed to steps; tests swap in a fake.

    Every command is logged as ``CMD ...`` before it runs. Output is captured
    and logged at DEBUG. ``env`` is layered over the inherited environment.
    """

    def run(
        self,
        argv: Sequence[str],
        *,
        check: bool = True,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> CmdResult:
        argv_list = [str(a) for a in argv]
        where = f" (in {cwd})" if cwd else ""
        logger.info("CMD %s%s", _fmt_argv(argv_list), where)

        try:
            p = subprocess.run(
                argv_list,
                capture_output=True,
                text=True,
                cwd=cwd,
                env={**os.environ, **(env or {})},
            )
        except FileNotFoundError as e:
            result = CmdResult(argv=argv_list, returncode=EXIT_NOT_FOUND, stdout="", stderr=str(e))
        else:
            result = CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)

        for label, text in (("stdout", result.stdout), ("stderr", result.stderr)):
            if text.strip():
                logger.debug("%s of %s:\n%s", label, argv_list[0], text.rstrip())

        if not result.ok:
            logger.warning("%s exited with %d", argv_list[0], result.returncode)
            if check:
                raise CommandError(argv_list, result.returncode, result.stderr)
        return result

    def which(self, exe: str) -> bool:
        return shutil.which(exe) is not None
