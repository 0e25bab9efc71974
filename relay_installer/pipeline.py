"""Step orchestration.

The orchestrator never performs step work itself. It persists an
``InstallState`` and hands each step, in order, to a ``StepLauncher``. The
default launcher re-executes this program once per step so that only the steps
flagged ``requires_root`` run under sudo. Each step invocation reloads the state
file, which is what makes ``start_at`` resumption possible.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from .errors import InstallerError, StepFailedError
from .install_config import InstallArgs
from .lib.env import resolve_home
from .state_store import (
    InstallState,
    check_run_id,
    load_state,
    save_state,
    state_lock,
)
from .steps import ORDERED_STEPS, STEP_IMPLS, Step, StepContext

logger = logging.getLogger(__name__)

# Passed through sudo so a privileged step sees the operator's settings.
PRESERVED_ENV = (
    "RELAY_INSTALLER_ROOT",
    "RELAY_INSTALLER_CERT_STRATEGY",
    "RELAY_INSTALLER_XRAY_VERSION",
)


class StepLauncher(Protocol):
    def launch(self, step: Step, *, state_path: str, run_id: str) -> int:
        """Run one step to completion and return its exit code."""
        ...


class SubprocessLauncher:
    def __init__(self, *, log_path: str, python: str = sys.executable):
        self.log_path = log_path
        self.python = python

    def command_for(self, step: Step, *, state_path: str, run_id: str) -> List[str]:
        argv = [
            self.python,
            "-m",
            "relay_installer",
            "--log",
            self.log_path,
            "xray",
            "install-step",
            str(step),
            "--state",
            state_path,
            "--run-id",
            run_id,
        ]
        if step.requires_root and os.geteuid() != 0:
            argv = ["sudo", f"--preserve-env={','.join(PRESERVED_ENV)}", *argv]
        return argv

    def launch(self, step: Step, *, state_path: str, run_id: str) -> int:
        argv = self.command_for(step, state_path=state_path, run_id=run_id)
        logger.info("CMD %s", " ".join(shlex.quote(a) for a in argv))
        # Not captured: the operator needs to see prompts and the printed URIs.
        return subprocess.run(argv).returncode


class InProcessLauncher:
    """Runs steps in the current process; same contract as a child exit code."""

    def __init__(self, ctx: StepContext):
        self.ctx = ctx

    def launch(self, step: Step, *, state_path: str, run_id: str) -> int:
        try:
            execute_step(step, state_path=state_path, ctx=self.ctx, run_id=run_id)
        except InstallerError as e:
            logger.error("Step %s failed: %s", step, e)
            return 1
        return 0


@dataclass(frozen=True)
class PipelineResult:
    state: InstallState
    ran_steps: List[str]


def select_steps(start_at: Optional[Step] = None, stop_after: Optional[Step] = None) -> List[Step]:
    steps: Sequence[Step] = ORDERED_STEPS
    if start_at is not None:
        steps = steps[steps.index(start_at):]
    if stop_after is not None:
        if stop_after not in steps:
            raise ValueError(f"stop_after {stop_after} comes before start_at {start_at}")
        steps = steps[: steps.index(stop_after) + 1]
    return list(steps)


def run_install_manager(
    args: Optional[InstallArgs],
    *,
    state_path: str,
    launcher: StepLauncher,
    home_dir: Optional[Path] = None,
    start_at: Optional[Step] = None,
    stop_after: Optional[Step] = None,
) -> PipelineResult:
    """Run the install steps in order, each through ``launcher``.

    Without ``start_at`` a fresh state is written from ``args``. With
    ``start_at`` the existing state file is reused (``args`` is ignored) so
    already completed steps are not repeated.
    """

    steps = select_steps(start_at, stop_after)
    ran: List[str] = []

    with state_lock(state_path):
        if start_at is None:
            if args is None:
                raise ValueError("install args are required for a fresh installation")
            state = InstallState.create(args, home_dir or resolve_home())
        else:
            state = load_state(state_path).with_new_run_id()
            logger.info("Resuming installation at %s", start_at)
        save_state(state_path, state)

        for step in steps:
            logger.info("Running step %s (root=%s)", step, step.requires_root)
            rc = launcher.launch(step, state_path=state_path, run_id=state.run_id)
            if rc != 0:
                raise StepFailedError(str(step), rc)
            ran.append(str(step))

        state = load_state(state_path)

    logger.info("Installation finished: %s", ", ".join(ran))
    return PipelineResult(state=state, ran_steps=ran)


def _execute(step: Step, *, state_path: str, ctx: StepContext, run_id: Optional[str]) -> InstallState:
    state = load_state(state_path)
    check_run_id(state, run_id)

    new_state = STEP_IMPLS[step].run(ctx, state)

    if new_state != state:
        # Generation check right before writing: nobody else may have re-stamped it.
        check_run_id(load_state(state_path), state.run_id)
        save_state(state_path, new_state)
    logger.info("Step %s completed", step)
    return new_state


def execute_step(
    step: Step,
    *,
    state_path: str,
    ctx: StepContext,
    run_id: Optional[str] = None,
) -> InstallState:
    """Perform exactly one step against the persisted state.

    ``run_id`` is given when the orchestrator (which holds the state lock)
    launched us. A manual single-step run passes none and must take the lock
    itself.
    """

    if run_id is None:
        with state_lock(state_path):
            return _execute(step, state_path=state_path, ctx=ctx, run_id=None)
    return _execute(step, state_path=state_path, ctx=ctx, run_id=run_id)
