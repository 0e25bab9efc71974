from __future__ import annotations

from typing import List, Optional

import pytest

from conftest import FakeRunner, fake_unzip, fake_wget
from relay_installer.errors import ConcurrentRunError, StepFailedError
from relay_installer.pipeline import (
    InProcessLauncher,
    SubprocessLauncher,
    execute_step,
    run_install_manager,
    select_steps,
)
from relay_installer.state_store import load_state, state_lock
from relay_installer.steps import ORDERED_STEPS, Step


class RecordingLauncher:
    """Snapshots the state file before delegating each step."""

    def __init__(self, inner, fail_on: Optional[Step] = None):
        self.inner = inner
        self.fail_on = fail_on
        self.launched: List[Step] = []
        self.before = {}

    def launch(self, step, *, state_path, run_id):
        self.launched.append(step)
        self.before[step] = load_state(state_path)
        if step is self.fail_on:
            return 3
        return self.inner.launch(step, state_path=state_path, run_id=run_id)


def test_full_run_fills_state_in_order(ctx, home, state_path, printed, install_args):
    launcher = RecordingLauncher(InProcessLauncher(ctx))
    result = run_install_manager(install_args, state_path=state_path, launcher=launcher, home_dir=home)

    assert launcher.launched == ORDERED_STEPS
    assert result.ran_steps == [str(s) for s in ORDERED_STEPS]

    assert launcher.before[Step.DOWNLOAD_BINARY].download_dir is None
    assert launcher.before[Step.INSTALL_BINARY].download_dir is not None
    assert launcher.before[Step.CONFIGURE_CERTIFICATE].cert_dir is None
    assert launcher.before[Step.CONFIGURE_REMAINDER].cert_dir is not None

    assert result.state.download_dir is not None
    assert result.state.cert_dir == home / "xray-cert"
    assert len(printed) == 2


def test_failed_step_stops_the_run(ctx, home, state_path, install_args):
    launcher = RecordingLauncher(InProcessLauncher(ctx), fail_on=Step.CONFIGURE_FIREWALL)
    with pytest.raises(StepFailedError) as exc:
        run_install_manager(install_args, state_path=state_path, launcher=launcher, home_dir=home)

    assert exc.value.returncode == 3
    assert launcher.launched[-1] is Step.CONFIGURE_FIREWALL
    assert Step.CONFIGURE_CERTIFICATE not in launcher.launched


def test_digest_mismatch_never_reaches_install(ctx, home, state_path, install_args, paths):
    bad = FakeRunner(handlers={"wget": fake_wget("SHA2-256= 00\n"), "unzip": fake_unzip})
    bad_ctx = type(ctx)(runner=bad, issuer=ctx.issuer, latest_version=ctx.latest_version, paths=paths)
    launcher = RecordingLauncher(InProcessLauncher(bad_ctx))

    with pytest.raises(StepFailedError):
        run_install_manager(install_args, state_path=state_path, launcher=launcher, home_dir=home)

    assert launcher.launched == [Step.DOWNLOAD_BINARY]
    assert load_state(state_path).download_dir is None
    assert not paths.on_host(paths.xray_bin).exists()


def test_stop_after_then_resume(ctx, home, state_path, printed, install_args):
    first = run_install_manager(
        install_args,
        state_path=state_path,
        launcher=InProcessLauncher(ctx),
        home_dir=home,
        stop_after=Step.CONFIGURE_CERTIFICATE,
    )
    assert first.state.cert_dir is not None
    assert printed == []

    second = run_install_manager(
        None,
        state_path=state_path,
        launcher=InProcessLauncher(ctx),
        start_at=Step.CONFIGURE_REMAINDER,
    )
    assert second.ran_steps == ["configure-remainder"]
    assert second.state.run_id != first.state.run_id
    assert second.state.cert_dir == first.state.cert_dir
    assert len(printed) == 2


def test_fresh_run_requires_args(state_path, ctx):
    with pytest.raises(ValueError):
        run_install_manager(None, state_path=state_path, launcher=InProcessLauncher(ctx))


def test_orchestrator_refuses_while_locked(ctx, home, state_path, install_args):
    with state_lock(state_path):
        with pytest.raises(ConcurrentRunError):
            run_install_manager(install_args, state_path=state_path, launcher=InProcessLauncher(ctx), home_dir=home)


def test_manual_step_refuses_while_locked(ctx, home, state_path, install_args):
    run_install_manager(
        install_args, state_path=state_path, launcher=InProcessLauncher(ctx), home_dir=home, stop_after=Step.DOWNLOAD_BINARY
    )
    with state_lock(state_path):
        with pytest.raises(ConcurrentRunError):
            execute_step(Step.CONFIGURE_FIREWALL, state_path=state_path, ctx=ctx)


def test_stale_run_id_is_rejected(ctx, home, state_path, install_args):
    run_install_manager(
        install_args, state_path=state_path, launcher=InProcessLauncher(ctx), home_dir=home, stop_after=Step.DOWNLOAD_BINARY
    )
    with pytest.raises(ConcurrentRunError):
        execute_step(Step.INSTALL_BINARY, state_path=state_path, ctx=ctx, run_id="stale")


def test_select_steps():
    assert select_steps() == ORDERED_STEPS
    assert select_steps(Step.CONFIGURE_FIREWALL) == ORDERED_STEPS[2:]
    assert select_steps(stop_after=Step.INSTALL_BINARY) == ORDERED_STEPS[:2]
    assert select_steps(Step.INSTALL_BINARY, Step.INSTALL_BINARY) == [Step.INSTALL_BINARY]
    with pytest.raises(ValueError):
        select_steps(Step.CONFIGURE_REMAINDER, Step.DOWNLOAD_BINARY)


def test_subprocess_command_uses_sudo_for_root_steps(monkeypatch):
    monkeypatch.setattr("relay_installer.pipeline.os.geteuid", lambda: 1000)
    launcher = SubprocessLauncher(log_path="/tmp/i.log", python="/usr/bin/python3")

    user = launcher.command_for(Step.DOWNLOAD_BINARY, state_path="/s.json", run_id="r1")
    assert user == [
        "/usr/bin/python3", "-m", "relay_installer", "--log", "/tmp/i.log",
        "xray", "install-step", "download-binary", "--state", "/s.json", "--run-id", "r1",
    ]

    root = launcher.command_for(Step.CONFIGURE_REMAINDER, state_path="/s.json", run_id="r1")
    assert root[0] == "sudo"
    assert root[1].startswith("--preserve-env=")
    assert root[2:] == user[:7] + ["configure-remainder"] + user[8:]


def test_subprocess_command_without_sudo_as_root(monkeypatch):
    monkeypatch.setattr("relay_installer.pipeline.os.geteuid", lambda: 0)
    argv = SubprocessLauncher(log_path="l").command_for(Step.CONFIGURE_FIREWALL, state_path="s", run_id="r")
    assert "sudo" not in argv
