from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import InstallerError
from .install_config import build_install_args, parse_user_ids_file
from .lib.acme import issuer_for
from .lib.command import CommandRunner
from .lib.env import cert_strategy_from_env, default_state_path, paths_from_env, pinned_xray_version
from .lib.github import get_latest_xray_version
from .lib.version import Version
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import SubprocessLauncher, execute_step, run_install_manager, select_steps
from .steps import ORDERED_STEPS, Step, StepContext

logger = logging.getLogger(__name__)


def _latest_version() -> Version:
    pinned = pinned_xray_version()
    if pinned:
        return Version.parse(pinned)
    return get_latest_xray_version()


def build_step_context() -> StepContext:
    try:
        issuer = issuer_for(cert_strategy_from_env())
    except ValueError as e:
        raise SystemExit(str(e))
    return StepContext(
        runner=CommandRunner(),
        issuer=issuer,
        latest_version=_latest_version,
        paths=paths_from_env(),
    )


def _install_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    ids = list(args.add_user_id or [])
    if args.add_user_ids_file:
        ids += parse_user_ids_file(Path(args.add_user_ids_file).read_text(encoding="utf-8"))
    return {
        "api": args.api,
        "api_port": args.api_port,
        "domain": args.domain,
        "domain_renew_url": args.domain_renew_url,
        "email": args.email,
        "add_users_count": args.add_users_count,
        "add_user_ids": ids,
    }


def cmd_install(args: argparse.Namespace) -> int:
    start_at = Step.parse(args.start_at) if args.start_at else None
    stop_after = Step.parse(args.stop_after) if args.stop_after else None
    try:
        select_steps(start_at, stop_after)
    except ValueError as e:
        raise SystemExit(f"invalid step range: {e}")

    install_args = None
    if start_at is None:
        try:
            install_args = build_install_args(config_path=args.config, overrides=_install_overrides(args))
        except (ValueError, OSError) as e:
            raise SystemExit(f"invalid install parameters: {e}")

    result = run_install_manager(
        install_args,
        state_path=args.state,
        launcher=SubprocessLauncher(log_path=args.log_actual),
        start_at=start_at,
        stop_after=stop_after,
    )
    logger.info("Ran steps: %s", ", ".join(result.ran_steps))
    return 0


def cmd_install_step(args: argparse.Namespace) -> int:
    execute_step(
        Step.parse(args.step),
        state_path=args.state,
        ctx=build_step_context(),
        run_id=args.run_id,
    )
    return 0


def cmd_steps(args: argparse.Namespace) -> int:
    for step in ORDERED_STEPS:
        print(f"{step}\t{'root' if step.requires_root else 'user'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    step_names = [str(s) for s in ORDERED_STEPS]

    p = argparse.ArgumentParser(prog="relay-installer")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to installer log")
    p.add_argument("-v", "--verbose", action="store_true", help="Show debug output on the console")

    sub = p.add_subparsers(dest="service", required=True)
    xray = sub.add_parser("xray", help="Xray VLESS relay behind nginx")
    xsub = xray.add_subparsers(dest="subcmd", required=True)

    sp = xsub.add_parser("install", help="Run every install step")
    sp.add_argument("--config", default=None, help="YAML file with install parameters")
    sp.add_argument("--state", default=default_state_path(), help="Path to install state (json|yaml)")
    sp.add_argument("--api", action="store_true", help="Enable the xray API on localhost")
    sp.add_argument("--api-port", type=int, default=None)
    sp.add_argument("--domain", default=None)
    sp.add_argument("--domain-renew-url", default=None, help="URL requested before each certificate renewal")
    sp.add_argument("--email", default=None, help="ACME account e-mail")
    sp.add_argument("--add-users-count", type=int, default=None, help="Generate this many users")
    sp.add_argument("--add-user-id", action="append", default=None, help="Add a user with this id (repeatable)")
    sp.add_argument("--add-user-ids-file", default=None, help="File with one user id per line")
    sp.add_argument("--start-at", choices=step_names, default=None, help="Resume from this step using saved state")
    sp.add_argument("--stop-after", choices=step_names, default=None, help="Stop after this step")
    sp.set_defaults(func=cmd_install)

    sp = xsub.add_parser("install-step", help="Run a single install step against saved state")
    sp.add_argument("step", choices=step_names)
    sp.add_argument("--state", default=default_state_path(), help="Path to install state (json|yaml)")
    sp.add_argument("--run-id", default=None, help=argparse.SUPPRESS)
    sp.set_defaults(func=cmd_install_step)

    sp = xsub.add_parser("steps", help="List install steps and their privilege")
    sp.set_defaults(func=cmd_steps)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    tag = getattr(args, "step", None) or args.subcmd
    args.log_actual = configure_logging(log_path=args.log, tag=tag, verbose=args.verbose)

    try:
        return int(args.func(args))
    except InstallerError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        return 130
