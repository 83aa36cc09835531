# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI CLI -- Main entry point.

Usage:
    moonlight codedoc --repo https://github.com/acme/widgets.git
    moonlight cleanup --solution Widgets.sln --batch-size 3
    moonlight check                 # readiness gates only
    moonlight --version

Ctrl-C stops the batch after the file in flight and still publishes the
files that finished.
"""

import argparse
import asyncio
import logging
import signal
import sys

from moonlight import __version__
from moonlight.core.config import MoonlightConfig, load_config
from moonlight.core.errors import ConfigError, GatewayError, ReadinessError
from moonlight.core.logging import configure_logging
from moonlight.core.models import MemberVisibility, Workload, WorkloadKind
from moonlight.orchestration import Orchestrator

logger = logging.getLogger("moonlight.cli.main")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="moonlight",
        description="MoonlightAI -- AI-assisted C# documentation and cleanup",
    )
    parser.add_argument("--version", action="version", version=f"moonlight-ai {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: ~/.moonlight/config.yaml)",
    )
    common.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console logging level (default: INFO)",
    )

    work = argparse.ArgumentParser(add_help=False, parents=[common])
    work.add_argument("--repo", default=None, help="Repository URL (overrides config)")
    work.add_argument("--project", default=None, help="Project path or directory to scope the run to")
    work.add_argument("--solution", default=None, help="Solution used for build validation")
    work.add_argument("--batch-size", type=int, default=None, help="Stop after this many modified files")

    codedoc = sub.add_parser("codedoc", parents=[work], help="Add XML documentation comments")
    codedoc.add_argument(
        "--visibility",
        default=None,
        help='Members to document, e.g. "Public, Internal" (overrides config)',
    )
    sub.add_parser("cleanup", parents=[work], help="Run code cleanup operations")
    sub.add_parser("check", parents=[common], help="Run the readiness checks only")
    return parser


def build_workload(args: argparse.Namespace, config: MoonlightConfig) -> Workload:
    """Merge CLI overrides into the configured workload settings."""
    kind = WorkloadKind(args.command)
    if args.batch_size is not None:
        if args.batch_size < 1:
            raise ConfigError("--batch-size must be at least 1")
        config.workload.batch_size = args.batch_size

    section = config.codedoc if kind == WorkloadKind.CODEDOC else config.cleanup
    repository_url = args.repo or config.repository_url
    if not repository_url:
        raise ConfigError("No repository configured (set repository_url or pass --repo)")

    workload = Workload(
        kind=kind,
        repository_url=repository_url,
        project_path=args.project if args.project is not None else section.project_path,
        solution_path=args.solution if args.solution is not None else section.solution_path,
    )
    if kind == WorkloadKind.CODEDOC:
        workload.visibility = (
            MemberVisibility.parse(args.visibility) if args.visibility else config.codedoc.visibility
        )
    else:
        workload.cleanup = config.cleanup.to_options()
    return workload


async def _run_workload(config: MoonlightConfig, workload: Workload) -> int:
    orchestrator = Orchestrator(config, progress=lambda message: print(f"  {message}"))

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.request_cancel)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable; Ctrl-C will abort immediately")

    result = await orchestrator.run(workload)

    print()
    print(f"Workload {result.workload_id}: {result.state.value}")
    print(f"  {result.summary}")
    if result.branch:
        print(f"  Branch: {result.branch}")
    if result.pr_url:
        print(f"  Pull request: {result.pr_url}")
    for error in result.statistics.errors[:5]:
        print(f"  ! {error}")
    return EXIT_OK if result.is_success else EXIT_FAILED


async def _run_check(config: MoonlightConfig) -> int:
    orchestrator = Orchestrator(config, progress=lambda message: print(f"  {message}"))
    try:
        await orchestrator.check_readiness()
    except (ReadinessError, GatewayError) as exc:
        print(f"Not ready: {exc}")
        return EXIT_FAILED
    finally:
        await orchestrator.container.cleanup()
    print("Ready.")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    log_file = configure_logging(args.log_level)
    logger.debug("Logging to %s", log_file)

    try:
        config = load_config(args.config)
        if args.command == "check":
            return asyncio.run(_run_check(config))
        workload = build_workload(args, config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    return asyncio.run(_run_workload(config, workload))


if __name__ == "__main__":
    sys.exit(main())
