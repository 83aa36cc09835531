# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- Build Validator (v0.4.0)

Runs ``dotnet build`` against a solution or project inside the checkout
and parses MSBuild diagnostics of the form::

    src/Foo.cs(12,5): error CS1002: ; expected [/repo/src/Foo.csproj]

MSBuild repeats every diagnostic in its summary, so errors are
de-duplicated in first-seen order.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
import subprocess
import time
from pathlib import Path

from moonlight.core.models import BuildError, BuildOutcome

logger = logging.getLogger("moonlight.integrations.build")

_DIAGNOSTIC = re.compile(
    r"^\s*(?P<file>[^\r\n(]+?)\((?P<line>\d+),(?P<col>\d+)(?:,\d+,\d+)?\)\s*:\s*"
    r"(?P<kind>error|warning)\s+(?P<code>[A-Za-z]+\d+)\s*:\s*(?P<message>.*?)"
    r"(?:\s+\[[^\]]+\])?\s*$",
    re.MULTILINE,
)
# Errors without a source location, e.g. "MSBUILD : error MSB1009: Project file does not exist."
_GENERAL_ERROR = re.compile(
    r"^\s*(?P<file>[^\r\n:]*?)\s*:\s*error\s+(?P<code>[A-Za-z]+\d+)\s*:\s*(?P<message>.*?)"
    r"(?:\s+\[[^\]]+\])?\s*$",
    re.MULTILINE,
)
OUTPUT_TAIL_CHARS = 2000


def parse_build_output(output: str) -> tuple[list[BuildError], list[BuildError]]:
    """Return (errors, warnings) parsed from MSBuild console output."""
    errors: list[BuildError] = []
    warnings: list[BuildError] = []
    seen: set[tuple] = set()

    for match in _DIAGNOSTIC.finditer(output):
        item = BuildError(
            file=match.group("file").strip(),
            line=int(match.group("line")),
            column=int(match.group("col")),
            code=match.group("code"),
            message=match.group("message").strip(),
        )
        key = (match.group("kind"), item.file, item.line, item.column, item.code, item.message)
        if key in seen:
            continue
        seen.add(key)
        (errors if match.group("kind") == "error" else warnings).append(item)

    for match in _GENERAL_ERROR.finditer(output):
        if _DIAGNOSTIC.match(match.group(0)):
            continue
        item = BuildError(
            file=match.group("file").strip(),
            line=0,
            code=match.group("code"),
            message=match.group("message").strip(),
        )
        key = ("error", item.file, 0, 0, item.code, item.message)
        if key not in seen:
            seen.add(key)
            errors.append(item)

    return errors, warnings


def _normalize(path: str) -> str:
    return path.strip().replace("\\", "/").lower()


def error_matches_file(error: BuildError, repo_path: str | Path, rel_file: str) -> bool:
    """True when an error is reported against ``rel_file``."""
    reported = _normalize(error.file)
    target = _normalize(rel_file).removeprefix("./")
    absolute = _normalize(str(Path(repo_path) / rel_file))
    return reported == absolute or reported == target or reported.endswith("/" + target)


def filter_errors_for_file(
    errors: list[BuildError], repo_path: str | Path, rel_file: str
) -> list[BuildError]:
    """Errors attributed to ``rel_file``; all errors when none match."""
    matching = [e for e in errors if error_matches_file(e, repo_path, rel_file)]
    return matching or list(errors)


class DotnetBuildValidator:
    """Builds a solution with the dotnet CLI."""

    def __init__(self, timeout_seconds: int = 600, dotnet: str = "dotnet"):
        self.timeout_seconds = timeout_seconds
        self.dotnet = dotnet

    def is_available(self) -> bool:
        return shutil.which(self.dotnet) is not None

    async def build(self, repo_path: str | Path, solution_ref: str) -> BuildOutcome:
        """Build ``solution_ref`` (relative to ``repo_path``)."""
        if not self.is_available():
            logger.error("dotnet CLI not found on PATH")
            return BuildOutcome(
                success=False,
                errors=[BuildError(file="", line=0, code="MOONLIGHT001", message="dotnet CLI not found on PATH")],
            )

        cmd = [self.dotnet, "build", solution_ref, "--nologo", "-v", "q", "-clp:NoSummary"]
        logger.info("Building %s", solution_ref)
        start = time.monotonic()
        try:
            result = await self._run(cmd, cwd=str(repo_path))
        except asyncio.TimeoutError:
            logger.error("Build timed out after %ds", self.timeout_seconds)
            return BuildOutcome(
                success=False,
                errors=[BuildError(file="", line=0, code="MOONLIGHT002", message=f"Build timed out after {self.timeout_seconds}s")],
                duration_seconds=time.monotonic() - start,
            )

        output = (result.stdout or "") + "\n" + (result.stderr or "")
        errors, warnings = parse_build_output(output)
        success = result.returncode == 0
        if not success and not errors:
            errors = [
                BuildError(
                    file="",
                    line=0,
                    code=f"EXIT{result.returncode}",
                    message=output.strip()[-OUTPUT_TAIL_CHARS:] or "build failed",
                )
            ]
        outcome = BuildOutcome(
            success=success,
            errors=errors if not success else [],
            warnings=warnings,
            raw_output=output,
            duration_seconds=time.monotonic() - start,
        )
        if success:
            logger.info("Build succeeded in %.1fs (%d warning(s))", outcome.duration_seconds, len(warnings))
        else:
            logger.warning("Build failed with %d error(s)", len(outcome.errors))
        return outcome

    async def _run(self, cmd: list[str], cwd: str) -> subprocess.CompletedProcess:
        """Run the build in an executor so the event loop stays responsive."""
        loop = asyncio.get_running_loop()
        env = dict(os.environ, DOTNET_CLI_TELEMETRY_OPTOUT="1", DOTNET_NOLOGO="1")

        def _run() -> subprocess.CompletedProcess:
            return subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                env=env,
            )

        try:
            return await loop.run_in_executor(None, _run)
        except subprocess.TimeoutExpired:
            raise asyncio.TimeoutError(f"Build timed out ({self.timeout_seconds}s): {' '.join(cmd)}") from None
