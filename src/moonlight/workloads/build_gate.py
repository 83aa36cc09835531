# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- Build Gate & Repair Loop (v0.4.0)

Runs once per mutated file:

    1. Build the configured solution.
    2. On failure, keep only errors reported against the file (or all of
       them when none match; the break may surface in a dependent file).
    3. Up to ``max_retries`` times: send the whole file plus the errors to
       the AI, write the returned file wholesale, rebuild, stop on success.
    4. Exhausted: revert the file to HEAD when ``revert_on_failure`` is set,
       otherwise keep the change as a soft warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from moonlight.core.models import BuildError, BuildOutcome, WorkloadStatistics
from moonlight.integrations.build import filter_errors_for_file
from moonlight.workloads.applier import read_text, replace_content
from moonlight.workloads.pipeline import AIGateway, ask_gateway, extract_code_from_response
from moonlight.workloads.prompts import PromptService

logger = logging.getLogger("moonlight.workloads.build_gate")

MAX_ERRORS_IN_PROMPT = 20


class BuildValidator(Protocol):
    async def build(self, repo_path: str | Path, solution_ref: str) -> BuildOutcome:
        ...


class FileReverter(Protocol):
    async def revert_file(self, path: str | Path, rel_file: str) -> None:
        ...


@dataclass
class GateResult:
    """Outcome of the build gate for one file."""

    passed: bool
    skipped: bool = False
    repair_attempts: int = 0
    reverted: bool = False
    errors: list[BuildError] = field(default_factory=list)

    @property
    def soft_failure(self) -> bool:
        """Build still broken but the change was kept."""
        return not self.passed and not self.reverted


class BuildGate:
    """Build check with bounded AI repair and revert fallback."""

    def __init__(
        self,
        validator: BuildValidator,
        gateway: AIGateway,
        prompts: PromptService,
        git: FileReverter,
        statistics: WorkloadStatistics,
        *,
        enabled: bool = True,
        solution_ref: str = "",
        max_retries: int = 2,
        revert_on_failure: bool = True,
    ):
        self.validator = validator
        self.gateway = gateway
        self.prompts = prompts
        self.git = git
        self.statistics = statistics
        self.enabled = enabled
        self.solution_ref = solution_ref
        self.max_retries = max_retries
        self.revert_on_failure = revert_on_failure

    @property
    def active(self) -> bool:
        return self.enabled and bool(self.solution_ref)

    async def check(self, repo_path: str | Path, rel_file: str, modified: bool = True) -> GateResult:
        if not modified or not self.active:
            return GateResult(passed=True, skipped=True)

        outcome = await self.validator.build(repo_path, self.solution_ref)
        if outcome.success:
            logger.info("Build passed after changes to %s", rel_file)
            return GateResult(passed=True)

        result = GateResult(passed=False)
        errors = filter_errors_for_file(outcome.errors, repo_path, rel_file)
        full_path = Path(repo_path) / rel_file
        logger.warning("Build failed after changes to %s (%d error(s))", rel_file, len(errors))

        for attempt in range(1, self.max_retries + 1):
            result.repair_attempts = attempt
            self.statistics.build_retries += 1
            logger.info("Repair attempt %d/%d for %s", attempt, self.max_retries, rel_file)

            if not await self._repair(full_path, rel_file, errors):
                continue

            outcome = await self.validator.build(repo_path, self.solution_ref)
            if outcome.success:
                logger.info("Build fixed for %s after %d attempt(s)", rel_file, attempt)
                result.passed = True
                return result
            errors = filter_errors_for_file(outcome.errors, repo_path, rel_file)

        result.errors = errors
        self.statistics.build_failures += 1
        if self.revert_on_failure:
            await self.git.revert_file(repo_path, rel_file)
            result.reverted = True
            self.statistics.reverted_files += 1
            self.statistics.record_error(
                f"Build failed for {rel_file} after {result.repair_attempts} repair attempt(s); reverted"
            )
        else:
            logger.warning(
                "Build still failing for %s; keeping changes (revert disabled)", rel_file
            )
        return result

    async def _repair(self, full_path: Path, rel_file: str, errors: list[BuildError]) -> bool:
        """Ask the AI for a corrected file and write it. False when nothing usable came back."""
        error_text = "\n".join(str(e) for e in errors[:MAX_ERRORS_IN_PROMPT])
        content = read_text(full_path)
        prompt = self.prompts.get_prompt(
            "repair",
            "build-fix",
            {"filePath": rel_file, "errors": error_text, "fileContent": content.lstrip("\ufeff")},
        )
        response = await ask_gateway(self.gateway, prompt, f"build-fix {rel_file}", self.statistics)
        if response is None:
            return False

        code = extract_code_from_response(response.text)
        if not code.strip():
            self.statistics.record_error(f"Empty repair response for {rel_file}")
            return False
        if content.endswith("\n") and not code.endswith("\n"):
            code += "\n"
        return replace_content(full_path, code)
