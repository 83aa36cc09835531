# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- Orchestrator (v0.4.0)

Runs one workload end to end:

    1. Readiness gates    container -> AI health -> model pulled -> model answers
    2. Prepare            clone/pull, schedule files, create the batch branch
    3. Process            one file at a time: pipeline -> build gate
    4. Publish            commit + push + pull request of the modified files
    5. Cleanup            container teardown, always

Cancellation and the optional time limit are only observed between files,
so every processed file has finished its own build-or-revert cycle. No
exception escapes ``run()``: every path ends in a terminal WorkloadResult.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from moonlight.core.config import MoonlightConfig
from moonlight.core.errors import GatewayError, GitOperationError, ModelNotFoundError, ReadinessError
from moonlight.core.models import (
    FileOutcome,
    FileStatus,
    Workload,
    WorkloadKind,
    WorkloadResult,
    WorkloadState,
)
from moonlight.integrations.build import DotnetBuildValidator
from moonlight.integrations.container import DockerContainerManager
from moonlight.integrations.git import GitManager, RepositoryRef
from moonlight.integrations.ollama import OllamaGateway
from moonlight.workloads.build_gate import BuildGate
from moonlight.workloads.pipeline import MutationPipeline
from moonlight.workloads.prompts import PromptService
from moonlight.workloads.scheduler import Scheduler

logger = logging.getLogger("moonlight.orchestration.orchestrator")

ProgressCallback = Callable[[str], None]

MAX_ERRORS_IN_PR = 10


class Orchestrator:
    """Sequences readiness, scheduling, mutation, build gating and publishing."""

    def __init__(
        self,
        config: MoonlightConfig,
        *,
        gateway=None,
        git=None,
        validator=None,
        container=None,
        prompts: PromptService | None = None,
        progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        self.config = config
        self.gateway = gateway or OllamaGateway(
            config.ai_server.server_url,
            config.ai_server.model_name,
            config.ai_server.timeout_seconds,
        )
        self.git = git or GitManager(config.git)
        self.validator = validator or DotnetBuildValidator(config.workload.build_timeout_seconds)
        self.container = container or DockerContainerManager(config.container)
        self.prompts = prompts or PromptService(
            config.prompts.directory,
            config.prompts.enable_custom_prompts,
            config.ai_server.model_name,
        )
        self._progress = progress
        self.cancel_event = cancel_event or asyncio.Event()

    def request_cancel(self) -> None:
        """Stop after the file currently in flight."""
        logger.info("Cancellation requested")
        self.cancel_event.set()

    def _report(self, message: str) -> None:
        logger.info(message)
        if self._progress:
            try:
                self._progress(message)
            except Exception as exc:
                logger.debug("Progress callback failed: %s", exc)

    # =========================================================================
    # Readiness
    # =========================================================================

    async def check_readiness(self) -> None:
        """Run the batch gates in order; raise on the first failure."""
        model = self.config.ai_server.model_name

        self._report("Checking model container")
        if not await self.container.ensure_running():
            raise ReadinessError("container", "AI container could not be started")

        self._report("Waiting for AI server")
        healthy = await self.gateway.wait_until_healthy(
            self.config.ai_server.health_max_attempts,
            self.config.ai_server.health_delay_seconds,
        )
        if not healthy:
            raise ReadinessError("health", f"AI server at {self.config.ai_server.server_url} is not responding")

        if not await self.container.ensure_model_available(model):
            raise ReadinessError("model", f"AI model '{model}' could not be pulled")

        self._report(f"Verifying model {model}")
        try:
            await self.gateway.verify_model()
        except ModelNotFoundError:
            raise
        except GatewayError as exc:
            raise ReadinessError("model", f"AI model '{model}' did not respond: {exc}") from exc

    # =========================================================================
    # Run
    # =========================================================================

    async def run(self, workload: Workload) -> WorkloadResult:
        stats = workload.statistics
        result = WorkloadResult(
            workload_id=workload.workload_id,
            kind=workload.kind,
            state=workload.state,
            statistics=stats,
        )
        final_state = WorkloadState.COMPLETED
        failure: str | None = None

        workload.transition(WorkloadState.RUNNING)
        try:
            await self.check_readiness()
            final_state = await self._run_batch(workload, result)
            if result.pr_url is None and result.modified_files and final_state != WorkloadState.FAILED:
                final_state = WorkloadState.FAILED
        except ModelNotFoundError as exc:
            failure = str(exc)
            final_state = WorkloadState.FAILED
            stats.record_error(failure)
            logger.error("Model not available: %s", exc)
        except ReadinessError as exc:
            failure = f"Readiness check failed ({exc.gate}): {exc}"
            final_state = WorkloadState.FAILED
            stats.record_error(failure)
            logger.error(failure)
        except Exception as exc:
            failure = f"Workload failed: {exc}"
            final_state = WorkloadState.FAILED
            stats.record_error(str(exc))
            logger.exception("Fatal error in %s workload", workload.kind.value)
        finally:
            self._report("Cleaning up")
            try:
                await self.container.cleanup()
            except Exception as exc:
                logger.warning("Container cleanup failed: %s", exc)

        workload.transition(final_state)
        result.state = workload.state
        result.summary = failure or self._summary(result)
        self._report(result.summary)
        return result

    async def _run_batch(self, workload: Workload, result: WorkloadResult) -> WorkloadState:
        stats = workload.statistics
        repo = RepositoryRef(workload.repository_url)

        self._report(f"Preparing repository {repo.owner}/{repo.name}")
        repo_path = await self.git.clone_or_pull(repo)

        scheduler = Scheduler(self.git, self.config.workload.admission_threshold)
        files = await scheduler.select_files(repo_path, repo, workload)
        if not files:
            self._report("No files need work")
            return WorkloadState.COMPLETED

        branch = workload.kind.branch_name()
        await self.git.create_branch(repo_path, branch)
        result.branch = branch

        pipeline = MutationPipeline(self.gateway, self.prompts, stats)
        gate = BuildGate(
            self.validator,
            self.gateway,
            self.prompts,
            self.git,
            stats,
            enabled=self.config.workload.validate_builds,
            solution_ref=workload.solution_path,
            max_retries=self.config.workload.max_build_retries,
            revert_on_failure=self.config.workload.revert_on_build_failure,
        )

        state = WorkloadState.COMPLETED
        deadline = self.config.workload.max_duration_seconds
        started = time.monotonic()
        batch_size = self.config.workload.batch_size

        for index, rel in enumerate(files, start=1):
            if len(result.modified_files) >= batch_size:
                logger.info("Reached batch size of %d modified file(s)", batch_size)
                break

            self._report(f"[{index}/{len(files)}] {rel}")
            outcome = await self._process_file(pipeline, gate, workload, Path(repo_path), rel)
            result.file_outcomes.append(outcome)
            result.files_evaluated += 1
            if outcome.status == FileStatus.MODIFIED:
                result.modified_files.append(rel)

            if self.cancel_event.is_set():
                self._report("Cancelled; publishing completed files")
                state = WorkloadState.CANCELLED
                break
            if deadline and time.monotonic() - started > deadline:
                self._report(f"Time limit of {deadline:.0f}s reached")
                state = WorkloadState.TIMED_OUT
                break

        if result.modified_files:
            await self._publish(repo, Path(repo_path), workload, result)
        return state

    async def _process_file(
        self,
        pipeline: MutationPipeline,
        gate: BuildGate,
        workload: Workload,
        repo_path: Path,
        rel: str,
    ) -> FileOutcome:
        """Pipeline plus build gate for one file.

        Only ModelNotFoundError propagates, after the file has been restored.
        """
        stats = workload.statistics
        attempted: set[str] = set()
        items_before = stats.items_modified
        try:
            if workload.kind == WorkloadKind.CODEDOC:
                count = await pipeline.document_file(repo_path / rel, workload.visibility, attempted)
            else:
                count = await pipeline.cleanup_file(repo_path / rel, workload.cleanup, attempted)
            stats.files_processed += 1

            if count == 0:
                return FileOutcome(rel, FileStatus.UNCHANGED)

            gate_result = await gate.check(repo_path, rel, modified=True)
            if gate_result.reverted:
                stats.items_modified -= count
                return FileOutcome(
                    rel, FileStatus.REVERTED, repair_attempts=gate_result.repair_attempts,
                    message="build failed after repairs; reverted",
                )
            message = "build still failing; change kept" if gate_result.soft_failure else ""
            return FileOutcome(rel, FileStatus.MODIFIED, count, gate_result.repair_attempts, message)
        except ModelNotFoundError:
            stats.items_modified = items_before
            await self._discard(repo_path, rel)
            raise
        except Exception as exc:
            logger.exception("Error processing %s", rel)
            stats.record_error(f"{rel}: {exc}")
            stats.items_modified = items_before
            await self._discard(repo_path, rel)
            return FileOutcome(rel, FileStatus.FAILED, message=str(exc))

    async def _discard(self, repo_path: Path, rel: str) -> None:
        try:
            await self.git.revert_file(repo_path, rel)
        except GitOperationError as exc:
            logger.warning("Could not restore %s: %s", rel, exc)

    # =========================================================================
    # Publish
    # =========================================================================

    async def _publish(self, repo: RepositoryRef, repo_path: Path, workload: Workload, result: WorkloadResult) -> None:
        date = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        result.commit_message = self._commit_message(workload.kind, date, result)
        result.pr_title = f"[MoonlightAI] {workload.kind.title} - {date}"
        result.pr_body = self._pr_body(result)

        self._report(f"Committing {len(result.modified_files)} file(s)")
        await self.git.commit(repo_path, result.commit_message, result.modified_files)
        await self.git.push(repo_path, result.branch)
        try:
            result.pr_url = await self.git.create_pull_request(repo, result.branch, result.pr_title, result.pr_body)
        except GitOperationError as exc:
            logger.error("Failed to create pull request: %s", exc)
            workload.statistics.record_error(f"Pull request failed: {exc}")
            return
        self._report(f"Pull request: {result.pr_url}")

    @staticmethod
    def _commit_message(kind: WorkloadKind, date: str, result: WorkloadResult) -> str:
        head = f"Add XML documentation - {date}" if kind == WorkloadKind.CODEDOC else f"Code cleanup - {date}"
        stats = result.statistics
        return (
            f"{head}\n\n"
            f"Files processed: {result.files_evaluated}\n"
            f"Files modified: {len(result.modified_files)}\n"
            f"Items modified: {stats.items_modified}\n"
        )

    @staticmethod
    def _pr_body(result: WorkloadResult) -> str:
        stats = result.statistics
        lines = [
            "## Summary",
            "",
            f"Automated {result.kind.title.lower()} by MoonlightAI.",
            "",
            "## Statistics",
            "",
            f"- **Files evaluated**: {result.files_evaluated}",
            f"- **Files modified**: {len(result.modified_files)}",
            f"- **Items modified**: {stats.items_modified}",
            f"- **AI API calls**: {stats.ai_api_calls}",
            f"- **Tokens**: {stats.total_tokens} ({stats.prompt_tokens} prompt / {stats.response_tokens} response)",
            f"- **AI processing time**: {stats.total_ai_seconds:.1f} seconds",
            f"- **Build repair attempts**: {stats.build_retries}",
            f"- **Reverted files**: {stats.reverted_files}",
            f"- **Sanitization fixes**: {stats.sanitization_fixes}",
            f"- **Errors**: {stats.error_count}",
            "",
            "## Modified files",
            "",
        ]
        lines += [f"- `{path}`" for path in result.modified_files]
        if stats.errors:
            lines += ["", "## Errors", ""]
            lines += [f"- {error}" for error in stats.errors[:MAX_ERRORS_IN_PR]]
            if len(stats.errors) > MAX_ERRORS_IN_PR:
                lines.append(f"- ...and {len(stats.errors) - MAX_ERRORS_IN_PR} more")
        lines += [
            "",
            "## Review notes",
            "",
            "Every file in this PR built successfully after its changes unless noted in the errors above.",
        ]
        return "\n".join(lines) + "\n"

    @staticmethod
    def _summary(result: WorkloadResult) -> str:
        failed = result.count(FileStatus.FAILED) + result.count(FileStatus.REVERTED)
        return (
            f"Modified {len(result.modified_files)} file(s), "
            f"{result.count(FileStatus.UNCHANGED)} already complete, "
            f"{failed} failed (evaluated {result.files_evaluated} files)"
        )
