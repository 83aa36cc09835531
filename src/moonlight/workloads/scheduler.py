# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- File Scheduler (v0.4.0)

Chooses which files a batch works on. No side effects.

    discover    *.cs under the scope, minus build output and generated files
    exclude     files claimed by open work of the same kind (fails open)
    admit       per-kind predicate on a fresh analysis
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from moonlight.analysis import analyze_file
from moonlight.core.config import DEFAULT_ADMISSION_THRESHOLD
from moonlight.core.errors import GitOperationError
from moonlight.core.models import BRANCH_PREFIX, Workload, WorkloadKind
from moonlight.workloads.applier import read_text
from moonlight.workloads.cleanup import detect_opportunities
from moonlight.workloads.extractor import undocumented_ratio

logger = logging.getLogger("moonlight.workloads.scheduler")

EXCLUDED_DIRECTORIES = frozenset({"bin", "obj", ".git", ".vs", "node_modules", "packages"})
GENERATED_SUFFIXES = (".g.cs", ".g.i.cs", ".designer.cs", ".assemblyinfo.cs")


class BranchLister(Protocol):
    async def list_open_branches(self, repo) -> list[str]:
        ...


def is_generated_file(name: str) -> bool:
    lowered = name.lower()
    return lowered.endswith(GENERATED_SUFFIXES) or lowered == "assemblyinfo.cs"


def discover_files(repo_path: str | Path, project_path: str = "") -> list[str]:
    """Relative POSIX paths of candidate C# sources, sorted."""
    root = Path(repo_path)
    scope = root / project_path if project_path else root
    if scope.is_file():
        # a .csproj/.sln reference scopes to its directory
        scope = scope.parent
    if not scope.is_dir():
        logger.warning("Scope %s does not exist", scope)
        return []

    found = []
    for path in scope.rglob("*.cs"):
        rel = path.relative_to(root)
        if any(part.lower() in EXCLUDED_DIRECTORIES for part in rel.parts[:-1]):
            continue
        if is_generated_file(path.name) or not path.is_file():
            continue
        found.append(rel.as_posix())
    return sorted(found)


class Scheduler:
    """Discovers and admits candidate files for a workload."""

    def __init__(self, git: BranchLister, admission_threshold: float = DEFAULT_ADMISSION_THRESHOLD):
        self.git = git
        self.admission_threshold = admission_threshold

    async def claimed_files(self, repo, kind: WorkloadKind) -> set[str]:
        """Files already claimed by open pull requests of the same kind.

        Open work is only known per batch branch, not per file, so this
        always comes back empty. Fails open when the lookup errors.
        """
        try:
            branches = await self.git.list_open_branches(repo)
        except GitOperationError as exc:
            logger.warning("Could not list open branches, not excluding any files: %s", exc)
            return set()

        ours = [b for b in branches if b.startswith(BRANCH_PREFIX) and b.endswith(kind.branch_suffix)]
        if ours:
            logger.warning(
                "%d open %s branch(es) (%s); they cannot be mapped to files, "
                "duplicate-work exclusion is disabled for this run",
                len(ours),
                kind.value,
                ", ".join(ours[:5]),
            )
        return set()

    def admits(self, full_path: Path, workload: Workload) -> bool:
        analysis = analyze_file(full_path)
        if not analysis.parsed_ok:
            logger.debug("Skipping %s: parse errors", full_path)
            return False

        if workload.kind == WorkloadKind.CODEDOC:
            ratio = undocumented_ratio(analysis, workload.visibility)
            logger.debug("%s undocumented ratio %.2f", full_path, ratio)
            return ratio > self.admission_threshold

        content = read_text(full_path)
        return bool(detect_opportunities(analysis, content, workload.cleanup))

    async def select_files(self, repo_path: str | Path, repo, workload: Workload) -> list[str]:
        """Ordered relative paths of the files worth processing."""
        candidates = discover_files(repo_path, workload.project_path)
        claimed = await self.claimed_files(repo, workload.kind)

        admitted = []
        for rel in candidates:
            if rel in claimed:
                continue
            try:
                if self.admits(Path(repo_path) / rel, workload):
                    admitted.append(rel)
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Skipping unreadable file %s: %s", rel, exc)

        logger.info(
            "Admitted %d of %d candidate file(s) for %s", len(admitted), len(candidates), workload.kind.value
        )
        return admitted
