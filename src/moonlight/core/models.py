# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- Workload Models (v0.4.0)

Data types shared by the scheduler, the mutation pipeline, the build gate
and the orchestrator.

Lifecycle:
    Queued -> Running -> {Completed, Failed, Cancelled, TimedOut}

Terminal states have no transitions out. WorkUnit, SanitizeResult and
BuildOutcome are ephemeral and scoped to one loop iteration.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, Flag
from typing import Any

from moonlight.core.errors import InvalidTransitionError

logger = logging.getLogger("moonlight.core.models")


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class WorkloadKind(str, Enum):
    """The kinds of workload the pipeline knows how to run."""

    CODEDOC = "codedoc"
    CLEANUP = "cleanup"

    @property
    def branch_suffix(self) -> str:
        return "code-documentation" if self is WorkloadKind.CODEDOC else "code-cleanup"

    @property
    def title(self) -> str:
        return "Add XML Documentation" if self is WorkloadKind.CODEDOC else "Code Cleanup"

    def branch_name(self, now: datetime | None = None) -> str:
        """``moonlight/2025-01-31-142200-code-documentation`` (UTC)."""
        stamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d-%H%M%S")
        return f"{BRANCH_PREFIX}{stamp}-{self.branch_suffix}"


BRANCH_PREFIX = "moonlight/"


class WorkloadState(str, Enum):
    """Workload lifecycle states."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset(
    {
        WorkloadState.COMPLETED,
        WorkloadState.FAILED,
        WorkloadState.CANCELLED,
        WorkloadState.TIMED_OUT,
    }
)

VALID_TRANSITIONS: dict[WorkloadState, set[WorkloadState]] = {
    WorkloadState.QUEUED: {WorkloadState.RUNNING},
    WorkloadState.RUNNING: set(TERMINAL_STATES),
    WorkloadState.COMPLETED: set(),
    WorkloadState.FAILED: set(),
    WorkloadState.CANCELLED: set(),
    WorkloadState.TIMED_OUT: set(),
}


class MemberVisibility(Flag):
    """Which accessibility levels a workload is allowed to touch."""

    NONE = 0
    PUBLIC = 1
    PRIVATE = 2
    PROTECTED = 4
    INTERNAL = 8
    PROTECTED_INTERNAL = 16
    PRIVATE_PROTECTED = 32

    @classmethod
    def parse(cls, text: str | None) -> MemberVisibility:
        """Parse a comma separated list such as ``"Public, Internal"``.

        Unknown names are ignored; an empty result falls back to PUBLIC.
        """
        result = cls.NONE
        for raw in (text or "").split(","):
            name = raw.strip().replace(" ", "_").upper()
            if not name:
                continue
            # "ProtectedInternal" style spelling
            name = {
                "PROTECTEDINTERNAL": "PROTECTED_INTERNAL",
                "PRIVATEPROTECTED": "PRIVATE_PROTECTED",
            }.get(name, name)
            member = cls.__members__.get(name)
            if member is None:
                logger.warning("Unknown visibility '%s' ignored", raw.strip())
                continue
            result |= member
        if not result:
            logger.warning("No valid visibility in '%s', falling back to Public", text)
            return cls.PUBLIC
        return result

    def allows(self, accessibility: str) -> bool:
        """Check whether a member with the given accessibility qualifies."""
        flag = _ACCESSIBILITY_FLAGS.get(accessibility.strip().lower())
        if flag is None:
            return False
        return bool(self & flag)


_ACCESSIBILITY_FLAGS: dict[str, MemberVisibility] = {
    "public": MemberVisibility.PUBLIC,
    "private": MemberVisibility.PRIVATE,
    "protected": MemberVisibility.PROTECTED,
    "internal": MemberVisibility.INTERNAL,
    "protected internal": MemberVisibility.PROTECTED_INTERNAL,
    "private protected": MemberVisibility.PRIVATE_PROTECTED,
}


class UnitKind(str, Enum):
    METHOD = "method"
    PROPERTY = "property"
    FIELD = "field"
    EVENT = "event"
    CLASS = "class"


class CleanupType(str, Enum):
    """Cleanup operations, ordered by how safe they are to apply."""

    UNUSED_USING = "unused-using"
    PUBLIC_FIELD_TO_PROPERTY = "field-to-property"
    REORDER_PRIVATE_FIELDS = "reorder-fields"

    @property
    def priority(self) -> int:
        return _CLEANUP_PRIORITY[self]


_CLEANUP_PRIORITY = {
    CleanupType.UNUSED_USING: 1,
    CleanupType.PUBLIC_FIELD_TO_PROPERTY: 3,
    CleanupType.REORDER_PRIVATE_FIELDS: 4,
}


class FileStatus(str, Enum):
    """How a single file came out of the pipeline."""

    MODIFIED = "modified"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    REVERTED = "reverted"


# ---------------------------------------------------------------------------
# Per-iteration values
# ---------------------------------------------------------------------------


@dataclass
class Parameter:
    name: str
    type: str = ""


@dataclass
class WorkUnit:
    """One documentable or cleanable code element in a file.

    Recomputed from a fresh analysis on every loop iteration; line numbers
    are 1-based and only valid for the content they were computed from.
    """

    kind: UnitKind
    owner: str
    name: str
    accessibility: str
    first_line: int
    last_line: int
    doc_present: bool = False
    return_type: str = ""
    parameters: list[Parameter] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.owner}.{self.name}"

    @property
    def is_void(self) -> bool:
        """True for methods that return nothing a caller can observe."""
        return self.return_type.strip().lower() in VOID_RETURN_TYPES


VOID_RETURN_TYPES = frozenset({"void", "task", "valuetask"})


@dataclass
class CleanupOpportunity:
    """A detected cleanup operation for one file."""

    type: CleanupType
    line: int
    original_code: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> str:
        identity = (
            self.metadata.get("namespace")
            or self.metadata.get("field_name")
            or self.metadata.get("class_name")
            or str(self.line)
        )
        owner = self.metadata.get("class_name", "")
        return f"{self.type.value}:{owner}.{identity}"


@dataclass
class SanitizeResult:
    """Outcome of converting raw AI text into a comment block."""

    raw_text: str
    lines: list[str] = field(default_factory=list)
    valid: bool = False
    fix_count: int = 0
    reason: str = ""


@dataclass
class AIResponse:
    """A single completed (or abandoned) generation from the AI backend."""

    text: str = ""
    done: bool = False
    prompt_tokens: int = 0
    response_tokens: int = 0
    duration_seconds: float = 0.0
    model: str = ""


@dataclass
class BuildError:
    file: str
    line: int
    code: str
    message: str
    column: int = 0

    def __str__(self) -> str:
        return f"{self.file}({self.line},{self.column}): error {self.code}: {self.message}"


@dataclass
class BuildOutcome:
    success: bool
    errors: list[BuildError] = field(default_factory=list)
    warnings: list[BuildError] = field(default_factory=list)
    raw_output: str = ""
    duration_seconds: float = 0.0


# ---------------------------------------------------------------------------
# Workload options and statistics
# ---------------------------------------------------------------------------


@dataclass
class CleanupOptions:
    """Which cleanup operations are enabled for a workload."""

    remove_unused_usings: bool = True
    convert_public_fields_to_properties: bool = True
    reorder_private_fields: bool = True
    max_operations_per_run: int = 1


@dataclass
class WorkloadStatistics:
    """Counters and timestamps accumulated over a batch."""

    queued_at: float = field(default_factory=time.time)
    started_at: float | None = None
    completed_at: float | None = None
    files_processed: int = 0
    items_modified: int = 0
    error_count: int = 0
    errors: list[str] = field(default_factory=list)
    ai_api_calls: int = 0
    total_ai_seconds: float = 0.0
    prompt_tokens: int = 0
    response_tokens: int = 0
    build_retries: int = 0
    build_failures: int = 0
    reverted_files: int = 0
    sanitization_fixes: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.response_tokens

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return self.completed_at - self.started_at

    def record_error(self, message: str) -> None:
        self.error_count += 1
        self.errors.append(message)

    def record_ai_call(self, response: AIResponse) -> None:
        self.ai_api_calls += 1
        self.total_ai_seconds += response.duration_seconds
        self.prompt_tokens += response.prompt_tokens
        self.response_tokens += response.response_tokens

    def to_dict(self) -> dict[str, Any]:
        return {
            "files_processed": self.files_processed,
            "items_modified": self.items_modified,
            "error_count": self.error_count,
            "ai_api_calls": self.ai_api_calls,
            "total_ai_seconds": round(self.total_ai_seconds, 3),
            "prompt_tokens": self.prompt_tokens,
            "response_tokens": self.response_tokens,
            "build_retries": self.build_retries,
            "build_failures": self.build_failures,
            "reverted_files": self.reverted_files,
            "sanitization_fixes": self.sanitization_fixes,
            "duration_seconds": self.duration_seconds,
        }


# ---------------------------------------------------------------------------
# Workload and result
# ---------------------------------------------------------------------------


@dataclass
class Workload:
    """A request to document or clean up one repository."""

    kind: WorkloadKind
    repository_url: str
    project_path: str = ""
    solution_path: str = ""
    visibility: MemberVisibility = MemberVisibility.PUBLIC
    cleanup: CleanupOptions = field(default_factory=CleanupOptions)
    workload_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: WorkloadState = WorkloadState.QUEUED
    statistics: WorkloadStatistics = field(default_factory=WorkloadStatistics)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: WorkloadState) -> None:
        """Move to a new state. Raises InvalidTransitionError on illegal moves."""
        valid = VALID_TRANSITIONS.get(self.state, set())
        if new_state not in valid:
            raise InvalidTransitionError(
                f"Cannot transition from {self.state.value} to {new_state.value}. "
                f"Valid: {', '.join(sorted(s.value for s in valid)) or 'none'}"
            )
        old = self.state
        self.state = new_state
        if new_state == WorkloadState.RUNNING:
            self.statistics.started_at = time.time()
        elif new_state in TERMINAL_STATES:
            self.statistics.completed_at = time.time()
        logger.info("Workload %s: %s -> %s", self.workload_id, old.value, new_state.value)


@dataclass
class FileOutcome:
    """What happened to one admitted file."""

    path: str
    status: FileStatus
    items_modified: int = 0
    repair_attempts: int = 0
    message: str = ""


@dataclass
class WorkloadResult:
    """Terminal outcome of a batch, handed to the publish step."""

    workload_id: str
    kind: WorkloadKind
    state: WorkloadState
    statistics: WorkloadStatistics
    modified_files: list[str] = field(default_factory=list)
    file_outcomes: list[FileOutcome] = field(default_factory=list)
    files_evaluated: int = 0
    branch: str | None = None
    commit_message: str | None = None
    pr_title: str | None = None
    pr_body: str | None = None
    pr_url: str | None = None
    summary: str = ""

    @property
    def is_success(self) -> bool:
        return self.state == WorkloadState.COMPLETED

    def count(self, status: FileStatus) -> int:
        return sum(1 for o in self.file_outcomes if o.status == status)
