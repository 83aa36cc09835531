# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""Pytest configuration and shared fakes for MoonlightAI tests."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest

# Ensure src/moonlight is importable
src_path = str(Path(__file__).parent.parent / "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from moonlight.core.errors import GatewayTimeoutError  # noqa: E402
from moonlight.core.models import AIResponse, BuildError, BuildOutcome  # noqa: E402

# ---------------------------------------------------------------------------
# Sample sources
# ---------------------------------------------------------------------------

SAMPLE_SERVICE = """using System;
using System.Text;

namespace Acme.Widgets
{
    /// <summary>
    /// Publishes widgets.
    /// </summary>
    public class WidgetService
    {
        private readonly int _retries;
        public const int MaxWidgets = 10;

        public string Name { get; set; }

        public event EventHandler Changed;

        public WidgetService(int retries)
        {
            _retries = retries;
        }

        public int Count(string filter, bool exact)
        {
            return filter.Length;
        }

        /// <summary>
        /// Already documented.
        /// </summary>
        public void Reset()
        {
        }

        private void Helper()
        {
        }
    }
}
"""

DOC_RESPONSE = """<doc>
/// <summary>
/// Counts matching widgets.
/// </summary>
/// <param name="filter">The filter.</param>
/// <param name="exact">Whether to match exactly.</param>
/// <returns>The number of widgets.</returns>
</doc>"""

SUMMARY_RESPONSE = "/// <summary>\n/// Generated description.\n/// </summary>"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeGateway:
    """Scripted AI gateway. Queued items are AIResponse, str or an exception."""

    def __init__(self):
        self.prompts: list[str] = []
        self._queue: list = []
        self.default = SUMMARY_RESPONSE
        self.healthy = True
        self.verify_error: Exception | None = None

    def queue(self, *items) -> None:
        self._queue.extend(items)

    async def generate(self, prompt: str) -> AIResponse:
        self.prompts.append(prompt)
        item = self._queue.pop(0) if self._queue else self.default
        if isinstance(item, Exception):
            raise item
        if isinstance(item, AIResponse):
            return item
        return AIResponse(text=item, done=True, prompt_tokens=10, response_tokens=5, duration_seconds=0.01)

    async def wait_until_healthy(self, max_attempts: int = 10, delay_seconds: float = 3.0) -> bool:
        return self.healthy

    async def verify_model(self) -> None:
        if self.verify_error is not None:
            raise self.verify_error


class FakeValidator:
    """Returns queued build outcomes; succeeds when the queue is empty."""

    def __init__(self):
        self.calls = 0
        self._outcomes: list[BuildOutcome] = []

    def queue(self, *outcomes: BuildOutcome) -> None:
        self._outcomes.extend(outcomes)

    async def build(self, repo_path, solution_ref: str) -> BuildOutcome:
        self.calls += 1
        if self._outcomes:
            return self._outcomes.pop(0)
        return BuildOutcome(success=True)


def _failed_build(file: str = "src/WidgetService.cs", code: str = "CS1002") -> BuildOutcome:
    return BuildOutcome(
        success=False,
        errors=[BuildError(file=file, line=3, code=code, message="; expected", column=5)],
    )


class FakeGit:
    """In-memory stand-in for GitManager that works on a real directory."""

    def __init__(self, repo_path: Path | None = None):
        self.repo_path = repo_path
        self.branches: list[str] = []
        self.open_branches: list[str] = []
        self.list_error: Exception | None = None
        self.pr_error: Exception | None = None
        self.commits: list[tuple[str, list[str]]] = []
        self.pushed: list[str] = []
        self.prs: list[tuple[str, str, str]] = []
        self.reverted: list[str] = []
        self.originals: dict[str, str] = {}

    async def clone_or_pull(self, repo) -> Path:
        for path in self.repo_path.rglob("*.cs"):
            rel = path.relative_to(self.repo_path).as_posix()
            self.originals.setdefault(rel, path.read_text(encoding="utf-8"))
        return self.repo_path

    async def list_open_branches(self, repo) -> list[str]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.open_branches)

    async def create_branch(self, path, name: str) -> None:
        self.branches.append(name)

    async def commit(self, path, message: str, files: list[str]) -> str:
        self.commits.append((message, list(files)))
        return "0" * 40

    async def push(self, path, branch: str) -> None:
        self.pushed.append(branch)

    async def create_pull_request(self, repo, branch: str, title: str, body: str) -> str:
        if self.pr_error is not None:
            raise self.pr_error
        self.prs.append((branch, title, body))
        return f"https://github.com/acme/widgets/pull/{len(self.prs)}"

    async def revert_file(self, path, rel_file: str) -> None:
        self.reverted.append(rel_file)
        if rel_file in self.originals:
            (Path(path) / rel_file).write_text(self.originals[rel_file], encoding="utf-8")


class FakeContainer:
    def __init__(self):
        self.running = True
        self.model_available = True
        self.cleaned_up = 0

    async def ensure_running(self) -> bool:
        return self.running

    async def ensure_model_available(self, model: str) -> bool:
        return self.model_available

    async def cleanup(self) -> None:
        self.cleaned_up += 1


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def fake_validator() -> FakeValidator:
    return FakeValidator()


@pytest.fixture
def fake_container() -> FakeContainer:
    return FakeContainer()


@pytest.fixture
def timeout_error() -> GatewayTimeoutError:
    return GatewayTimeoutError("AI request timed out after 1s")


@pytest.fixture
def cs_file(tmp_path: Path):
    """Factory writing a C# file under tmp_path and returning its path."""

    def _write(source: str = SAMPLE_SERVICE, name: str = "WidgetService.cs") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    """A checked-out repository layout with one source file."""
    root = tmp_path / "widgets"
    (root / "src").mkdir(parents=True)
    (root / "src" / "WidgetService.cs").write_text(SAMPLE_SERVICE, encoding="utf-8")
    return root


@pytest.fixture
def fake_git(repo_dir: Path) -> FakeGit:
    return FakeGit(repo_dir)


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=str(cwd), capture_output=True, text=True, check=True)
    return result.stdout


@pytest.fixture
def git_workspace(tmp_path: Path) -> Path:
    """A real git repository with one committed C# file on ``main``."""
    ws = tmp_path / "git_repo"
    ws.mkdir()
    _git(ws, "init", "-b", "main")
    _git(ws, "config", "user.email", "test@test.com")
    _git(ws, "config", "user.name", "Test")
    (ws / "src").mkdir()
    (ws / "src" / "WidgetService.cs").write_text(SAMPLE_SERVICE, encoding="utf-8")
    _git(ws, "add", ".")
    _git(ws, "commit", "-m", "Initial commit")
    return ws


@pytest.fixture
def failed_build():
    """Factory for a failed BuildOutcome with one error."""
    return _failed_build


@pytest.fixture
def sample_source() -> str:
    return SAMPLE_SERVICE


@pytest.fixture
def doc_response() -> str:
    return DOC_RESPONSE
