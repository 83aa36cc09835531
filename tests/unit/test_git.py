"""Tests for moonlight.integrations.git -- local git operations and GitHub API."""

import json
import subprocess
from pathlib import Path

import httpx
import pytest

from moonlight.core.config import GitConfig
from moonlight.core.errors import GitOperationError
from moonlight.integrations.git import GitManager, RepositoryRef


def _git(cwd: Path, *args: str) -> str:
    return subprocess.run(["git", *args], cwd=str(cwd), capture_output=True, text=True, check=True).stdout


def _manager(tmp_path: Path, **overrides) -> GitManager:
    config = GitConfig(working_directory=str(tmp_path / "work"), **overrides)
    return GitManager(config)


# ---------------------------------------------------------------------------
# RepositoryRef
# ---------------------------------------------------------------------------


class TestRepositoryRef:
    @pytest.mark.parametrize("url", [
        "https://github.com/acme/widgets.git",
        "https://github.com/acme/widgets",
        "https://user@github.com/acme/widgets/",
        "git@github.com:acme/widgets.git",
        "ssh://git@github.com:22/acme/widgets.git",
    ])
    def test_parses_owner_and_name(self, url):
        repo = RepositoryRef(url)
        assert repo.host == "github.com"
        assert repo.owner == "acme"
        assert repo.name == "widgets"

    def test_unparseable_url(self):
        with pytest.raises(ValueError, match="Cannot parse"):
            RepositoryRef("not a url").name


# ---------------------------------------------------------------------------
# Local operations
# ---------------------------------------------------------------------------


class TestLocalOperations:
    @pytest.mark.asyncio
    async def test_has_changes(self, git_workspace, tmp_path):
        git = _manager(tmp_path)
        assert not await git.has_changes(git_workspace)
        (git_workspace / "src" / "WidgetService.cs").write_text("// changed\n", encoding="utf-8")
        assert await git.has_changes(git_workspace)

    @pytest.mark.asyncio
    async def test_create_branch(self, git_workspace, tmp_path):
        git = _manager(tmp_path)
        await git.create_branch(git_workspace, "moonlight/2026-01-01-000000-codedoc")
        assert _git(git_workspace, "branch", "--show-current").strip() == "moonlight/2026-01-01-000000-codedoc"

    @pytest.mark.asyncio
    async def test_create_existing_branch_checks_it_out(self, git_workspace, tmp_path):
        git = _manager(tmp_path)
        _git(git_workspace, "branch", "moonlight/existing")
        await git.create_branch(git_workspace, "moonlight/existing")
        assert _git(git_workspace, "branch", "--show-current").strip() == "moonlight/existing"

    @pytest.mark.asyncio
    async def test_create_branch_resets_dirty_checkout(self, git_workspace, tmp_path, sample_source):
        git = _manager(tmp_path)
        target = git_workspace / "src" / "WidgetService.cs"
        target.write_text("// leftover\n", encoding="utf-8")
        (git_workspace / "stray.txt").write_text("x", encoding="utf-8")
        await git.create_branch(git_workspace, "moonlight/clean")
        assert target.read_text(encoding="utf-8") == sample_source
        assert not (git_workspace / "stray.txt").exists()

    @pytest.mark.asyncio
    async def test_commit_stages_only_listed_files(self, git_workspace, tmp_path):
        git = _manager(tmp_path, user_name="Moon", user_email="moon@example.com")
        (git_workspace / "src" / "WidgetService.cs").write_text("// documented\n", encoding="utf-8")
        (git_workspace / "notes.txt").write_text("unrelated", encoding="utf-8")

        head = await git.commit(git_workspace, "Add XML documentation", ["src/WidgetService.cs"])

        assert head == _git(git_workspace, "rev-parse", "HEAD").strip()
        assert _git(git_workspace, "log", "-1", "--format=%s|%an|%ae").strip() == (
            "Add XML documentation|Moon|moon@example.com"
        )
        changed = _git(git_workspace, "show", "--name-only", "--format=", "HEAD").split()
        assert changed == ["src/WidgetService.cs"]
        assert "notes.txt" in _git(git_workspace, "status", "--porcelain")

    @pytest.mark.asyncio
    async def test_commit_without_files_rejected(self, git_workspace, tmp_path):
        git = _manager(tmp_path)
        with pytest.raises(GitOperationError):
            await git.commit(git_workspace, "empty", [])

    @pytest.mark.asyncio
    async def test_revert_file(self, git_workspace, tmp_path, sample_source):
        git = _manager(tmp_path)
        target = git_workspace / "src" / "WidgetService.cs"
        target.write_text("// broken edit\n", encoding="utf-8")
        await git.revert_file(git_workspace, "src/WidgetService.cs")
        assert target.read_text(encoding="utf-8") == sample_source

    @pytest.mark.asyncio
    async def test_failed_command_raises(self, tmp_path):
        git = _manager(tmp_path)
        (tmp_path / "plain").mkdir()
        with pytest.raises(GitOperationError) as info:
            await git.revert_file(tmp_path / "plain", "missing.cs")
        assert info.value.returncode != 0


class TestCloneOrPull:
    @pytest.mark.asyncio
    async def test_existing_checkout_is_reset_and_pulled(self, git_workspace, tmp_path):
        git = _manager(tmp_path)
        checkout = tmp_path / "work" / "widgets"
        checkout.parent.mkdir()
        _git(tmp_path, "clone", str(git_workspace), str(checkout))
        (checkout / "src" / "WidgetService.cs").write_text("// dirty\n", encoding="utf-8")

        (git_workspace / "README.md").write_text("# Widgets\n", encoding="utf-8")
        _git(git_workspace, "add", "README.md")
        _git(git_workspace, "commit", "-m", "Add readme")

        path = await git.clone_or_pull(RepositoryRef("https://github.com/acme/widgets.git"))

        assert path == checkout.resolve()
        assert (checkout / "README.md").exists()
        assert not await git.has_changes(checkout)

    @pytest.mark.asyncio
    async def test_push_new_branch(self, git_workspace, tmp_path):
        git = _manager(tmp_path)
        checkout = tmp_path / "work" / "widgets"
        checkout.parent.mkdir()
        _git(tmp_path, "clone", str(git_workspace), str(checkout))
        _git(checkout, "config", "user.email", "test@test.com")
        _git(checkout, "config", "user.name", "Test")

        await git.create_branch(checkout, "moonlight/feature")
        (checkout / "src" / "WidgetService.cs").write_text("// new\n", encoding="utf-8")
        await git.commit(checkout, "Change", ["src/WidgetService.cs"])
        await git.push(checkout, "moonlight/feature")

        assert "moonlight/feature" in _git(git_workspace, "branch", "--list", "moonlight/*")


# ---------------------------------------------------------------------------
# GitHub API
# ---------------------------------------------------------------------------


class TestGitHubApi:
    REPO = RepositoryRef("https://github.com/acme/widgets.git")

    def _github(self, handler, token: str = "ghp_secret") -> GitManager:
        config = GitConfig(personal_access_token=token, api_url="https://api.github.test/")
        return GitManager(config, transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_list_open_branches(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[
                {"head": {"ref": "moonlight/2026-01-01-000000-codedoc"}},
                {"head": {"ref": "feature/login"}},
            ])

        branches = await self._github(handler).list_open_branches(self.REPO)

        assert branches == ["moonlight/2026-01-01-000000-codedoc", "feature/login"]
        assert seen[0].url.path == "/repos/acme/widgets/pulls"
        assert seen[0].url.params["state"] == "open"
        assert seen[0].headers["Authorization"] == "Bearer ghp_secret"

    @pytest.mark.asyncio
    async def test_list_paginates(self):
        pages = []

        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            pages.append(page)
            count = 100 if page == 1 else 1
            return httpx.Response(200, json=[{"head": {"ref": f"b{page}-{i}"}} for i in range(count)])

        branches = await self._github(handler).list_open_branches(self.REPO)
        assert pages == [1, 2]
        assert len(branches) == 101

    @pytest.mark.asyncio
    async def test_list_failure_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, text="boom")

        with pytest.raises(GitOperationError):
            await self._github(handler).list_open_branches(self.REPO)

    @pytest.mark.asyncio
    async def test_create_pull_request(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"html_url": "https://github.com/acme/widgets/pull/7"})

        url = await self._github(handler).create_pull_request(
            self.REPO, "moonlight/x-codedoc", "[MoonlightAI] Code Documentation", "body"
        )

        assert url == "https://github.com/acme/widgets/pull/7"
        assert bodies[0] == {
            "title": "[MoonlightAI] Code Documentation",
            "body": "body",
            "head": "moonlight/x-codedoc",
            "base": "main",
        }

    @pytest.mark.asyncio
    async def test_create_pull_request_rejected(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(422, text="A pull request already exists")

        with pytest.raises(GitOperationError) as info:
            await self._github(handler).create_pull_request(self.REPO, "b", "t", "body")
        assert info.value.returncode == 422

    @pytest.mark.asyncio
    async def test_no_token_no_auth_header(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        await self._github(handler, token="").list_open_branches(self.REPO)
        assert "Authorization" not in seen[0].headers
