# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- Git & GitHub (v0.4.0)

Local operations run the git CLI; pull requests go through the GitHub
REST API.

Safety invariants:
- Only the files a batch modified are ever staged
- A dirty checkout is reset before clone/pull and before branching
- Tokens are passed as a per-command HTTP header, never written to
  .git/config and never logged
"""

from __future__ import annotations

import asyncio
import base64
import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path

import httpx

from moonlight.core.config import GitConfig
from moonlight.core.errors import GitOperationError

logger = logging.getLogger("moonlight.integrations.git")

GIT_TIMEOUT = 300
API_TIMEOUT = 30

_URL_PATTERNS = (
    re.compile(r"^(?:https?|ssh|git)://(?:[^@/]+@)?(?P<host>[^/:]+)(?::\d+)?/(?P<owner>[^/]+)/(?P<name>[^/]+?)(?:\.git)?/?$"),
    re.compile(r"^(?:[^@]+@)?(?P<host>[^:/]+):(?P<owner>[^/]+)/(?P<name>[^/]+?)(?:\.git)?/?$"),
)


# ---------------------------------------------------------------------------
# Repository reference
# ---------------------------------------------------------------------------


@dataclass
class RepositoryRef:
    """A remote repository identified by its clone URL."""

    url: str

    def _match(self) -> re.Match:
        for pattern in _URL_PATTERNS:
            match = pattern.match(self.url.strip())
            if match:
                return match
        raise ValueError(f"Cannot parse repository URL: {self.url}")

    @property
    def host(self) -> str:
        return self._match().group("host")

    @property
    def owner(self) -> str:
        return self._match().group("owner")

    @property
    def name(self) -> str:
        return self._match().group("name")


# ---------------------------------------------------------------------------
# GIT HELPERS
# ---------------------------------------------------------------------------


def _run_git(
    workspace: str | Path | None,
    *args: str,
    check: bool = True,
    extra_config: list[str] | None = None,
) -> subprocess.CompletedProcess:
    """Run a git command; raises GitOperationError on failure when ``check``."""
    cmd = ["git"]
    for item in extra_config or []:
        cmd += ["-c", item]
    cmd += list(args)
    shown = "git " + " ".join(args)
    try:
        result = subprocess.run(
            cmd,
            cwd=str(workspace) if workspace else None,
            capture_output=True,
            text=True,
            timeout=GIT_TIMEOUT,
        )
    except subprocess.TimeoutExpired as exc:
        raise GitOperationError(shown, f"timed out after {GIT_TIMEOUT}s") from exc
    except FileNotFoundError as exc:
        raise GitOperationError(shown, "git executable not found") from exc
    if check and result.returncode != 0:
        raise GitOperationError(shown, result.stderr or result.stdout, result.returncode)
    return result


class GitManager:
    """Clone, branch, commit, push and publish for one batch."""

    def __init__(self, config: GitConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self._transport = transport

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _auth_config(self) -> list[str]:
        token = self.config.personal_access_token
        if not token:
            return []
        basic = base64.b64encode(f"x-access-token:{token}".encode()).decode()
        return [f"http.extraHeader=AUTHORIZATION: basic {basic}"]

    async def _git(self, workspace, *args: str, check: bool = True, auth: bool = False) -> subprocess.CompletedProcess:
        loop = asyncio.get_running_loop()
        extra = self._auth_config() if auth else None
        return await loop.run_in_executor(
            None, lambda: _run_git(workspace, *args, check=check, extra_config=extra)
        )

    def _api_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "moonlight-ai",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.config.personal_access_token:
            headers["Authorization"] = f"Bearer {self.config.personal_access_token}"
        return headers

    def _api_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.api_url.rstrip("/"),
            headers=self._api_headers(),
            timeout=API_TIMEOUT,
            transport=self._transport,
        )

    async def has_changes(self, path: str | Path) -> bool:
        result = await self._git(path, "status", "--porcelain", check=False)
        return bool(result.stdout.strip())

    async def _reset_if_dirty(self, path: str | Path) -> None:
        if await self.has_changes(path):
            logger.warning("Discarding local changes in %s", path)
            await self._git(path, "reset", "--hard")
            await self._git(path, "clean", "-fd")

    # ------------------------------------------------------------------
    # Local operations
    # ------------------------------------------------------------------
    async def clone_or_pull(self, repo: RepositoryRef) -> Path:
        """Return a clean checkout of the default branch under the working directory."""
        root = Path(self.config.working_directory).resolve()
        root.mkdir(parents=True, exist_ok=True)
        path = root / repo.name

        if (path / ".git").exists():
            logger.info("Updating existing checkout %s", path)
            await self._reset_if_dirty(path)
            await self._git(path, "checkout", self.config.default_branch)
            await self._git(path, "pull", "--ff-only", "origin", self.config.default_branch, auth=True)
        else:
            logger.info("Cloning %s into %s", repo.url, path)
            await self._git(None, "clone", repo.url, str(path), auth=True)
        return path

    async def create_branch(self, path: str | Path, name: str) -> None:
        await self._reset_if_dirty(path)
        exists = await self._git(path, "rev-parse", "--verify", "--quiet", f"refs/heads/{name}", check=False)
        if exists.returncode == 0:
            logger.info("Checking out existing branch %s", name)
            await self._git(path, "checkout", name)
        else:
            logger.info("Creating branch %s", name)
            await self._git(path, "checkout", "-b", name)

    async def commit(self, path: str | Path, message: str, files: list[str]) -> str:
        """Stage exactly ``files`` and commit. Returns the new HEAD hash."""
        if not files:
            raise GitOperationError("git commit", "no files to commit")
        await self._git(path, "add", "--", *files)
        await self._git(
            path,
            "-c", f"user.name={self.config.user_name}",
            "-c", f"user.email={self.config.user_email}",
            "commit", "-m", message, "--", *files,
        )
        head = await self._git(path, "rev-parse", "HEAD")
        logger.info("Committed %d file(s) as %s", len(files), head.stdout.strip()[:12])
        return head.stdout.strip()

    async def push(self, path: str | Path, branch: str) -> None:
        await self._git(path, "push", "--set-upstream", "origin", f"{branch}:{branch}", auth=True)
        logger.info("Pushed branch %s", branch)

    async def revert_file(self, path: str | Path, rel_file: str) -> None:
        """Restore ``rel_file`` to its content at HEAD."""
        await self._git(path, "checkout", "HEAD", "--", rel_file)
        logger.info("Reverted %s to HEAD", rel_file)

    # ------------------------------------------------------------------
    # GitHub
    # ------------------------------------------------------------------
    async def list_open_branches(self, repo: RepositoryRef) -> list[str]:
        """Head branch names of all open pull requests."""
        branches: list[str] = []
        try:
            async with self._api_client() as client:
                page = 1
                while True:
                    resp = await client.get(
                        f"/repos/{repo.owner}/{repo.name}/pulls",
                        params={"state": "open", "per_page": 100, "page": page},
                    )
                    resp.raise_for_status()
                    items = resp.json()
                    branches += [item["head"]["ref"] for item in items if item.get("head")]
                    if len(items) < 100:
                        break
                    page += 1
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise GitOperationError("GET pulls", str(exc)) from exc
        return branches

    async def create_pull_request(self, repo: RepositoryRef, branch: str, title: str, body: str) -> str:
        """Open a PR from ``branch`` into the default branch. Returns its URL."""
        payload = {"title": title, "body": body, "head": branch, "base": self.config.default_branch}
        try:
            async with self._api_client() as client:
                resp = await client.post(f"/repos/{repo.owner}/{repo.name}/pulls", json=payload)
                resp.raise_for_status()
                url = resp.json().get("html_url", "")
        except httpx.HTTPStatusError as exc:
            raise GitOperationError("POST pulls", exc.response.text, exc.response.status_code) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise GitOperationError("POST pulls", str(exc)) from exc
        logger.info("Created pull request %s", url)
        return url
