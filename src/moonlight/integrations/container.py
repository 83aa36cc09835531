# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- Model Container Manager (v0.4.0)

Optional local Ollama container, driven through the docker CLI.

Lifecycle:
    ensure_running()          start an existing container or run a new one
    ensure_model_available()  ``ollama list`` inside the container, pull if absent
    cleanup()                 stop and optionally remove; never raises

When ``use_local_container`` is off every call is a successful no-op: the
AI server is assumed to be managed elsewhere.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
from pathlib import Path

from moonlight.core.config import ContainerConfig

logger = logging.getLogger("moonlight.integrations.container")

OLLAMA_CONTAINER_PORT = 11434
MODEL_PULL_TIMEOUT = 3600


class DockerContainerManager:
    """Manages the model server container."""

    def __init__(self, config: ContainerConfig):
        self.config = config

    # ------------------------------------------------------------------
    # Docker helpers
    # ------------------------------------------------------------------
    @staticmethod
    def docker_available() -> bool:
        return shutil.which("docker") is not None

    @staticmethod
    async def _run_docker(cmd: list[str], timeout: int = 60) -> subprocess.CompletedProcess:
        """Run a Docker CLI command without blocking the event loop."""
        loop = asyncio.get_running_loop()

        def _run() -> subprocess.CompletedProcess:
            return subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)

        try:
            return await loop.run_in_executor(None, _run)
        except subprocess.TimeoutExpired:
            raise asyncio.TimeoutError(f"Docker command timed out ({timeout}s): {' '.join(cmd)}") from None

    async def _container_exists(self) -> bool:
        result = await self._run_docker(
            ["docker", "ps", "-a", "--filter", f"name=^{self.config.container_name}$", "--format", "{{.Names}}"]
        )
        return self.config.container_name in result.stdout.split()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def is_running(self) -> bool:
        if not self.docker_available():
            return False
        result = await self._run_docker(
            [
                "docker", "ps",
                "--filter", f"name=^{self.config.container_name}$",
                "--filter", "status=running",
                "--format", "{{.Names}}",
            ]
        )
        return result.returncode == 0 and self.config.container_name in result.stdout.split()

    async def ensure_running(self) -> bool:
        """Make sure the model container is up. Returns False on failure."""
        if not self.config.use_local_container:
            logger.debug("Local container disabled, assuming external AI server")
            return True
        if not self.docker_available():
            logger.error("Docker CLI not found on PATH")
            return False
        if await self.is_running():
            logger.info("Container %s already running", self.config.container_name)
            return True
        if not self.config.auto_start:
            logger.error("Container %s is not running and auto_start is off", self.config.container_name)
            return False

        if await self._container_exists():
            cmd = ["docker", "start", self.config.container_name]
        else:
            models = Path(self.config.models_path).resolve()
            models.mkdir(parents=True, exist_ok=True)
            cmd = ["docker", "run", "-d", "--name", self.config.container_name]
            if self.config.use_gpu:
                cmd += ["--gpus", "all"]
            cmd += [
                "-p", f"{self.config.host_port}:{OLLAMA_CONTAINER_PORT}",
                "-v", f"{models}:/root/.ollama",
                "--restart", "unless-stopped",
                self.config.image_name,
            ]

        try:
            result = await self._run_docker(cmd, timeout=300)
        except asyncio.TimeoutError as exc:
            logger.error("Failed to start container: %s", exc)
            return False
        if result.returncode != 0:
            stderr = result.stderr.strip()[:500] if result.stderr else "unknown error"
            logger.error("Failed to start container: %s", stderr)
            return False

        logger.info("Container %s started, waiting %.1fs", self.config.container_name, self.config.startup_wait_seconds)
        await asyncio.sleep(self.config.startup_wait_seconds)
        return True

    async def ensure_model_available(self, model: str) -> bool:
        """Pull ``model`` into the container when it is not installed."""
        if not self.config.use_local_container:
            return True
        result = await self._run_docker(["docker", "exec", self.config.container_name, "ollama", "list"])
        if result.returncode != 0:
            logger.error("Cannot list models: %s", (result.stderr or "").strip()[:300])
            return False
        installed = {line.split()[0] for line in result.stdout.splitlines()[1:] if line.strip()}
        if model in installed or f"{model}:latest" in installed:
            logger.info("Model %s already available", model)
            return True

        logger.info("Pulling model %s (this can take a while)", model)
        try:
            pulled = await self._run_docker(
                ["docker", "exec", self.config.container_name, "ollama", "pull", model],
                timeout=MODEL_PULL_TIMEOUT,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Model pull failed: %s", exc)
            return False
        if pulled.returncode != 0:
            logger.error("Model pull failed: %s", (pulled.stderr or "").strip()[:300])
            return False
        return True

    async def cleanup(self) -> None:
        """Stop (and optionally remove) the container. Errors are logged only."""
        if not self.config.use_local_container or not self.config.auto_stop:
            return
        if not self.docker_available():
            return
        try:
            await self._run_docker(["docker", "stop", self.config.container_name], timeout=60)
            logger.info("Stopped container %s", self.config.container_name)
            if self.config.prune_after_stop:
                await self._run_docker(["docker", "rm", self.config.container_name], timeout=60)
                logger.info("Removed container %s", self.config.container_name)
        except (asyncio.TimeoutError, OSError) as exc:
            logger.warning("Container cleanup failed: %s", exc)
