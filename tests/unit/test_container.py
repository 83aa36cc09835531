"""Tests for moonlight.integrations.container -- docker lifecycle of the model server."""

import asyncio
import subprocess
from unittest.mock import patch

import pytest

from moonlight.core.config import ContainerConfig
from moonlight.integrations.container import DockerContainerManager


def _done(stdout: str = "", returncode: int = 0, stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(["docker"], returncode, stdout=stdout, stderr=stderr)


def _config(tmp_path, **overrides) -> ContainerConfig:
    values = dict(
        use_local_container=True,
        container_name="moonlight-llm-server",
        models_path=str(tmp_path / "models"),
        startup_wait_seconds=0,
    )
    values.update(overrides)
    return ContainerConfig(**values)


class FakeDocker:
    """Scripted docker CLI: answers keyed by the docker subcommand."""

    def __init__(self, **answers):
        self.answers = answers
        self.commands: list[list[str]] = []

    async def __call__(self, cmd, timeout=60):
        self.commands.append(cmd)
        answer = self.answers.get(cmd[1], _done())
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer(cmd)
        return answer

    def subcommands(self) -> list[str]:
        return [cmd[1] for cmd in self.commands]


def _patched(manager: DockerContainerManager, docker: FakeDocker, available: bool = True):
    return (
        patch.object(DockerContainerManager, "docker_available", return_value=available),
        patch.object(manager, "_run_docker", new=docker),
    )


class TestDisabled:
    @pytest.mark.asyncio
    async def test_all_calls_are_noops(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path, use_local_container=False))
        docker = FakeDocker()
        avail, run = _patched(manager, docker)
        with avail, run:
            assert await manager.ensure_running() is True
            assert await manager.ensure_model_available("codellama") is True
            await manager.cleanup()
        assert docker.commands == []


class TestEnsureRunning:
    @pytest.mark.asyncio
    async def test_docker_missing(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path))
        with patch("moonlight.integrations.container.shutil.which", return_value=None):
            assert await manager.ensure_running() is False

    @pytest.mark.asyncio
    async def test_already_running(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path))
        docker = FakeDocker(ps=_done("moonlight-llm-server\n"))
        avail, run = _patched(manager, docker)
        with avail, run:
            assert await manager.ensure_running() is True
        assert docker.subcommands() == ["ps"]

    @pytest.mark.asyncio
    async def test_auto_start_off(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path, auto_start=False))
        docker = FakeDocker(ps=_done(""))
        avail, run = _patched(manager, docker)
        with avail, run:
            assert await manager.ensure_running() is False
        assert "run" not in docker.subcommands()

    @pytest.mark.asyncio
    async def test_starts_existing_container(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path))

        def ps(cmd):
            # stopped container: visible only with -a
            return _done("moonlight-llm-server\n" if "-a" in cmd else "")

        docker = FakeDocker(ps=ps)
        avail, run = _patched(manager, docker)
        with avail, run:
            assert await manager.ensure_running() is True
        assert docker.commands[-1] == ["docker", "start", "moonlight-llm-server"]

    @pytest.mark.asyncio
    async def test_runs_new_container(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path, host_port=12345, use_gpu=True))
        docker = FakeDocker(ps=_done(""))
        avail, run = _patched(manager, docker)
        with avail, run:
            assert await manager.ensure_running() is True
        cmd = docker.commands[-1]
        assert cmd[:5] == ["docker", "run", "-d", "--name", "moonlight-llm-server"]
        assert "--gpus" in cmd
        assert "12345:11434" in cmd
        assert cmd[-1] == "ollama/ollama"
        assert (tmp_path / "models").is_dir()

    @pytest.mark.asyncio
    async def test_run_without_gpu(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path, use_gpu=False))
        docker = FakeDocker(ps=_done(""))
        avail, run = _patched(manager, docker)
        with avail, run:
            await manager.ensure_running()
        assert "--gpus" not in docker.commands[-1]

    @pytest.mark.asyncio
    async def test_run_failure(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path))
        docker = FakeDocker(ps=_done(""), run=_done(returncode=125, stderr="port is already allocated"))
        avail, run = _patched(manager, docker)
        with avail, run:
            assert await manager.ensure_running() is False

    @pytest.mark.asyncio
    async def test_run_timeout(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path))
        docker = FakeDocker(ps=_done(""), run=asyncio.TimeoutError("slow"))
        avail, run = _patched(manager, docker)
        with avail, run:
            assert await manager.ensure_running() is False


class TestEnsureModel:
    LISTING = (
        "NAME                     ID              SIZE      MODIFIED\n"
        "codellama:13b-instruct   9f438cb9cd58    7.4 GB    2 days ago\n"
        "mistral:latest           61e88e884507    4.1 GB    3 weeks ago\n"
    )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("model", ["codellama:13b-instruct", "mistral"])
    async def test_installed(self, tmp_path, model):
        manager = DockerContainerManager(_config(tmp_path))
        docker = FakeDocker(exec=_done(self.LISTING))
        avail, run = _patched(manager, docker)
        with avail, run:
            assert await manager.ensure_model_available(model) is True
        assert len(docker.commands) == 1

    @pytest.mark.asyncio
    async def test_pulls_missing_model(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path))
        docker = FakeDocker(exec=lambda cmd: _done(self.LISTING if cmd[-1] == "list" else "success"))
        avail, run = _patched(manager, docker)
        with avail, run:
            assert await manager.ensure_model_available("llama3:8b") is True
        assert docker.commands[-1][-3:] == ["ollama", "pull", "llama3:8b"]

    @pytest.mark.asyncio
    async def test_pull_failure(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path))

        def answer(cmd):
            if cmd[-1] == "list":
                return _done(self.LISTING)
            return _done(returncode=1, stderr="pull model manifest: file does not exist")

        docker = FakeDocker(exec=answer)
        avail, run = _patched(manager, docker)
        with avail, run:
            assert await manager.ensure_model_available("nope") is False

    @pytest.mark.asyncio
    async def test_list_failure(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path))
        docker = FakeDocker(exec=_done(returncode=1, stderr="No such container"))
        avail, run = _patched(manager, docker)
        with avail, run:
            assert await manager.ensure_model_available("codellama") is False


class TestCleanup:
    @pytest.mark.asyncio
    async def test_stop_and_remove(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path))
        docker = FakeDocker()
        avail, run = _patched(manager, docker)
        with avail, run:
            await manager.cleanup()
        assert docker.subcommands() == ["stop", "rm"]

    @pytest.mark.asyncio
    async def test_stop_only_without_prune(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path, prune_after_stop=False))
        docker = FakeDocker()
        avail, run = _patched(manager, docker)
        with avail, run:
            await manager.cleanup()
        assert docker.subcommands() == ["stop"]

    @pytest.mark.asyncio
    async def test_auto_stop_off(self, tmp_path):
        manager = DockerContainerManager(_config(tmp_path, auto_stop=False))
        docker = FakeDocker()
        avail, run = _patched(manager, docker)
        with avail, run:
            await manager.cleanup()
        assert docker.commands == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [asyncio.TimeoutError("slow"), OSError("docker gone")])
    async def test_never_raises(self, tmp_path, error):
        manager = DockerContainerManager(_config(tmp_path))
        docker = FakeDocker(stop=error)
        avail, run = _patched(manager, docker)
        with avail, run:
            await manager.cleanup()
