# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""MoonlightAI configuration schema.

Config location: ~/.moonlight/config.yaml (override with MOONLIGHT_HOME or
an explicit path). A missing file yields defaults; a file that cannot be
parsed is logged and ignored. Individual values that are present but
invalid raise ConfigError so a typo never silently changes behaviour.

Example::

    repository_url: https://github.com/acme/widgets.git
    ai_server:
      server_url: http://localhost:11434
      model_name: codellama:13b-instruct
    workload:
      batch_size: 5
      max_build_retries: 2
    codedoc:
      solution_path: Widgets.sln
      project_path: src/Widgets/Widgets.csproj
      document_visibility: Public, Internal
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from moonlight.core.errors import ConfigError
from moonlight.core.models import CleanupOptions, MemberVisibility

logger = logging.getLogger("moonlight.core.config")

# ---------------------------------------------------------------------------
# Default paths
# ---------------------------------------------------------------------------
_MOONLIGHT_HOME = Path(os.environ.get("MOONLIGHT_HOME", Path.home() / ".moonlight"))
DEFAULT_CONFIG_PATH = _MOONLIGHT_HOME / "config.yaml"

# Files whose undocumented share is at or below this ratio are left alone.
DEFAULT_ADMISSION_THRESHOLD = 0.5


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass
class AIServerConfig:
    server_url: str = "http://localhost:11434"
    model_name: str = "codellama:13b-instruct"
    timeout_seconds: int = 300
    health_max_attempts: int = 10
    health_delay_seconds: float = 3.0


@dataclass
class ContainerConfig:
    """Local Ollama container managed through the docker CLI."""

    use_local_container: bool = False
    image_name: str = "ollama/ollama"
    container_name: str = "moonlight-llm-server"
    host_port: int = 11434
    auto_start: bool = True
    auto_stop: bool = True
    prune_after_stop: bool = True
    models_path: str = "./ollama-models"
    use_gpu: bool = True
    startup_wait_seconds: float = 5.0


@dataclass
class GitConfig:
    personal_access_token: str = ""
    default_branch: str = "main"
    working_directory: str = "./repositories"
    user_name: str = "MoonlightAI"
    user_email: str = "moonlight@localhost"
    api_url: str = "https://api.github.com"


@dataclass
class WorkloadConfig:
    """Batch-wide behaviour shared by every workload kind."""

    batch_size: int = 10
    validate_builds: bool = True
    max_build_retries: int = 2
    revert_on_build_failure: bool = True
    admission_threshold: float = DEFAULT_ADMISSION_THRESHOLD
    build_timeout_seconds: int = 600
    # 0 disables the limit; checked between files only
    max_duration_seconds: float = 0.0


@dataclass
class CodeDocConfig:
    solution_path: str = ""
    project_path: str = ""
    document_visibility: str = "Public"

    @property
    def visibility(self) -> MemberVisibility:
        return MemberVisibility.parse(self.document_visibility)


@dataclass
class CleanupConfig:
    solution_path: str = ""
    project_path: str = ""
    remove_unused_usings: bool = True
    convert_public_fields_to_properties: bool = True
    reorder_private_fields: bool = True
    max_operations_per_run: int = 1

    def to_options(self) -> CleanupOptions:
        return CleanupOptions(
            remove_unused_usings=self.remove_unused_usings,
            convert_public_fields_to_properties=self.convert_public_fields_to_properties,
            reorder_private_fields=self.reorder_private_fields,
            max_operations_per_run=self.max_operations_per_run,
        )


@dataclass
class PromptConfig:
    directory: str = "./prompts"
    enable_custom_prompts: bool = True


@dataclass
class MoonlightConfig:
    """Full MoonlightAI configuration."""

    repository_url: str = ""
    ai_server: AIServerConfig = field(default_factory=AIServerConfig)
    container: ContainerConfig = field(default_factory=ContainerConfig)
    git: GitConfig = field(default_factory=GitConfig)
    workload: WorkloadConfig = field(default_factory=WorkloadConfig)
    codedoc: CodeDocConfig = field(default_factory=CodeDocConfig)
    cleanup: CleanupConfig = field(default_factory=CleanupConfig)
    prompts: PromptConfig = field(default_factory=PromptConfig)


_SECTIONS: dict[str, type] = {
    "ai_server": AIServerConfig,
    "container": ContainerConfig,
    "git": GitConfig,
    "workload": WorkloadConfig,
    "codedoc": CodeDocConfig,
    "cleanup": CleanupConfig,
    "prompts": PromptConfig,
}


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def load_config(path: Path | str | None = None) -> MoonlightConfig:
    """Load configuration from YAML, falling back to defaults."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        logger.info("No config at %s -- using defaults", config_path)
        return MoonlightConfig()

    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        logger.error("Failed to load config %s: %s -- using defaults", config_path, exc)
        return MoonlightConfig()

    if raw is None:
        return MoonlightConfig()
    if not isinstance(raw, dict):
        logger.warning("Invalid config (not a mapping) -- using defaults")
        return MoonlightConfig()
    return parse_config(raw)


def save_config(config: MoonlightConfig, path: Path | str | None = None) -> None:
    """Write configuration to YAML."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {"repository_url": config.repository_url}
    for name in _SECTIONS:
        section = getattr(config, name)
        data[name] = {f.name: getattr(section, f.name) for f in fields(section)}
    config_path.write_text(
        yaml.dump(data, default_flow_style=False, sort_keys=False), encoding="utf-8"
    )
    logger.info("Saved config to %s", config_path)


def parse_config(raw: dict[str, Any]) -> MoonlightConfig:
    """Build a MoonlightConfig from a raw mapping and validate it."""
    config = MoonlightConfig(repository_url=str(raw.get("repository_url", "") or ""))
    for name, section_type in _SECTIONS.items():
        section_raw = raw.get(name, {}) or {}
        if not isinstance(section_raw, dict):
            raise ConfigError(f"Section '{name}' must be a mapping")
        setattr(config, name, _parse_section(name, section_type, section_raw))
    validate_config(config)
    return config


def _parse_section(name: str, section_type: type, raw: dict[str, Any]) -> Any:
    known = {f.name: f for f in fields(section_type)}
    defaults = section_type()
    values: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            logger.warning("Unknown config key '%s.%s' ignored", name, key)
            continue
        values[key] = _coerce(f"{name}.{key}", getattr(defaults, key), value)
    return section_type(**values)


def _coerce(key: str, default: Any, value: Any) -> Any:
    """Coerce a YAML value to the type of its default."""
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false", "yes", "no"):
            return value.strip().lower() in ("true", "yes")
        raise ConfigError(f"{key} must be a boolean, got {value!r}")
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{key} must be an integer, got {value!r}") from None
    if isinstance(default, float):
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{key} must be a number, got {value!r}") from None
    return "" if value is None else str(value)


def validate_config(config: MoonlightConfig) -> None:
    """Raise ConfigError for values no run could succeed with."""
    if config.workload.batch_size < 1:
        raise ConfigError("workload.batch_size must be at least 1")
    if config.workload.max_build_retries < 0:
        raise ConfigError("workload.max_build_retries cannot be negative")
    if not 0.0 <= config.workload.admission_threshold < 1.0:
        raise ConfigError("workload.admission_threshold must be in [0, 1)")
    if config.workload.max_duration_seconds < 0:
        raise ConfigError("workload.max_duration_seconds cannot be negative")
    if config.ai_server.timeout_seconds <= 0:
        raise ConfigError("ai_server.timeout_seconds must be positive")
    if config.ai_server.health_max_attempts < 1:
        raise ConfigError("ai_server.health_max_attempts must be at least 1")
    if config.cleanup.max_operations_per_run < 1:
        raise ConfigError("cleanup.max_operations_per_run must be at least 1")
    if not 0 < config.container.host_port < 65536:
        raise ConfigError("container.host_port must be a valid TCP port")
