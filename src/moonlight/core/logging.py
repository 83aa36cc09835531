# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- Logging (v0.4.0)

Log file: ~/.moonlight/logs/moonlight.log (rotating, 10 MB per file).

Every module logs through ``logging.getLogger("moonlight.<module>")``.
``configure_logging`` attaches handlers to the ``moonlight`` parent logger
once per process; calling it again replaces them.

Format:
    TIMESTAMP | LEVEL | COMPONENT | MESSAGE | {structured fields}

Example:
    2026-02-09T17:30:46.500Z | INFO  | pipeline     | Documented Foo.Bar | file="src/Foo.cs"
    2026-02-09T17:30:46.501Z | AI    | ollama       | AI call | model="codellama" prompt_tokens=340
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# =============================================================================
# CONSTANTS
# =============================================================================

MAX_LOG_FILE_BYTES = 10 * 1024 * 1024  # 10 MB per file
LOG_BACKUP_COUNT = 20
MOONLIGHT_HOME = Path(os.environ.get("MOONLIGHT_HOME", Path.home() / ".moonlight"))
LOG_DIR = MOONLIGHT_HOME / "logs"
LOG_FILE_NAME = "moonlight.log"
ROOT_LOGGER = "moonlight"


# =============================================================================
# CUSTOM FORMATTER -- human-readable + structured
# =============================================================================


class MoonlightLogFormatter(logging.Formatter):
    """Format records as ``TIMESTAMP | LEVEL | COMPONENT | MESSAGE | fields``."""

    LEVEL_WIDTH = 5
    COMPONENT_WIDTH = 12

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.fromtimestamp(record.created, tz=timezone.utc)
        ts = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"

        level = getattr(record, "moonlight_level", record.levelname)
        component = record.name.rsplit(".", 1)[-1]
        message = record.getMessage()

        fields = getattr(record, "fields", None) or {}
        field_str = ""
        if fields:
            parts = []
            for k, v in fields.items():
                if isinstance(v, str):
                    parts.append(f'{k}="{v}"')
                elif isinstance(v, float):
                    parts.append(f"{k}={v:.3f}")
                else:
                    parts.append(f"{k}={v}")
            field_str = " | " + " ".join(parts)

        line = (
            f"{ts} | {level:<{self.LEVEL_WIDTH}} | "
            f"{component:<{self.COMPONENT_WIDTH}} | {message}{field_str}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# SETUP
# =============================================================================


def configure_logging(
    level: str | int = "INFO",
    log_dir: Path | str | None = None,
    stderr: bool = True,
) -> Path:
    """Attach the rotating file handler (and optionally stderr) to ``moonlight``.

    Returns the path of the active log file.
    """
    directory = Path(log_dir) if log_dir else LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)
    log_file = directory / LOG_FILE_NAME

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG)
    root.propagate = False

    # Remove existing handlers to avoid duplicates
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    file_handler = logging.handlers.RotatingFileHandler(
        str(log_file),
        maxBytes=MAX_LOG_FILE_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(MoonlightLogFormatter())
    root.addHandler(file_handler)

    if stderr:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setLevel(level)
        stderr_handler.setFormatter(MoonlightLogFormatter())
        root.addHandler(stderr_handler)

    root.debug("Logger initialized", extra={"fields": {"log_file": str(log_file)}})
    return log_file


# =============================================================================
# DOMAIN-SPECIFIC HELPERS
# =============================================================================


def log_ai_call(
    logger: logging.Logger,
    model: str,
    prompt_tokens: int = 0,
    response_tokens: int = 0,
    latency_ms: int = 0,
    success: bool = True,
    **fields: Any,
) -> None:
    """Log one AI backend call with structured token and latency fields."""
    fields.update(
        model=model,
        prompt_tokens=prompt_tokens,
        response_tokens=response_tokens,
        latency_ms=latency_ms,
        success=success,
    )
    logger.info(
        "AI call",
        extra={"fields": fields, "moonlight_level": "AI" if success else "AI-ERR"},
    )
