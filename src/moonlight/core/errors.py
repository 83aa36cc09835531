# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""Exception taxonomy for MoonlightAI.

Unit-level problems (a timed out AI call, a rejected response) are
recorded in statistics and never abort a file. File-level problems never
abort a batch. Readiness failures abort the batch before any mutation.
"""

from __future__ import annotations


class MoonlightError(Exception):
    """Base class for all MoonlightAI errors."""


class GatewayError(MoonlightError):
    """The AI backend could not be reached or returned an unusable reply."""


class GatewayTimeoutError(GatewayError):
    """The AI backend did not answer within the configured timeout."""


class ModelNotFoundError(GatewayError):
    """The requested model is not installed on the AI backend."""

    def __init__(self, model: str, detail: str = ""):
        self.model = model
        self.detail = detail
        super().__init__(
            f"AI model '{model}' is not available on the server. "
            f"Pull it first with: ollama pull {model}"
        )


class ReadinessError(MoonlightError):
    """A batch-level readiness gate failed."""

    def __init__(self, gate: str, message: str):
        self.gate = gate
        super().__init__(message)


class GitOperationError(MoonlightError):
    """A git command or GitHub API call failed."""

    def __init__(self, command: str, stderr: str = "", returncode: int | None = None):
        self.command = command
        self.stderr = stderr
        self.returncode = returncode
        detail = stderr.strip()[:500] if stderr else "unknown error"
        super().__init__(f"{command} failed: {detail}")


class InvalidTransitionError(ValueError):
    """Raised when an invalid workload state transition is attempted."""


class ConfigError(ValueError):
    """Raised when a configuration value is invalid."""
