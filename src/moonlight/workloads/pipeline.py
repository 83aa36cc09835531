# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- Mutation Pipeline (v0.4.0)

Per-file loop that drives one file to a fixpoint:

    analyze -> pick next unattempted unit -> prompt -> AI -> sanitize -> apply
       ^                                                                 |
       +------------------- restart after every applied edit ------------+

The structural analysis is recomputed from disk on every iteration, so line
numbers are never carried across a mutation. The attempted-key set is owned
by the caller and passed in explicitly; a key is added before the AI call so
a timeout or rejection can never make the loop spin on the same unit.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Protocol

from moonlight.analysis import analyze_file, validate_syntax
from moonlight.core.errors import GatewayError, GatewayTimeoutError, ModelNotFoundError
from moonlight.core.models import (
    AIResponse,
    CleanupOpportunity,
    CleanupOptions,
    MemberVisibility,
    UnitKind,
    WorkloadStatistics,
)
from moonlight.workloads.applier import (
    insert_above,
    leading_indentation,
    read_text,
    replace_content,
    split_lines,
)
from moonlight.workloads.cleanup import next_opportunity
from moonlight.workloads.extractor import next_unit
from moonlight.workloads.prompts import PromptService
from moonlight.workloads.sanitizer import sanitize

logger = logging.getLogger("moonlight.workloads.pipeline")

# Type declarations can be long; the prompt only needs the head of the type.
MAX_CLASS_SLICE_LINES = 80


class AIGateway(Protocol):
    async def generate(self, prompt: str) -> AIResponse:
        ...


def extract_code_from_response(response: str) -> str:
    """Unwrap the first fenced code block, or return the trimmed text as-is."""
    trimmed = response.strip()
    lines = trimmed.split("\n")
    start = next((i for i, line in enumerate(lines) if line.strip().startswith("```")), None)
    if start is None:
        return trimmed
    body: list[str] = []
    for line in lines[start + 1:]:
        if line.strip().startswith("```"):
            break
        body.append(line.rstrip("\r"))
    return "\n".join(body).strip("\n")


async def ask_gateway(
    gateway: AIGateway,
    prompt: str,
    label: str,
    statistics: WorkloadStatistics,
) -> AIResponse | None:
    """One AI call with non-fatal error accounting.

    Returns None on timeout, transport error or an incomplete response, after
    recording the error. ``ModelNotFoundError`` propagates: no later call in
    the batch can succeed either.
    """
    start = time.monotonic()
    try:
        response = await gateway.generate(prompt)
    except ModelNotFoundError:
        raise
    except GatewayTimeoutError:
        statistics.record_ai_call(AIResponse(duration_seconds=time.monotonic() - start))
        logger.warning("AI server timed out for %s", label)
        statistics.record_error(f"Timeout: {label}")
        return None
    except GatewayError as exc:
        statistics.record_ai_call(AIResponse(duration_seconds=time.monotonic() - start))
        logger.warning("AI call failed for %s: %s", label, exc)
        statistics.record_error(f"AI error: {label}: {exc}")
        return None

    statistics.record_ai_call(response)
    if not response.done:
        logger.warning("AI response not complete for %s", label)
        statistics.record_error(f"Incomplete response: {label}")
        return None
    return response


class MutationPipeline:
    """Runs the documentation or cleanup loop on one file at a time."""

    def __init__(
        self,
        gateway: AIGateway,
        prompts: PromptService,
        statistics: WorkloadStatistics,
    ):
        self.gateway = gateway
        self.prompts = prompts
        self.statistics = statistics

    # =========================================================================
    # Documentation
    # =========================================================================

    async def document_file(
        self,
        path: str | Path,
        visibility: MemberVisibility,
        attempted: set[str] | None = None,
    ) -> int:
        """Add ``///`` blocks until no unattempted unit remains.

        Returns the number of units documented in this run.
        """
        attempted = set() if attempted is None else attempted
        modified = 0

        while True:
            analysis = analyze_file(path)
            if not analysis.parsed_ok:
                logger.warning("Skipping file with parse errors: %s (%s)", path, "; ".join(analysis.parse_errors[:3]))
                break

            unit = next_unit(analysis, visibility, attempted)
            if unit is None:
                break
            attempted.add(unit.key)

            lines = split_lines(read_text(path))
            last = unit.last_line
            if unit.kind == UnitKind.CLASS:
                last = min(last, unit.first_line + MAX_CLASS_SLICE_LINES - 1)
            source = "".join(lines[unit.first_line - 1:last]).lstrip("\ufeff").rstrip()
            indentation = leading_indentation(lines[unit.first_line - 1].lstrip("\ufeff"))

            logger.info("Generating documentation for %s %s at line %d", unit.kind.value, unit.key, unit.first_line)
            prompt = self.prompts.get_prompt("codedoc", unit.kind.value, {unit.kind.value: source})
            response = await ask_gateway(self.gateway, prompt, unit.key, self.statistics)
            if response is None:
                continue

            result = sanitize(response.text, unit, indentation)
            self.statistics.sanitization_fixes += result.fix_count
            if not result.valid:
                logger.warning("Rejected documentation for %s: %s", unit.key, result.reason)
                logger.debug("Raw response for %s: %s", unit.key, result.raw_text[:1000])
                self.statistics.record_error(f"Sanitization rejected {unit.key}: {result.reason}")
                continue

            if not insert_above(path, unit.first_line, result.lines):
                self.statistics.record_error(f"Failed to write documentation for {unit.key}")
                continue

            modified += 1
            self.statistics.items_modified += 1
            logger.info("Documented %s (%d line(s), %d fix(es))", unit.key, len(result.lines), result.fix_count)

        return modified

    # =========================================================================
    # Cleanup
    # =========================================================================

    async def cleanup_file(
        self,
        path: str | Path,
        options: CleanupOptions,
        attempted: set[str] | None = None,
    ) -> int:
        """Apply up to ``options.max_operations_per_run`` cleanup operations."""
        attempted = set() if attempted is None else attempted
        modified = 0

        while modified < options.max_operations_per_run:
            analysis = analyze_file(path)
            if not analysis.parsed_ok:
                logger.warning("Skipping file with parse errors: %s", path)
                break

            content = read_text(path)
            opportunity = next_opportunity(analysis, content, options, attempted)
            if opportunity is None:
                break
            attempted.add(opportunity.key)

            logger.info("Cleanup %s at line %d in %s", opportunity.type.value, opportunity.line, path)
            prompt = self.prompts.get_prompt(
                "cleanup", opportunity.type.value, _cleanup_variables(opportunity, content)
            )
            response = await ask_gateway(self.gateway, prompt, opportunity.key, self.statistics)
            if response is None:
                continue

            code = extract_code_from_response(response.text)
            if not code.strip():
                self.statistics.record_error(f"Empty cleanup response: {opportunity.key}")
                continue
            if not validate_syntax(code):
                logger.warning("Cleaned code for %s has syntax errors", opportunity.key)
                self.statistics.record_error(f"Cleanup produced invalid syntax: {opportunity.key}")
                continue
            if content.endswith("\n") and not code.endswith("\n"):
                code += "\n"

            if not replace_content(path, code):
                self.statistics.record_error(f"Failed to write cleanup for {opportunity.key}")
                continue

            modified += 1
            self.statistics.items_modified += 1

        return modified


def _cleanup_variables(opportunity: CleanupOpportunity, content: str) -> dict[str, str]:
    meta = opportunity.metadata
    return {
        "lineNumber": str(opportunity.line),
        "fileContent": content.lstrip("\ufeff"),
        "namespace": meta.get("namespace", ""),
        "fieldName": meta.get("field_name", ""),
        "fieldType": meta.get("field_type", ""),
        "propertyName": meta.get("property_name", ""),
        "className": meta.get("class_name", ""),
    }
