# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- Documentation Sanitizer (v0.4.0)

Converts free-form AI text into a safe, minimal ``///`` comment block.

STEPS (in order):
    1. UNWRAP   -- take the body of an optional <doc>...</doc> wrapper
    2. PARSE    -- split into lines, drop code fences, keep only /// lines
    3. ESCAPES  -- repair literal \\n, \\r\\n and \\t the model wrote as text
    4. EMPTY    -- remove empty tag pairs and empty self-closing tags
    5. REJECT   -- nothing left, first line not <summary>, or a
                   single-occurrence tag repeated
    6. METHODS  -- strip <returns> on void methods, unknown <param> names,
                   orphaned closing tags and trailing backslashes
    7. REJECT   -- step 6 removed every line

Every repair or strip increments ``fix_count``. The count is telemetry
only; acceptance is decided by the reject rules.
"""

from __future__ import annotations

import logging
import re

from moonlight.core.models import SanitizeResult, UnitKind, WorkUnit

logger = logging.getLogger("moonlight.workloads.sanitizer")

# =============================================================================
# CONSTANTS
# =============================================================================

SINGLE_OCCURRENCE_TAGS = ("summary", "remarks", "returns", "value", "example", "inheritdoc")

# Tags tracked by the open/close stack when looking for orphaned closers
TRACKED_TAGS = frozenset(
    {
        "summary",
        "remarks",
        "param",
        "returns",
        "exception",
        "example",
        "see",
        "seealso",
        "value",
        "typeparam",
    }
)

_DOC_WRAPPER = re.compile(r"<doc>\s*(.*?)\s*</doc>", re.DOTALL)
_EMPTY_TAG = re.compile(
    r"^(\s*)///\s*<(\w+)>\s*</\2>\s*$|^(\s*)///\s*<(\w+)\s*/>\s*$",
    re.IGNORECASE,
)
_PARAM_TAG = re.compile(r'<param name="([^"]+)">')
_OPEN_TAG = re.compile(r"<(\w+)(?:\s[^<>]*?)?(?<!/)>")
_CLOSE_TAG = re.compile(r"</(\w+)>")


# =============================================================================
# INDIVIDUAL STEPS
# =============================================================================


def extract_from_doc_tags(response: str) -> str:
    """Return the body of a <doc> wrapper, or the text unchanged."""
    match = _DOC_WRAPPER.search(response)
    return match.group(1) if match else response


def parse_documentation_lines(response: str, indentation: str) -> list[str]:
    """Keep only ``///`` lines, re-indented to the target member."""
    lines = []
    for raw in response.strip("`").split("\n"):
        line = raw.strip()
        if not line or not line.startswith("///"):
            continue
        lines.append(f"{indentation}{line}")
    return lines


def fix_literal_escape_sequences(lines: list[str], indentation: str) -> tuple[list[str], int]:
    """Split lines that contain literal ``\\n`` and expand literal ``\\t``."""
    fixed: list[str] = []
    fix_count = 0
    for line in lines:
        if "\\n" not in line and "\\t" not in line:
            fixed.append(line)
            continue

        processed = line
        if "\\r\\n" in processed:
            processed = processed.replace("\\r\\n", "\\n")
            fix_count += 1

        if "\\n" in processed:
            fix_count += 1
            for part in processed.split("\\n"):
                part = part.strip()
                if not part:
                    continue
                if not part.startswith("///"):
                    part = "/// " + part
                fixed.append(indentation + part.replace("\\t", "    "))
        else:
            fix_count += 1
            fixed.append(processed.replace("\\t", "    "))

    if fix_count:
        logger.warning(
            "Fixed %d literal escape sequence(s) in documentation "
            "(model wrote escapes as text instead of line breaks)",
            fix_count,
        )
    return fixed, fix_count


def remove_empty_xml_tags(lines: list[str]) -> list[str]:
    kept = [line for line in lines if not _EMPTY_TAG.match(line)]
    if len(kept) != len(lines):
        logger.debug("Removed %d empty XML tag line(s)", len(lines) - len(kept))
    return kept


def validate_summary_tag(lines: list[str], member_name: str) -> bool:
    if not lines:
        return False
    if "<summary>" not in lines[0]:
        logger.warning(
            "Documentation for %s does not start with <summary>. First line: %s",
            member_name,
            lines[0].strip(),
        )
        return False
    return True


def validate_single_occurrence_tags(lines: list[str], member_name: str) -> bool:
    for tag in SINGLE_OCCURRENCE_TAGS:
        count = sum(1 for line in lines if f"<{tag}>" in line)
        if count > 1:
            logger.warning(
                "Documentation for %s contains %d <%s> tags; only one is allowed",
                member_name,
                count,
                tag,
            )
            return False
    return True


def sanitize_method_documentation(unit: WorkUnit, lines: list[str]) -> tuple[list[str], int]:
    """Strip tags that contradict the method's real signature.

    Returns the kept lines and the number of lines stripped.
    """
    kept: list[str] = []
    fix_count = 0
    actual_params = {p.name for p in unit.parameters}
    is_void = unit.is_void
    open_tags: list[str] = []

    for line in lines:
        cleaned = line.rstrip("\\")
        if cleaned != line:
            fix_count += 1
        trimmed = cleaned.strip()

        if is_void and ("<returns>" in trimmed or "</returns>" in trimmed):
            logger.warning("Stripped <returns> tag from %s method %s", unit.return_type, unit.name)
            fix_count += 1
            continue

        param = _PARAM_TAG.search(trimmed)
        if param and param.group(1) not in actual_params:
            logger.warning("Stripped undeclared parameter '%s' from %s", param.group(1), unit.name)
            fix_count += 1
            continue

        for match in _OPEN_TAG.finditer(trimmed):
            if match.group(1) in TRACKED_TAGS:
                open_tags.append(match.group(1))

        orphan = None
        for match in _CLOSE_TAG.finditer(trimmed):
            tag = match.group(1)
            if tag not in TRACKED_TAGS:
                continue
            if open_tags and open_tags[-1] == tag:
                open_tags.pop()
            else:
                orphan = tag
                break
        if orphan:
            logger.warning("Stripped orphaned closing tag </%s> in %s", orphan, unit.name)
            fix_count += 1
            continue

        kept.append(cleaned)

    # Report gaps, never strip for them
    joined = "\n".join(kept)
    if not is_void and kept and "<returns>" not in joined:
        logger.info("%s returns %s but has no <returns> tag (kept)", unit.name, unit.return_type)
    documented = set(_PARAM_TAG.findall(joined))
    for param in unit.parameters:
        if param.name not in documented:
            logger.info("Parameter '%s' of %s is not documented (kept)", param.name, unit.name)

    return kept, fix_count


# =============================================================================
# PIPELINE ENTRY POINT
# =============================================================================


def sanitize(raw_text: str, unit: WorkUnit, indentation: str = "") -> SanitizeResult:
    """Run every step and return ``(valid, lines, fix_count)`` as a SanitizeResult."""
    result = SanitizeResult(raw_text=raw_text)
    name = unit.key

    body = extract_from_doc_tags(raw_text.strip())
    lines = parse_documentation_lines(body, indentation)
    lines, escape_fixes = fix_literal_escape_sequences(lines, indentation)
    result.fix_count += escape_fixes
    lines = remove_empty_xml_tags(lines)

    if not lines:
        logger.warning(
            "No documentation lines for %s. Response: %s", name, raw_text[:500]
        )
        return _reject(result, "no documentation lines")
    result.lines = lines

    if not validate_summary_tag(lines, name):
        return _reject(result, "first line is not <summary>", lines)
    if not validate_single_occurrence_tags(lines, name):
        return _reject(result, "single-occurrence tag repeated", lines)

    if unit.kind == UnitKind.METHOD:
        lines, method_fixes = sanitize_method_documentation(unit, lines)
        result.fix_count += method_fixes
        if not lines:
            return _reject(result, "every line was stripped")

    result.lines = lines
    result.valid = True
    return result


def _reject(result: SanitizeResult, reason: str, lines: list[str] | None = None) -> SanitizeResult:
    result.valid = False
    result.reason = reason
    result.lines = lines or []
    return result
