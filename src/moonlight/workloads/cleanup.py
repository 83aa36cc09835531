# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""Cleanup opportunity detection for the code-cleanup workload.

Detection is deliberately conservative; anything the heuristics are not
sure about is left alone. Opportunities are recomputed from a fresh
analysis after every applied cleanup, the same way documentation units are.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from moonlight.analysis.types import FileAnalysis
from moonlight.core.models import CleanupOpportunity, CleanupOptions, CleanupType

logger = logging.getLogger("moonlight.workloads.cleanup")

# Namespaces we are willing to call unused, with tokens that prove usage
UNUSED_USING_INDICATORS: dict[str, tuple[str, ...]] = {
    "System.Text": ("StringBuilder", "Encoding"),
    "System.Linq": (".Select(", ".Where(", ".OrderBy(", ".Any(", ".First(", ".ToList(", ".Count("),
    "System.Threading.Tasks": ("Task<", "Task ", "async ", "await ", "Task."),
    "System.Collections.Generic": ("List<", "Dictionary<", "IEnumerable<", "HashSet<"),
}


def to_pascal_case(field_name: str) -> str:
    """``_retryCount`` -> ``RetryCount``."""
    name = field_name.lstrip("_")
    return name[:1].upper() + name[1:] if name else name


def is_likely_unused_using(namespace: str, content_without_using: str) -> bool:
    indicators = UNUSED_USING_INDICATORS.get(namespace)
    if not indicators:
        return False
    return not any(token in content_without_using for token in indicators)


def detect_unused_usings(analysis: FileAnalysis, content: str) -> list[CleanupOpportunity]:
    found = []
    for using in analysis.usings:
        remainder = content.replace(using.text, "")
        if is_likely_unused_using(using.namespace, remainder):
            found.append(
                CleanupOpportunity(
                    type=CleanupType.UNUSED_USING,
                    line=using.line,
                    original_code=using.text,
                    metadata={"namespace": using.namespace},
                )
            )
    return found


def detect_public_fields(analysis: FileAnalysis) -> list[CleanupOpportunity]:
    found = []
    for cls in analysis.classes:
        if cls.kind != "class":
            continue
        for field in cls.fields:
            if field.accessibility != "public" or field.is_const:
                continue
            found.append(
                CleanupOpportunity(
                    type=CleanupType.PUBLIC_FIELD_TO_PROPERTY,
                    line=field.first_line,
                    metadata={
                        "field_name": field.name,
                        "field_type": field.type,
                        "property_name": to_pascal_case(field.name),
                        "class_name": cls.name,
                    },
                )
            )
    return found


def detect_private_field_ordering(analysis: FileAnalysis) -> list[CleanupOpportunity]:
    """Classes where a property or method appears before the last private field."""
    found = []
    for cls in analysis.classes:
        if cls.kind != "class":
            continue
        private_fields = [f for f in cls.fields if f.accessibility == "private"]
        if not private_fields:
            continue
        last_field_line = max(f.first_line for f in private_fields)
        members_before = [
            m.first_line
            for m in (*cls.properties, *cls.methods)
            if m.first_line < last_field_line
        ]
        if members_before:
            found.append(
                CleanupOpportunity(
                    type=CleanupType.REORDER_PRIVATE_FIELDS,
                    line=cls.first_line,
                    original_code="Private fields need reordering",
                    metadata={
                        "class_name": cls.name,
                        "field_count": str(len(private_fields)),
                    },
                )
            )
    return found


def detect_opportunities(
    analysis: FileAnalysis,
    content: str,
    options: CleanupOptions,
) -> list[CleanupOpportunity]:
    """All enabled opportunities, safest first, then by line."""
    found: list[CleanupOpportunity] = []
    if options.remove_unused_usings:
        found += detect_unused_usings(analysis, content)
    if options.convert_public_fields_to_properties:
        found += detect_public_fields(analysis)
    if options.reorder_private_fields:
        found += detect_private_field_ordering(analysis)
    found.sort(key=lambda o: (o.type.priority, o.line))
    return found


def next_opportunity(
    analysis: FileAnalysis,
    content: str,
    options: CleanupOptions,
    attempted: Iterable[str],
) -> CleanupOpportunity | None:
    seen = set(attempted)
    for opportunity in detect_opportunities(analysis, content, options):
        if opportunity.key not in seen:
            return opportunity
    return None
