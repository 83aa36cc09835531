# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""Work-unit extraction for the documentation workload.

Turns a fresh FileAnalysis into the ordered list of members that still
need a ``///`` block, and picks the first one not attempted in this run.

Priority order (each in source order across the file):
    methods -> const/readonly fields -> properties -> events -> types
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from moonlight.analysis.types import ClassInfo, FileAnalysis, MemberInfo, MethodInfo
from moonlight.core.models import MemberVisibility, UnitKind, WorkUnit

logger = logging.getLogger("moonlight.workloads.extractor")


def _unit(kind: UnitKind, owner: ClassInfo, member: MemberInfo) -> WorkUnit:
    unit = WorkUnit(
        kind=kind,
        owner=owner.name,
        name=member.name,
        accessibility=member.accessibility,
        first_line=member.first_line,
        last_line=member.last_line,
        doc_present=member.doc_present,
    )
    if isinstance(member, MethodInfo):
        unit.return_type = member.return_type
        unit.parameters = list(member.parameters)
    return unit


def documentable_units(analysis: FileAnalysis, visibility: MemberVisibility) -> list[WorkUnit]:
    """Every member the mask lets us document, documented or not, in priority order."""
    classes = [c for c in analysis.classes if visibility.allows(c.accessibility)]

    def _members(kind: UnitKind, pick) -> list[WorkUnit]:
        units = [
            _unit(kind, cls, member)
            for cls in classes
            for member in pick(cls)
            if visibility.allows(member.accessibility)
        ]
        return sorted(units, key=lambda u: u.first_line)

    ordered: list[WorkUnit] = []
    ordered += _members(UnitKind.METHOD, lambda c: c.methods)
    ordered += _members(
        UnitKind.FIELD, lambda c: [f for f in c.fields if f.is_const or f.is_readonly]
    )
    ordered += _members(UnitKind.PROPERTY, lambda c: c.properties)
    ordered += _members(UnitKind.EVENT, lambda c: c.events)
    ordered += sorted(
        (_unit(UnitKind.CLASS, cls, cls) for cls in classes), key=lambda u: u.first_line
    )
    return ordered


def pending_units(analysis: FileAnalysis, visibility: MemberVisibility) -> list[WorkUnit]:
    return [u for u in documentable_units(analysis, visibility) if not u.doc_present]


def next_unit(
    analysis: FileAnalysis,
    visibility: MemberVisibility,
    attempted: Iterable[str],
) -> WorkUnit | None:
    """First undocumented unit whose key is not in ``attempted``."""
    seen = set(attempted)
    for unit in pending_units(analysis, visibility):
        if unit.key not in seen:
            return unit
    return None


def undocumented_ratio(analysis: FileAnalysis, visibility: MemberVisibility) -> float:
    """Share of qualifying units without documentation (0.0 when there are none)."""
    units = documentable_units(analysis, visibility)
    if not units:
        return 0.0
    missing = sum(1 for u in units if not u.doc_present)
    return missing / len(units)
