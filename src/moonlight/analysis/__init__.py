# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- C# Analysis (v0.4.0)

Structural analysis of C# source files, used to find documentable members
and cleanup opportunities.

Usage:
    from moonlight.analysis import analyze_file
    analysis = analyze_file("src/Widgets/Widget.cs")
    if analysis.parsed_ok:
        for cls in analysis.classes: ...
"""

from moonlight.analysis.csharp import analyze_file, analyze_source, validate_syntax
from moonlight.analysis.types import (
    ClassInfo,
    EventInfo,
    FieldInfo,
    FileAnalysis,
    MethodInfo,
    PropertyInfo,
    UsingInfo,
)

__all__ = [
    "ClassInfo",
    "EventInfo",
    "FieldInfo",
    "FileAnalysis",
    "MethodInfo",
    "PropertyInfo",
    "UsingInfo",
    "analyze_file",
    "analyze_source",
    "validate_syntax",
]
