# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""Data types produced by the C# analyzer.

Line numbers are 1-based and come from the declaration span, so attributes
are included and leading comments are not.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from moonlight.core.models import Parameter


@dataclass
class MemberInfo:
    name: str
    accessibility: str = "private"
    doc_present: bool = False
    first_line: int = 0
    last_line: int = 0
    is_static: bool = False


@dataclass
class MethodInfo(MemberInfo):
    return_type: str = ""
    parameters: list[Parameter] = field(default_factory=list)
    is_async: bool = False


@dataclass
class PropertyInfo(MemberInfo):
    type: str = ""
    has_getter: bool = False
    has_setter: bool = False


@dataclass
class FieldInfo(MemberInfo):
    type: str = ""
    is_const: bool = False
    is_readonly: bool = False


@dataclass
class EventInfo(MemberInfo):
    type: str = ""


@dataclass
class ClassInfo(MemberInfo):
    kind: str = "class"
    methods: list[MethodInfo] = field(default_factory=list)
    properties: list[PropertyInfo] = field(default_factory=list)
    fields: list[FieldInfo] = field(default_factory=list)
    events: list[EventInfo] = field(default_factory=list)


@dataclass
class UsingInfo:
    namespace: str
    line: int
    text: str = ""


@dataclass
class FileAnalysis:
    file_path: str = ""
    parsed_ok: bool = True
    parse_errors: list[str] = field(default_factory=list)
    usings: list[UsingInfo] = field(default_factory=list)
    classes: list[ClassInfo] = field(default_factory=list)
