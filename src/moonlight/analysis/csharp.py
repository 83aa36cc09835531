# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- C# Structural Analyzer (v0.4.0)

Parses C# with tree-sitter and reports types, members, accessibility and
whether each member already carries a ``///`` documentation comment.

The analyzer never raises for bad input: a file that does not parse
cleanly comes back with ``parsed_ok=False`` and the offending lines in
``parse_errors``.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from tree_sitter_language_pack import get_parser

from moonlight.analysis.types import (
    ClassInfo,
    EventInfo,
    FieldInfo,
    FileAnalysis,
    MethodInfo,
    PropertyInfo,
    UsingInfo,
)
from moonlight.core.models import Parameter

logger = logging.getLogger("moonlight.analysis.csharp")

# =============================================================================
# NODE TYPES
# =============================================================================

TYPE_NODE_TYPES = {
    "class_declaration": "class",
    "struct_declaration": "struct",
    "record_declaration": "record",
    "record_struct_declaration": "record",
    "interface_declaration": "interface",
}

ACCESS_MODIFIERS = ("public", "private", "protected", "internal")

_USING_RE = re.compile(r"^\s*(?:global\s+)?using\s+(?:static\s+)?([\w.]+)\s*;")

_parser = None


def _get_parser():
    global _parser
    if _parser is None:
        _parser = get_parser("csharp")
    return _parser


# =============================================================================
# PUBLIC API
# =============================================================================


def analyze_file(path: str | Path) -> FileAnalysis:
    """Analyze a C# file on disk."""
    file_path = Path(path)
    try:
        source = file_path.read_text(encoding="utf-8-sig")
    except OSError as exc:
        logger.warning("Cannot read %s: %s", file_path, exc)
        return FileAnalysis(file_path=str(file_path), parsed_ok=False, parse_errors=[str(exc)])
    return analyze_source(source, str(file_path))


def analyze_source(source: str, file_path: str = "") -> FileAnalysis:
    """Analyze C# source text."""
    content = source.encode("utf-8")
    tree = _get_parser().parse(content)
    root = tree.root_node

    analysis = FileAnalysis(file_path=file_path)
    if root.has_error:
        analysis.parsed_ok = False
        analysis.parse_errors = _collect_errors(root)
        logger.debug("Parse errors in %s: %s", file_path or "<source>", analysis.parse_errors)
        return analysis

    walker = _Walker(content)
    walker.walk(root, owner_is_type=False, in_interface=False)
    analysis.classes = walker.classes
    analysis.usings = walker.usings
    return analysis


def validate_syntax(source: str) -> bool:
    """True when the text parses as C# without error or missing nodes."""
    if not source.strip():
        return False
    tree = _get_parser().parse(source.encode("utf-8"))
    return not tree.root_node.has_error


# =============================================================================
# TREE WALK
# =============================================================================


def _collect_errors(root) -> list[str]:
    errors: list[str] = []

    def _visit(node):
        if node.type == "ERROR" or node.is_missing:
            kind = "missing" if node.is_missing else "syntax error"
            errors.append(f"line {node.start_point[0] + 1}: {kind} near '{node.type}'")
            return
        for child in node.children:
            _visit(child)

    _visit(root)
    return errors or ["unknown parse error"]


class _Walker:
    """Collects types and members from a parsed compilation unit."""

    def __init__(self, content: bytes):
        self.content = content
        self.classes: list[ClassInfo] = []
        self.usings: list[UsingInfo] = []

    def text(self, node) -> str:
        if node is None:
            return ""
        return self.content[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    def walk(self, node, owner_is_type: bool, in_interface: bool) -> None:
        for child in node.children:
            if child.type == "using_directive":
                self._add_using(child)
            elif child.type in TYPE_NODE_TYPES:
                self._add_type(child, nested=owner_is_type)
            elif child.type in (
                "namespace_declaration",
                "file_scoped_namespace_declaration",
                "declaration_list",
            ):
                self.walk(child, owner_is_type=owner_is_type, in_interface=in_interface)

    # -------------------------------------------------------------------------
    # Usings
    # -------------------------------------------------------------------------

    def _add_using(self, node) -> None:
        text = self.text(node)
        match = _USING_RE.match(text)
        if match:
            self.usings.append(
                UsingInfo(namespace=match.group(1), line=node.start_point[0] + 1, text=text.strip())
            )

    # -------------------------------------------------------------------------
    # Types
    # -------------------------------------------------------------------------

    def _add_type(self, node, nested: bool) -> None:
        kind = TYPE_NODE_TYPES[node.type]
        modifiers = self._modifiers(node)
        info = ClassInfo(
            name=self.text(node.child_by_field_name("name")),
            kind=kind,
            accessibility=_accessibility(modifiers, "private" if nested else "internal"),
            doc_present=_has_doc_comment(node, self),
            first_line=node.start_point[0] + 1,
            last_line=node.end_point[0] + 1,
            is_static="static" in modifiers,
        )
        self.classes.append(info)

        body = node.child_by_field_name("body")
        if body is None:
            body = next((c for c in node.children if c.type == "declaration_list"), None)
        if body is None:
            return

        is_interface = kind == "interface"
        member_default = "public" if is_interface else "private"
        for member in body.children:
            if member.type in TYPE_NODE_TYPES:
                self._add_type(member, nested=True)
            elif member.type == "method_declaration":
                info.methods.append(self._method(member, member_default))
            elif member.type == "property_declaration":
                info.properties.append(self._property(member, member_default))
            elif member.type == "field_declaration":
                info.fields.extend(self._fields(member, member_default))
            elif member.type in ("event_field_declaration", "event_declaration"):
                info.events.extend(self._events(member, member_default))

    # -------------------------------------------------------------------------
    # Members
    # -------------------------------------------------------------------------

    def _base(self, node, default_access: str) -> dict:
        modifiers = self._modifiers(node)
        return {
            "accessibility": _accessibility(modifiers, default_access),
            "doc_present": _has_doc_comment(node, self),
            "first_line": node.start_point[0] + 1,
            "last_line": node.end_point[0] + 1,
            "is_static": "static" in modifiers,
        }

    def _method(self, node, default_access: str) -> MethodInfo:
        base = self._base(node, default_access)
        return_node = node.child_by_field_name("returns") or node.child_by_field_name("type")
        parameters = []
        param_list = node.child_by_field_name("parameters")
        if param_list is not None:
            for param in param_list.children:
                if param.type != "parameter":
                    continue
                parameters.append(
                    Parameter(
                        name=self.text(param.child_by_field_name("name")),
                        type=self.text(param.child_by_field_name("type")),
                    )
                )
        return MethodInfo(
            name=self.text(node.child_by_field_name("name")),
            return_type=self.text(return_node),
            parameters=parameters,
            is_async="async" in self._modifiers(node),
            **base,
        )

    def _property(self, node, default_access: str) -> PropertyInfo:
        accessors = node.child_by_field_name("accessors")
        accessor_text = self.text(accessors)
        expression_bodied = accessors is None and node.child_by_field_name("value") is not None
        return PropertyInfo(
            name=self.text(node.child_by_field_name("name")),
            type=self.text(node.child_by_field_name("type")),
            has_getter=expression_bodied or bool(re.search(r"\bget\b", accessor_text)),
            has_setter=bool(re.search(r"\b(set|init)\b", accessor_text)),
            **self._base(node, default_access),
        )

    def _fields(self, node, default_access: str) -> list[FieldInfo]:
        modifiers = self._modifiers(node)
        base = self._base(node, default_access)
        declaration = next((c for c in node.children if c.type == "variable_declaration"), None)
        if declaration is None:
            return []
        field_type = self.text(declaration.child_by_field_name("type"))
        return [
            FieldInfo(
                name=name,
                type=field_type,
                is_const="const" in modifiers,
                is_readonly="readonly" in modifiers,
                **base,
            )
            for name in self._declarator_names(declaration)
        ]

    def _events(self, node, default_access: str) -> list[EventInfo]:
        base = self._base(node, default_access)
        if node.type == "event_declaration":
            return [
                EventInfo(
                    name=self.text(node.child_by_field_name("name")),
                    type=self.text(node.child_by_field_name("type")),
                    **base,
                )
            ]
        declaration = next((c for c in node.children if c.type == "variable_declaration"), None)
        if declaration is None:
            return []
        event_type = self.text(declaration.child_by_field_name("type"))
        return [
            EventInfo(name=name, type=event_type, **base)
            for name in self._declarator_names(declaration)
        ]

    def _declarator_names(self, declaration) -> list[str]:
        names = []
        for declarator in declaration.children:
            if declarator.type != "variable_declarator":
                continue
            name_node = declarator.child_by_field_name("name")
            if name_node is None:
                name_node = next((c for c in declarator.children if c.type == "identifier"), None)
            if name_node is not None:
                names.append(self.text(name_node))
        return names

    def _modifiers(self, node) -> list[str]:
        return [self.text(c).strip() for c in node.children if c.type == "modifier"]


# =============================================================================
# HELPERS
# =============================================================================


def _accessibility(modifiers: list[str], default: str) -> str:
    present = [m for m in ACCESS_MODIFIERS if m in modifiers]
    if "protected" in present and "internal" in present:
        return "protected internal"
    if "private" in present and "protected" in present:
        return "private protected"
    return present[0] if present else default


def _has_doc_comment(node, walker: _Walker) -> bool:
    """True when a ``///`` comment sits directly above the declaration."""
    sibling = node.prev_sibling
    while sibling is not None and sibling.type == "comment":
        if walker.text(sibling).lstrip().startswith("///"):
            return True
        sibling = sibling.prev_sibling
    # Leading comments can also be attached inside the node ahead of attributes
    for child in node.children:
        if child.type != "comment":
            break
        if walker.text(child).lstrip().startswith("///"):
            return True
    return False

