# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- Prompt Service (v0.4.0)

Resolves prompt templates for each workload operation.

Lookup order:
    1. <prompts_dir>/<workload>/<model_family>/<operation>.txt
    2. <prompts_dir>/<workload>/default/<operation>.txt
    3. Built-in default below

Templates use ``{name}`` placeholders replaced literally, so C# braces in a
template need no escaping.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger("moonlight.workloads.prompts")


def normalize_model_name(model_name: str) -> str:
    """``codellama:13b-instruct`` -> ``codellama``; ``gpt-4`` -> ``gpt``."""
    if not model_name or not model_name.strip():
        return "default"
    family = re.split(r"[:\-]", model_name.strip(), maxsplit=1)[0]
    return family.lower().replace("_", "") or "default"


def render(template: str, variables: dict[str, str] | None) -> str:
    result = template
    for key, value in (variables or {}).items():
        result = result.replace("{" + key + "}", value)
    return result


class PromptService:
    """Loads prompt templates from disk with built-in fallbacks."""

    def __init__(self, directory: str | Path = "./prompts", enable_custom: bool = True, model_name: str = ""):
        self.directory = Path(directory)
        self.enable_custom = enable_custom
        self.model_name = model_name
        logger.debug("PromptService initialized with directory: %s", self.directory)

    def get_prompt(self, workload: str, operation: str, variables: dict[str, str] | None = None) -> str:
        return render(self.get_template(workload, operation), variables)

    def get_template(self, workload: str, operation: str) -> str:
        if self.enable_custom:
            family = normalize_model_name(self.model_name)
            for candidate in (
                self.directory / workload / family / f"{operation}.txt",
                self.directory / workload / "default" / f"{operation}.txt",
            ):
                if not candidate.is_file():
                    continue
                try:
                    logger.debug("Loading prompt from: %s", candidate)
                    return candidate.read_text(encoding="utf-8")
                except OSError as exc:
                    logger.warning("Failed to load prompt from %s, falling back: %s", candidate, exc)

        template = BUILTIN_PROMPTS.get((workload.lower(), operation.lower()))
        if template is None:
            raise KeyError(f"No prompt available for {workload}/{operation}")
        return template


# =============================================================================
# BUILT-IN TEMPLATES
# =============================================================================

_CODEDOC_METHOD = """You are a C# XML documentation generator. Your task is to generate ONLY the XML documentation comments for the method below.

C# Method to document:
```csharp
{method}
```

CRITICAL REQUIREMENTS:
1. Output ONLY the XML documentation comment lines (starting with "///")
2. DO NOT include the method code itself
3. DO NOT add XML tags that don't match the method signature
4. Use ONLY these XML tags: <summary>, <param>, <returns>, <remarks>, <exception>
5. Do NOT use <returns> for void methods or methods returning Task
6. Include <param> tags for ALL method parameters
7. Keep descriptions concise and accurate
8. The first line MUST be: /// <summary>
9. Wrap your whole answer in <doc></doc>

Example output format:
<doc>
/// <summary>
/// Description of what the method does.
/// </summary>
/// <param name="paramName">Description of parameter.</param>
/// <returns>Description of return value.</returns>
</doc>

OUTPUT:
"""

_SIMPLE_MEMBER = """Generate XML documentation comment for the following C# {what}:

{{placeholder}}

Requirements:
- Output ONLY the XML documentation lines (starting with "///")
- Use <summary> tag only
{extra}- Keep description concise (1-2 sentences)
- The first line MUST be: /// <summary>
- Do NOT include the {what} declaration itself

Example:
/// <summary>
/// {example}
/// </summary>

OUTPUT:
"""


def _simple(what: str, placeholder: str, example: str, extra: str = "") -> str:
    return _SIMPLE_MEMBER.format(what=what, example=example, extra=extra).replace(
        "{placeholder}", "{" + placeholder + "}"
    )


_CLEANUP_GENERAL = """
CURRENT FILE CONTENT:
```csharp
{fileContent}
```

GENERAL INSTRUCTIONS:
1. Return the COMPLETE modified file
2. Do NOT add comments or explanations
3. Do NOT include markdown code block markers in your response
4. The response should be valid C# code that can be directly written to the file
5. Preserve all formatting, comments, and structure except for the specific cleanup
"""

_CLEANUP_HEADER = """You are a C# code cleanup assistant. Your task is to perform a specific refactoring operation.

CLEANUP OPERATION: {title}
LINE NUMBER: {lineNumber}
"""

_UNUSED_USING = _CLEANUP_HEADER.replace("{title}", "Remove unused using statement") + """
Remove the unused using statement: {namespace}

INSTRUCTIONS:
1. Remove only the specified using statement
2. Preserve all other using statements
3. Preserve all code
""" + _CLEANUP_GENERAL

_FIELD_TO_PROPERTY = _CLEANUP_HEADER.replace("{title}", "Convert public field to PascalCase property") + """
Convert the public field '{fieldName}' to a PascalCase property '{propertyName}'.

INSTRUCTIONS:
1. Replace the field declaration with: public {fieldType} {propertyName} { get; set; }
2. The property MUST be named '{propertyName}' (PascalCase)
3. Update all references to '{fieldName}' to use '{propertyName}'
4. Preserve all other code
""" + _CLEANUP_GENERAL

_REORDER_FIELDS = _CLEANUP_HEADER.replace("{title}", "Reorder private fields to top of class") + """
Reorder private fields in class '{className}' to the top of the class.

INSTRUCTIONS:
1. Move all private fields to the top of the class (after class declaration)
2. Keep private fields in their current order relative to each other
3. Private fields should come before properties, constructors, and methods
4. Preserve all other code and formatting
""" + _CLEANUP_GENERAL

_BUILD_FIX = """You are a C# build fixer. The file below no longer compiles after an automated edit.

FILE: {filePath}

BUILD ERRORS:
{errors}

CURRENT FILE CONTENT:
```csharp
{fileContent}
```

INSTRUCTIONS:
1. Fix ONLY what is needed to resolve the build errors
2. Do NOT remove or rewrite XML documentation unless it causes an error
3. Return the COMPLETE corrected file
4. Do NOT add explanations before or after the code
"""

BUILTIN_PROMPTS: dict[tuple[str, str], str] = {
    ("codedoc", "method"): _CODEDOC_METHOD,
    ("codedoc", "field"): _simple("constant/field", "field", "Description of the field."),
    ("codedoc", "property"): _simple("property", "property", "Description of the property."),
    ("codedoc", "event"): _simple(
        "event", "event", "Raised when something happens.", extra="- Describe when the event is raised\n"
    ),
    ("codedoc", "class"): _simple("type", "class", "Description of the type."),
    ("cleanup", "unused-using"): _UNUSED_USING,
    ("cleanup", "field-to-property"): _FIELD_TO_PROPERTY,
    ("cleanup", "reorder-fields"): _REORDER_FIELDS,
    ("repair", "build-fix"): _BUILD_FIX,
}
