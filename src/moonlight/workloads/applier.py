# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- Edit Applier (v0.4.0)

Crash-safe writes of AI edits into source files.

Every write goes to a temp file in the same directory, is flushed and
fsynced, then renamed over the original. At any moment the file on disk
is either the untouched original or the complete new content; a crash
mid-write leaves at most a stray ``.<name>.*.tmp`` next to it.

Bytes outside the splice are preserved exactly: encoding BOM, line ending
style and a missing final newline all survive.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger("moonlight.workloads.applier")


# =============================================================================
# HELPERS
# =============================================================================


def read_text(path: str | Path) -> str:
    """Read a file without newline translation (BOM kept as ``\\ufeff``)."""
    return Path(path).read_bytes().decode("utf-8")


def split_lines(text: str) -> list[str]:
    """Split on ``\\n`` only, keeping line endings (matches parser line numbering)."""
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def detect_newline(text: str) -> str:
    return "\r\n" if "\r\n" in text else "\n"


def leading_indentation(line: str) -> str:
    return line[: len(line) - len(line.lstrip(" \t"))]


def line_indentation(path: str | Path, line_number: int) -> str:
    """Indentation of a 1-based line in a file ('' when out of range)."""
    lines = split_lines(read_text(path))
    if 1 <= line_number <= len(lines):
        return leading_indentation(lines[line_number - 1].lstrip("\ufeff"))
    return ""


@contextmanager
def atomic_write(path: str | Path) -> Iterator:
    """Open a temp file beside ``path``; rename it over ``path`` on clean exit.

    Any exception inside the block removes the temp file and leaves the
    original untouched.
    """
    target = Path(path)
    fd, temp_path = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            yield handle
            handle.flush()
            os.fsync(handle.fileno())
        if target.exists():
            os.chmod(temp_path, target.stat().st_mode & 0o7777)
        os.replace(temp_path, str(target))
    except BaseException:
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass
        raise


# =============================================================================
# PUBLIC API
# =============================================================================


def splice_lines(text: str, line_number: int, new_lines: list[str]) -> str:
    """Insert ``new_lines`` immediately above 1-based ``line_number``."""
    existing = split_lines(text)
    if not 1 <= line_number <= len(existing):
        raise ValueError(f"Line {line_number} is outside the file (1..{len(existing)})")
    newline = detect_newline(text)
    block = "".join(line + newline for line in new_lines)
    index = line_number - 1
    if index == 0 and text.startswith("\ufeff"):
        # BOM stays the first character of the file
        return "\ufeff" + block + text[1:]
    return "".join(existing[:index]) + block + "".join(existing[index:])


def insert_above(path: str | Path, line_number: int, new_lines: list[str]) -> bool:
    """Splice a comment block above a unit. Returns False (logged) on failure."""
    try:
        original = read_text(path)
        updated = splice_lines(original, line_number, new_lines)
        with atomic_write(path) as handle:
            handle.write(updated.encode("utf-8"))
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        logger.error("Failed to insert %d line(s) into %s at line %d: %s", len(new_lines), path, line_number, exc)
        return False
    logger.debug("Inserted %d line(s) into %s above line %d", len(new_lines), path, line_number)
    return True


def replace_content(path: str | Path, content: str) -> bool:
    """Replace a whole file, keeping its line ending style and BOM."""
    try:
        original = read_text(path)
        newline = detect_newline(original)
        body = content.replace("\r\n", "\n")
        if newline != "\n":
            body = body.replace("\n", newline)
        if original.startswith("\ufeff") and not body.startswith("\ufeff"):
            body = "\ufeff" + body
        with atomic_write(path) as handle:
            handle.write(body.encode("utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Failed to rewrite %s: %s", path, exc)
        return False
    logger.debug("Rewrote %s (%d chars)", path, len(content))
    return True
