"""Every MoonlightAI source file carries the project license header."""

from pathlib import Path

import pytest

SRC = Path(__file__).resolve().parents[2] / "src" / "moonlight"


@pytest.mark.parametrize("path", sorted(SRC.rglob("*.py")), ids=lambda p: p.relative_to(SRC).as_posix())
def test_header_names_project(path):
    head = path.read_text(encoding="utf-8").splitlines()[:4]
    assert head[0] == "# MoonlightAI"
    assert head[3] == "# This file is part of MoonlightAI."
