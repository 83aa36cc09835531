# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- AI-assisted C# documentation and cleanup.

Repeatedly asks a local model for small, targeted edits to a source file,
validates and applies each edit safely, and verifies the result still
builds before anything is committed.
"""

__version__ = "0.4.0"
__author__ = "Moonlight Team"
