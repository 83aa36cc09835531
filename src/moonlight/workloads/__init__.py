# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""
MoonlightAI -- Workloads (v0.4.0)

The guarded mutation path for a single file:

    scheduler   which files are worth touching
    extractor   next undocumented unit (codedoc)
    cleanup     next cleanup opportunity (cleanup)
    prompts     prompt templates
    sanitizer   raw AI text -> validated ``///`` block
    applier     crash-safe splice / replace
    pipeline    the per-file fixpoint loop
    build_gate  build check, AI repair, revert
"""
