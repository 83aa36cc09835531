# MoonlightAI
# Copyright (C) 2025 The Moonlight Team. All Rights Reserved.
#
# This file is part of MoonlightAI.
#
# MoonlightAI is licensed under the GNU Affero General Public License
# v3.0 (AGPL-3.0). You may use, modify, and distribute this file under
# AGPL-3.0. See LICENSE for the full text.
"""MoonlightAI command line interface."""
