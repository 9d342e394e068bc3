# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0
"""
Lantern: supervises a remote-debuggable browser and drives it through a
sequence of per-address audit jobs.
"""

from __future__ import annotations

__version__ = "0.1.0"
