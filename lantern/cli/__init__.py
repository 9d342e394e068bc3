# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0
