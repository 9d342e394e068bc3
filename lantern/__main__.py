# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0

from lantern.cli.parser import cli_main

if __name__ == "__main__":
    cli_main()
