"""
Port resolution for the worker's control endpoint.
"""

# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import asyncio
import logging

from lantern.config.models import RunConfiguration

logger = logging.getLogger(__name__)


async def _noop_connection(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    writer.close()


async def allocate_ephemeral_port(host: str = "127.0.0.1") -> int:
    """Bind port 0, read back the assigned port and release it again.

    Raises:
        OSError: The operating system refused to allocate a port.
    """
    server = await asyncio.start_server(_noop_connection, host=host, port=0)
    try:
        port = server.sockets[0].getsockname()[1]
    finally:
        server.close()
        await server.wait_closed()
    return port


async def resolve_port(config: RunConfiguration, host: str = "127.0.0.1") -> RunConfiguration:
    """Return *config* bound to a concrete port.

    A positive requested port is used unchanged with no I/O; port 0 is
    replaced by a freshly allocated ephemeral port.
    """
    if config.port != 0:
        logger.debug("Using supplied port %d", config.port)
        return config if config.port_resolved else config.with_port(config.port)

    logger.debug("Generating random port")
    port = await allocate_ephemeral_port(host)
    logger.debug("Using generated port %d", port)
    return config.with_port(port)
