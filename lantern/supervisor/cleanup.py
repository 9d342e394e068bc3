"""
Cleanup registry: ordered release actions drained once at run end.
"""

# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CleanupAction = Callable[[], Awaitable[object]]


@dataclass(frozen=True)
class CleanupFailure:
    """A release action that raised during :meth:`CleanupRegistry.run_all`."""
    name: str
    error: BaseException


class CleanupRegistry:
    """
    Ordered collection of zero-argument async release actions.

    Created at run start and passed by reference to whoever acquires a
    resource. ``run_all()`` is the only place those resources are
    released; it runs every action once, in registration order, and a
    second call is a no-op.
    """

    def __init__(self) -> None:
        self._actions: list[tuple[str, CleanupAction]] = []
        self._drained = False

    def __len__(self) -> int:
        return len(self._actions)

    @property
    def drained(self) -> bool:
        return self._drained

    def register(self, action: CleanupAction, name: str | None = None) -> None:
        """Append *action*; it runs after every action registered before it."""
        label = name or getattr(action, "__qualname__", repr(action))
        if self._drained:
            logger.warning("Cleanup action registered after drain: %s", label)
        self._actions.append((label, action))
        logger.debug("Cleanup action registered: %s", label)

    async def run_all(self) -> list[CleanupFailure]:
        """Invoke every registered action and collect failures.

        Never raises for an action's failure. Returns the failures for
        logging; an empty list means everything was released.
        """
        if self._drained:
            logger.debug("Cleanup already ran; skipping")
            return []
        self._drained = True

        failures: list[CleanupFailure] = []
        for name, action in self._actions:
            try:
                await action()
                logger.debug("Cleanup action done: %s", name)
            except Exception as e:
                logger.warning("Cleanup action failed: %s: %s", name, e, exc_info=e)
                failures.append(CleanupFailure(name=name, error=e))

        if failures:
            logger.warning("Cleanup finished with %d failure(s)", len(failures))
        return failures
