# Lantern - Headless Audit Runner
# Copyright (C) 2026 Lantern Authors
# SPDX-License-Identifier: Apache-2.0

"""Process-wide interrupt signal source.

Wraps SIGINT in an :class:`asyncio.Event` so any number of waiters can
observe it. Repeated signals only re-set the event.
"""

from __future__ import annotations

import asyncio
import logging
import signal

logger = logging.getLogger(__name__)


class InterruptSignal:
    """Observable interrupt backed by an :class:`asyncio.Event`.

    Use as an async context manager to install the SIGINT handler on the
    running loop for the duration of a run::

        async with InterruptSignal() as interrupt:
            await interrupt.wait()
    """

    def __init__(self, signals: tuple[signal.Signals, ...] = (signal.SIGINT,)):
        self.signals = signals
        self._event = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._installed: list[signal.Signals] = []
        self._previous: dict[signal.Signals, object] = {}

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    def fire(self, signame: str = "SIGINT") -> None:
        if not self._event.is_set():
            logger.info("Received %s", signame)
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def install(self) -> None:
        self._loop = asyncio.get_running_loop()
        for sig in self.signals:
            try:
                self._loop.add_signal_handler(sig, self.fire, sig.name)
            except NotImplementedError:
                # Windows: no loop signal handlers; hop onto the loop thread.
                loop = self._loop
                self._previous[sig] = signal.signal(
                    sig,
                    lambda signum, frame: loop.call_soon_threadsafe(
                        self.fire, signal.Signals(signum).name,
                    ),
                )
            self._installed.append(sig)
            logger.debug("Interrupt handler installed for %s", sig.name)

    def uninstall(self) -> None:
        for sig in self._installed:
            if sig in self._previous:
                signal.signal(sig, self._previous.pop(sig))
            elif self._loop is not None:
                self._loop.remove_signal_handler(sig)
        self._installed.clear()

    async def __aenter__(self) -> InterruptSignal:
        self.install()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.uninstall()
