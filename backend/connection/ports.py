"""
Ephemeral port leasing.

Two adb forwards for one device are requested within the same tick, and the
OS may hand out the same wildcard port twice before the first probe socket
is gone.  The cache remembers every port it gave out for one to two lease
intervals so a number is never issued twice in quick succession.
"""

import asyncio
import errno
import logging
import time
from typing import Callable, Iterable

from config import PORT_LEASE_INTERVAL, PORT_PROBE_ATTEMPTS
from connection.errors import NoAvailablePorts, PortLocked

logger = logging.getLogger(__name__)

_SKIPPABLE_ERRNOS = (errno.EADDRINUSE, errno.EACCES)


class PortLeaseCache:
    """Issues port numbers that are free at the OS level and not recently leased."""

    def __init__(
        self,
        interval: float = PORT_LEASE_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        probe_attempts: int = PORT_PROBE_ATTEMPTS,
    ) -> None:
        self._interval = interval
        self._clock = clock
        self._probe_attempts = probe_attempts
        self._current: set[int] = set()
        self._previous: set[int] = set()
        self._window_start = clock()
        self._lock = asyncio.Lock()

    def _rotate(self) -> None:
        """Advance the lease windows to the current time."""
        elapsed = self._clock() - self._window_start
        if elapsed < self._interval:
            return
        windows = int(elapsed // self._interval)
        self._previous = self._current if windows == 1 else set()
        self._current = set()
        self._window_start += windows * self._interval

    def is_leased(self, port: int) -> bool:
        self._rotate()
        return port in self._current or port in self._previous

    def reset(self) -> None:
        self._current.clear()
        self._previous.clear()
        self._window_start = self._clock()

    async def _probe(self, port: int) -> int:
        """Bind a listening socket on ``port`` (0 = any), release it, return the bound port."""
        loop = asyncio.get_running_loop()
        server = await loop.create_server(asyncio.Protocol, host="0.0.0.0", port=port)
        try:
            return server.sockets[0].getsockname()[1]
        finally:
            server.close()
            await server.wait_closed()

    async def _lease_one(self, port: int) -> int:
        probed = await self._probe(port)
        attempts = 1
        while self.is_leased(probed):
            if port != 0:
                raise PortLocked(port)
            if attempts >= self._probe_attempts:
                raise NoAvailablePorts()
            probed = await self._probe(port)
            attempts += 1
        self._current.add(probed)
        return probed

    async def lease(self, candidates: Iterable[int] | None = None, fallback: bool = True) -> int:
        """
        Lease a port number.

        Explicit candidates are tried in order; afterwards (or when none are
        given) the OS picks one.  With ``fallback=False`` the OS pick is
        skipped and exhausting the candidates raises NoAvailablePorts.
        """
        ports = list(candidates or [])
        if fallback or not ports:
            ports.append(0)

        async with self._lock:
            for port in ports:
                try:
                    leased = await self._lease_one(port)
                except PortLocked as e:
                    logger.debug(f"Port candidate skipped: {e}")
                    continue
                except OSError as e:
                    if e.errno not in _SKIPPABLE_ERRNOS:
                        raise
                    logger.debug(f"Port {port} refused by the OS: {e}")
                    continue
                logger.debug(f"Leased port {leased}")
                return leased

        raise NoAvailablePorts()
