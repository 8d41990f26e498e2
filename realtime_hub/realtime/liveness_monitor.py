"""
Liveness monitoring for realtime connections.

Connections prove they are alive by heartbeating (or by receiving a send).
The monitor periodically evicts every connection whose last activity is older
than the connection timeout. It is the only component that removes a
connection without a transport disconnect.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING

from ..structured_logging.enhanced_logging_config import get_logger
from .connection_models import Connection, ConnectionState

if TYPE_CHECKING:
    from .connection_registry import ConnectionRegistry

logger = get_logger(__name__)


class LivenessMonitor:
    """Evicts idle connections from the registry on a fixed interval."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        connection_timeout: float = 60.0,
        sweep_interval: float = 30.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """
        Initialize the liveness monitor.

        Args:
            registry: Registry to sweep
            connection_timeout: Idle seconds after which a connection is stale
            sweep_interval: Seconds between periodic sweeps
            clock: Time source; defaults to the registry's clock
        """
        self.registry = registry
        self.connection_timeout = connection_timeout
        self.sweep_interval = sweep_interval
        self._clock = clock or registry.now
        self._sweep_task: asyncio.Task[None] | None = None
        self._stats = {"sweeps": 0, "evicted": 0, "errors": 0}

    def connection_state(self, connection: Connection, now: float | None = None) -> ConnectionState:
        """ACTIVE or STALE, computed from last_activity."""
        now = self._clock() if now is None else now
        if connection.idle_seconds(now) > self.connection_timeout:
            return ConnectionState.STALE
        return ConnectionState.ACTIVE

    def _identify_stale_connections(self, now: float) -> list[Connection]:
        return [
            connection
            for connection in self.registry.list_active()
            if self.connection_state(connection, now) is ConnectionState.STALE
        ]

    def sweep(self) -> int:
        """
        Evict every stale connection.

        Idempotent: a connection disconnected concurrently is simply skipped,
        and one touched after the stale list was taken is kept.

        Returns:
            Number of connections removed by this sweep
        """
        now = self._clock()
        removed = 0
        for connection in self._identify_stale_connections(now):
            if self.registry.unregister_if_idle(connection.connection_id, self.connection_timeout, now=now):
                removed += 1
                logger.info(
                    "Evicted stale connection",
                    connection_id=connection.connection_id,
                    user_id=connection.user_id,
                    idle_seconds=round(connection.idle_seconds(now), 3),
                )
        self._stats["sweeps"] += 1
        self._stats["evicted"] += removed
        if removed:
            logger.info("Liveness sweep completed", removed=removed, remaining=len(self.registry))
        return removed

    async def _periodic_sweep(self) -> None:
        logger.info("Liveness sweep task started", interval=self.sweep_interval, timeout=self.connection_timeout)
        try:
            while True:
                await asyncio.sleep(self.sweep_interval)
                try:
                    self.sweep()
                except Exception as e:  # pylint: disable=broad-except  # A failed sweep must not stop future sweeps
                    self._stats["errors"] += 1
                    logger.error("Error during liveness sweep", error=str(e), exc_info=True)
        except asyncio.CancelledError:
            logger.info("Liveness sweep task cancelled")
            raise

    @property
    def is_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> None:
        """Start periodic sweeping on the running event loop."""
        if self.is_running:
            logger.warning("Liveness sweep task already running")
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._periodic_sweep())

    async def stop(self) -> None:
        """Cancel periodic sweeping and wait for the task to finish."""
        task = self._sweep_task
        self._sweep_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await asyncio.wait_for(task, timeout=5.0)
        except (TimeoutError, asyncio.CancelledError):
            pass
        logger.info("Liveness sweep task stopped")

    def get_stats(self) -> dict[str, int | float | bool]:
        return {
            **self._stats,
            "running": self.is_running,
            "connection_timeout": self.connection_timeout,
            "sweep_interval": self.sweep_interval,
        }
