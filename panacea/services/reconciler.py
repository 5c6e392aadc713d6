"""
Reconciliation loop for the routing table.

Each pass lists all ingresses, builds a complete routing table off to the
side, and publishes it with a single swap. Passes never overlap, and
change signals that arrive during a pass are folded into one follow-up
pass.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol, Set

from panacea.config import get_logger
from panacea.exceptions import CacheSyncError, ClusterQueryError, ReconcileError
from panacea.gateway.proxy.http_client import RouteProxy
from panacea.gateway.routing.builder import RouteBuilder
from panacea.gateway.routing.table import RouteMap, RoutingTable
from panacea.models.ingress import IngressSpec
from panacea.services.watcher import ChangeSignal, IngressWatcher

logger = get_logger(__name__)


class ReconcileState(str, Enum):
    """Phases of a reconciliation pass."""
    IDLE = "idle"
    LISTING = "listing"
    BUILDING = "building"
    SWAPPING = "swapping"


class IngressLister(Protocol):
    """Source of the current ingress list."""

    def list_ingresses(self) -> List[IngressSpec]: ...


async def close_proxies(proxies: List[RouteProxy]):
    """Close route proxies, logging failures."""
    results = await asyncio.gather(*(proxy.aclose() for proxy in proxies), return_exceptions=True)
    for result in results:
        if isinstance(result, Exception):
            logger.warning(f"Error closing route proxy: {result}", extra={"error": str(result)})


def _consume_result(future: asyncio.Future):
    if not future.cancelled() and future.exception() is not None:
        logger.debug(f"Reconcile phase finished with error: {future.exception()}")


def table_proxies(table: RouteMap) -> List[RouteProxy]:
    return [route.proxy for routes in table.values() for route in routes if route.proxy is not None]


class Reconciler:
    """Keeps the routing table in line with the cluster's ingresses."""

    def __init__(
        self,
        lister: IngressLister,
        builder: RouteBuilder,
        table: RoutingTable,
        signal: ChangeSignal,
        ingress_class: str,
        watcher: Optional[IngressWatcher] = None,
        resync_period: float = 30.0,
        list_timeout: float = 10.0,
        build_timeout: float = 60.0,
        cache_sync_timeout: float = 60.0,
        drain_seconds: float = 30.0
    ):
        """
        Initialize the reconciler.

        Args:
            lister: Ingress list collaborator
            builder: Route builder
            table: Routing table to publish into
            signal: Change signal raised by the watcher
            ingress_class: Ingress class to serve
            watcher: Optional watcher started with the reconciler
            resync_period: Seconds between unconditional passes, 0 to disable
            list_timeout: Deadline of the list phase in seconds
            build_timeout: Deadline of the build phase in seconds
            cache_sync_timeout: Seconds to wait for the watcher's first list
            drain_seconds: Delay before closing proxies of a replaced table
        """
        self.lister = lister
        self.builder = builder
        self.table = table
        self.signal = signal
        self.ingress_class = ingress_class
        self.watcher = watcher
        self.resync_period = resync_period
        self.list_timeout = list_timeout
        self.build_timeout = build_timeout
        self.cache_sync_timeout = cache_sync_timeout
        self.drain_seconds = drain_seconds

        self.passes = 0
        self.failures = 0
        self.last_success: Optional[float] = None
        self.last_error: Optional[str] = None

        self._state = ReconcileState.IDLE
        self._task: Optional[asyncio.Task] = None
        self._retiring: Set[asyncio.Task] = set()

        # One worker, so an abandoned phase still holds it until it returns
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="reconciler")
        self._inflight: Optional[asyncio.Future] = None

    @property
    def state(self) -> ReconcileState:
        return self._state

    async def start(self):
        """
        Sync the watcher, build the first table and start the loop.

        Raises:
            CacheSyncError: If the watcher does not sync in time
            ReconcileError: If the first pass fails
        """
        self.signal.attach(asyncio.get_running_loop())

        if self.watcher is not None:
            self.watcher.start()
            synced = await asyncio.to_thread(self.watcher.wait_for_cache_sync, self.cache_sync_timeout)
            if not synced:
                await asyncio.to_thread(self.watcher.stop)
                raise CacheSyncError("failed to sync caches")
            logger.info("Caches synced")

        # The first pass lists after this point and covers earlier events
        self.signal.clear()
        try:
            await self.reconcile_once()
        except Exception:
            if self.watcher is not None:
                await asyncio.to_thread(self.watcher.stop)
            raise
        logger.info(f"Ingress class {self.ingress_class} sync complete")

        self._task = asyncio.create_task(self.run(), name="reconciler")

    async def stop(self):
        """Stop the loop and the watcher, and close all route proxies."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self.watcher is not None:
            await asyncio.to_thread(self.watcher.stop)

        for task in list(self._retiring):
            task.cancel()
        if self._retiring:
            await asyncio.gather(*self._retiring, return_exceptions=True)

        await close_proxies(table_proxies(self.table.snapshot()))
        self._executor.shutdown(wait=False)
        logger.info("Reconciler stopped")

    async def run(self):
        """Run passes on change signals and resync ticks until cancelled."""
        while True:
            changed = await self.signal.wait(self.resync_period or None)
            self.signal.clear()
            logger.debug("Reconcile triggered", extra={"trigger": "change" if changed else "resync"})
            await self.reconcile()

    async def reconcile(self) -> bool:
        """
        Run one pass, keeping the current table on failure.

        Returns:
            True if a new table was published
        """
        try:
            await self.reconcile_once()
            return True
        except ReconcileError as e:
            logger.error(f"Reconcile pass failed, keeping previous routing table: {e}", extra={"error": str(e)})
        except Exception as e:
            self.last_error = str(e)
            logger.exception(f"Unexpected error in reconcile pass, keeping previous routing table: {e}",
                             extra={"error": str(e)})
        self.failures += 1
        return False

    async def reconcile_once(self):
        """
        List, build and swap.

        Raises:
            ReconcileError: If listing or building fails or times out
        """
        if self._inflight is not None and not self._inflight.done():
            self.last_error = "previous pass still running"
            raise ReconcileError(self.last_error)

        self.passes += 1
        start_time = time.time()
        try:
            self._state = ReconcileState.LISTING
            ingresses = await self._run_phase(self.list_timeout, self.lister.list_ingresses)

            self._state = ReconcileState.BUILDING
            routes = await self._run_phase(self.build_timeout, self.builder.build, ingresses, self.ingress_class)

            self._state = ReconcileState.SWAPPING
            previous = self.table.swap(routes)
        except asyncio.TimeoutError as e:
            self.last_error = f"{self._state.value} timed out"
            raise ReconcileError(self.last_error) from e
        except ClusterQueryError as e:
            self.last_error = f"{self._state.value} failed: {e}"
            raise ReconcileError(self.last_error) from e
        finally:
            self._state = ReconcileState.IDLE

        self._retire(previous)
        self.last_success = time.time()
        self.last_error = None

        logger.info(
            f"Routing table updated to generation {self.table.generation} "
            f"with {len(ingresses)} ingresses and {len(routes)} hosts",
            extra={
                "ingresses": len(ingresses),
                "hosts": len(routes),
                "generation": self.table.generation,
                "duration_ms": (self.last_success - start_time) * 1000,
            }
        )
        logger.debug(f"Routing table:\n{self.table.describe()}")

    async def _run_phase(self, timeout: float, func: Callable[..., Any], *args) -> Any:
        """Run a blocking phase on the worker, giving up on it after timeout."""
        future = asyncio.get_running_loop().run_in_executor(self._executor, func, *args)
        future.add_done_callback(_consume_result)
        self._inflight = future
        # A timed out phase keeps running and keeps the pass in flight
        return await asyncio.wait_for(asyncio.shield(future), timeout)

    def _retire(self, previous: RouteMap):
        proxies = table_proxies(previous)
        if not proxies:
            return
        task = asyncio.create_task(self._close_later(proxies))
        self._retiring.add(task)
        task.add_done_callback(self._retiring.discard)

    async def _close_later(self, proxies: List[RouteProxy]):
        try:
            await asyncio.sleep(self.drain_seconds)
        finally:
            await close_proxies(proxies)
