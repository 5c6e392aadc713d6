"""
Ingress change watching.

The watcher runs a list-then-watch loop against the Kubernetes API in a
background thread. It does not pass objects on; every add, update or
delete only raises the ChangeSignal, and the reconciler re-lists.
"""

import asyncio
import random
import threading
from typing import Optional

from kubernetes import watch
from kubernetes.client.rest import ApiException

from panacea.config import get_logger
from panacea.exceptions import ClusterQueryError
from panacea.services.cluster import ClusterClient

logger = get_logger(__name__)

ACCESS_DENIED = (401, 403)


class ChangeSignal:
    """
    Coalescing change notification.

    Any number of publishes before the consumer waits collapse into one
    wake-up. Safe to publish from any thread once attached to a loop.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def attach(self, loop: asyncio.AbstractEventLoop):
        """Bind the signal to the event loop of its consumer."""
        self._loop = loop

    def publish(self):
        """Record that something changed."""
        loop = self._loop
        if loop is None:
            self._event.set()
            return
        if loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._event.set()
        else:
            loop.call_soon_threadsafe(self._event.set)

    def is_set(self) -> bool:
        return self._event.is_set()

    def clear(self):
        self._event.clear()

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for a change.

        Args:
            timeout: Seconds to wait; None waits forever

        Returns:
            True if a change was published, False on timeout
        """
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True


class IngressWatcher:
    """List-then-watch loop that raises a ChangeSignal on ingress events."""

    def __init__(
        self,
        cluster: ClusterClient,
        signal: ChangeSignal,
        watch_timeout: int = 300,
        max_backoff: float = 30.0
    ):
        """
        Initialize the watcher.

        Args:
            cluster: Cluster client providing the ingress list call
            signal: Signal raised on every change
            watch_timeout: Server-side timeout of one watch stream in seconds
            max_backoff: Upper bound of the retry delay after errors
        """
        self.cluster = cluster
        self.signal = signal
        self.watch_timeout = watch_timeout
        self.max_backoff = max_backoff

        self._stop = threading.Event()
        self._synced = threading.Event()
        self._failed = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._active_watch: Optional[watch.Watch] = None
        self._watch_lock = threading.Lock()

    @property
    def synced(self) -> bool:
        return self._synced.is_set()

    def start(self):
        """Start the watch thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="ingress-watcher", daemon=True)
        self._thread.start()
        logger.info("Ingress watcher started", extra={"namespace": self.cluster.namespace or "*"})

    def stop(self, timeout: Optional[float] = 5.0):
        """Stop the watch thread and interrupt any open stream."""
        self._stop.set()
        with self._watch_lock:
            active = self._active_watch
        if active is not None:
            active.stop()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Ingress watcher stopped")

    def wait_for_cache_sync(self, timeout: float) -> bool:
        """
        Block until the initial list succeeded.

        Returns:
            True once synced; False on timeout or a permanent failure
        """
        waited = 0.0
        step = 0.1
        while waited < timeout:
            if self._synced.wait(step):
                return True
            if self._failed.is_set() or self._stop.is_set():
                return False
            waited += step
        return self._synced.is_set()

    def _run(self):
        resource_version: Optional[str] = None
        backoff = min(1.0, self.max_backoff)

        while not self._stop.is_set():
            try:
                if resource_version is None:
                    resource_version = self.cluster.ingress_resource_version()
                    if self._synced.is_set():
                        # Events may have been missed while re-listing
                        self.signal.publish()
                    self._synced.set()
                    logger.debug("Listed ingresses", extra={"resource_version": resource_version})

                resource_version = self._stream(resource_version)
                backoff = min(1.0, self.max_backoff)
            except ApiException as e:
                if e.status == 410:
                    logger.warning("Watch resource version expired, re-listing")
                    resource_version = None
                    continue
                if e.status in ACCESS_DENIED:
                    self._deny(e.status)
                    return
                logger.error(
                    f"Ingress watch failed: {e.status} {e.reason}",
                    extra={"status": e.status, "reason": e.reason}
                )
                resource_version = None
            except ClusterQueryError as e:
                if e.status in ACCESS_DENIED:
                    self._deny(e.status)
                    return
                logger.error(f"Ingress list failed: {e}", extra={"error": str(e)})
                resource_version = None
            except Exception as e:
                logger.exception(f"Unexpected error in ingress watch: {e}", extra={"error": str(e)})
                resource_version = None

            if resource_version is None and not self._stop.is_set():
                self._stop.wait(backoff * (0.5 + random.random()))
                backoff = min(backoff * 2, self.max_backoff)

    def _deny(self, status: int):
        logger.error(
            f"Kubernetes API access denied ({status}) while watching ingresses; check RBAC",
            extra={"status": status}
        )
        self._failed.set()

    def _stream(self, resource_version: str) -> Optional[str]:
        """Consume one watch stream; returns the last seen resource version."""
        watcher = watch.Watch()
        with self._watch_lock:
            self._active_watch = watcher
        list_call, args = self.cluster.ingress_list_call()
        try:
            for event in watcher.stream(
                list_call,
                *args,
                resource_version=resource_version,
                timeout_seconds=self.watch_timeout,
            ):
                if self._stop.is_set():
                    break

                event_type = event.get("type")
                if event_type == "ERROR":
                    logger.warning("Watch error event", extra={"raw": str(event.get("raw_object"))})
                    return None

                obj = event.get("object")
                metadata = getattr(obj, "metadata", None)
                if metadata is not None and metadata.resource_version:
                    resource_version = metadata.resource_version

                logger.debug(
                    "Ingress event",
                    extra={
                        "event_type": event_type,
                        "ingress": f"{getattr(metadata, 'namespace', '')}/{getattr(metadata, 'name', '')}",
                    }
                )
                self.signal.publish()
        finally:
            with self._watch_lock:
                self._active_watch = None

        return resource_version
