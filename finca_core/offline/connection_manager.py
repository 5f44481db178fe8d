# =============================================================================
# finca_core/offline/connection_manager.py
# Connectivity Providers and Monitor
# =============================================================================
"""
Connectivity detection for the offline layer.

- ``ConnectivityProvider``: a boolean online signal plus transition events.
  ``ManualConnectivityProvider`` is driven by the host application (or tests);
  ``SocketConnectivityProvider`` checks TCP reachability in a background thread.
- ``ConnectivityMonitor``: triggers a sync when the provider goes online,
  keeps a short-lived ``was_offline`` flag for "connection restored" banners
  and polls the pending-operation count on a fixed interval.
"""

from __future__ import annotations
import socket
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Sequence, Tuple
from urllib.parse import urlparse
import logging

from finca_core.config import OfflineConfig
from finca_core.offline.broadcast import Broadcast

logger = logging.getLogger(__name__)


class ConnectivityProvider(Protocol):
    """Host-supplied online signal."""

    def is_online(self) -> bool: ...

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]: ...


class ManualConnectivityProvider:
    """
    Provider whose state is set explicitly.

    Usage:
        provider = ManualConnectivityProvider(online=False)
        provider.set_online(True)   # subscribers receive True
    """

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners = Broadcast("connectivity")

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        """Change state; subscribers are only told about real transitions."""
        if online == self._online:
            return
        self._online = online
        self._listeners.publish(online)

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        return self._listeners.subscribe(callback)


class SocketConnectivityProvider:
    """
    Provider that opens TCP connections to well-known hosts and to the
    Supabase host on a background thread.
    """

    PUBLIC_HOSTS: Tuple[Tuple[str, int], ...] = (
        ("8.8.8.8", 53),         # Google DNS
        ("1.1.1.1", 53),         # Cloudflare DNS
        ("208.67.222.222", 53),  # OpenDNS
    )

    def __init__(self, config: OfflineConfig, hosts: Optional[Sequence[Tuple[str, int]]] = None):
        self.config = config
        self.hosts = tuple(hosts) if hosts is not None else self.PUBLIC_HOSTS
        self._online = False
        self._listeners = Broadcast("connectivity")
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()

    def is_online(self) -> bool:
        return self._online

    def subscribe(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        return self._listeners.subscribe(callback)

    def _can_connect(self, host: str, port: int) -> bool:
        try:
            with socket.create_connection((host, port), timeout=self.config.connection_timeout):
                return True
        except OSError:
            return False

    def _check_internet(self) -> bool:
        return any(self._can_connect(host, port) for host, port in self.hosts)

    def _check_supabase(self) -> bool:
        if not self.config.supabase_url:
            # No remote configured: internet reachability is all we can test
            return True
        parsed = urlparse(self.config.supabase_url)
        if not parsed.hostname:
            return False
        return self._can_connect(parsed.hostname, parsed.port or 443)

    def check_connection(self) -> bool:
        """Run the checks now and publish if the state changed."""
        online = self._check_internet() and self._check_supabase()
        if online != self._online:
            logger.info(f"Connection status changed: {'online' if online else 'offline'}")
            self._online = online
            self._listeners.publish(online)
        return online

    def start_monitoring(self) -> None:
        """Start background connection monitoring."""
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ConnectivityProvider",
        )
        self._monitor_thread.start()
        logger.debug("Connection monitoring started")

    def stop_monitoring(self) -> None:
        self._stop_monitoring.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5)
        logger.debug("Connection monitoring stopped")

    def _monitoring_loop(self) -> None:
        while not self._stop_monitoring.is_set():
            try:
                self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

            interval = (
                self.config.check_interval_online
                if self._online
                else self.config.check_interval_offline
            )
            if self._stop_monitoring.wait(timeout=interval):
                break


@dataclass
class ConnectionState:
    """Connection state for status indicators."""
    is_online: bool = False
    was_offline: bool = False
    pending_count: int = 0
    last_online: Optional[datetime] = None
    last_offline: Optional[datetime] = None


class ConnectivityMonitor:
    """
    Watches a ConnectivityProvider and reacts to transitions.

    ``sync`` is invoked on every offline -> online transition; ``pending_count``
    reads the queue length. Both are plain callables so the monitor does not
    depend on the sync engine or queue types.
    """

    def __init__(
        self,
        provider: ConnectivityProvider,
        sync: Callable[[], object],
        pending_count: Callable[[], int],
        config: OfflineConfig,
    ):
        self.provider = provider
        self.config = config
        self._sync = sync
        self._pending_count = pending_count
        self._state = ConnectionState(is_online=provider.is_online())
        self._listeners = Broadcast("connection-state")
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._clear_timer: Optional[threading.Timer] = None
        self._poll_thread: Optional[threading.Thread] = None
        self._stop_polling = threading.Event()
        self._lock = threading.Lock()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return replace(self._state)

    @property
    def is_online(self) -> bool:
        return self.provider.is_online()

    @property
    def was_offline(self) -> bool:
        return self._state.was_offline

    @property
    def pending_count(self) -> int:
        return self._state.pending_count

    def subscribe(self, callback: Callable[[ConnectionState], None]) -> Callable[[], None]:
        return self._listeners.subscribe(callback)

    def _notify(self) -> None:
        self._listeners.publish(self.state)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self, poll: bool = True) -> None:
        """Subscribe to the provider and start the pending-count poller."""
        if self._unsubscribe is None:
            self._unsubscribe = self.provider.subscribe(self._on_transition)
            self._state.is_online = self.provider.is_online()
            if self._state.is_online:
                self._state.last_online = datetime.now(timezone.utc)

        self.poll_pending()

        interval = self.config.pending_poll_interval
        if poll and interval > 0 and (self._poll_thread is None or not self._poll_thread.is_alive()):
            self._stop_polling.clear()
            self._poll_thread = threading.Thread(
                target=self._poll_loop,
                daemon=True,
                name="PendingCountPoller",
            )
            self._poll_thread.start()

        logger.info(f"ConnectivityMonitor started. Online: {self._state.is_online}")

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        self._stop_polling.set()
        if self._poll_thread:
            self._poll_thread.join(timeout=5)
            self._poll_thread = None

        with self._lock:
            if self._clear_timer is not None:
                self._clear_timer.cancel()
                self._clear_timer = None

    # =========================================================================
    # EVENTS
    # =========================================================================

    def _on_transition(self, online: bool) -> None:
        now = datetime.now(timezone.utc)
        previously_online = self._state.is_online
        self._state.is_online = online

        if not online:
            self._state.last_offline = now
            logger.info("Connection lost, writes will be queued")
            self._notify()
            return

        self._state.last_online = now
        if not previously_online:
            self._mark_was_offline()
        self._notify()

        logger.info("Connection restored, triggering sync")
        try:
            self._sync()
        except Exception as e:
            logger.error(f"Sync after reconnect failed: {e}")
        self.poll_pending()

    def _mark_was_offline(self) -> None:
        with self._lock:
            if self._clear_timer is not None:
                self._clear_timer.cancel()
            self._state.was_offline = True
            self._clear_timer = threading.Timer(
                self.config.was_offline_window, self._clear_was_offline
            )
            self._clear_timer.daemon = True
            self._clear_timer.start()

    def _clear_was_offline(self) -> None:
        with self._lock:
            self._state.was_offline = False
            self._clear_timer = None
        self._notify()

    def poll_pending(self) -> int:
        """Read the pending count now; notifies if it changed."""
        try:
            count = self._pending_count()
        except Exception as e:
            logger.error(f"Error checking pending operations: {e}")
            return self._state.pending_count

        if count != self._state.pending_count:
            self._state.pending_count = count
            self._notify()
        return count

    def _poll_loop(self) -> None:
        while not self._stop_polling.wait(timeout=self.config.pending_poll_interval):
            self.poll_pending()
