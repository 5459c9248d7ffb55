# watchoffline/discovery.py
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from zeroconf import IPVersion, ServiceBrowser, ServiceListener, Zeroconf

from .vault import DEFAULT_SHARE_PORT, make_server_id

log = logging.getLogger("discovery")

SERVICE_TYPE = "_smb._tcp.local."
RESOLVE_TIMEOUT_MS = 3000


@dataclass(frozen=True)
class DiscoveredServer:
    id: str
    display_name: str
    host: str
    port: int


def _display_name(service_name: str, host: str) -> str:
    suffix = "." + SERVICE_TYPE
    name = service_name[: -len(suffix)] if service_name.endswith(suffix) else service_name
    return name.strip() or host


class _Listener(ServiceListener):
    def __init__(self, on_found: Callable[[DiscoveredServer], None], on_error: Callable[[str], None]):
        self._on_found = on_found
        self._on_error = on_error
        self._seen: Dict[str, DiscoveredServer] = {}
        self._lock = threading.Lock()

    def add_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        try:
            info = zc.get_service_info(type_, name, timeout=RESOLVE_TIMEOUT_MS)
        except Exception as e:
            log.warning("Resolve failed for %s: %s", name, e)
            self._on_error(f"Resolve failed for {name}: {e}")
            return
        if info is None:
            log.warning("No answer resolving %s", name)
            return
        addrs = info.parsed_addresses(IPVersion.V4Only)
        if not addrs:
            log.info("%s has no IPv4 address, skipping", name)
            return
        host = addrs[0]
        port = info.port if info.port and info.port > 0 else DEFAULT_SHARE_PORT
        server = DiscoveredServer(
            id=make_server_id(host, port),
            display_name=_display_name(name, host),
            host=host,
            port=port,
        )
        with self._lock:
            if server.id in self._seen:
                return
            self._seen[server.id] = server
        log.info("Found %s at %s:%s", server.display_name, host, port)
        self._on_found(server)

    def update_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        pass

    def remove_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        pass


class DiscoveryService:
    """Browses the LAN for SMB hosts until ``stop_discovery`` is called."""

    def __init__(self):
        self._zc: Optional[Zeroconf] = None
        self._browser: Optional[ServiceBrowser] = None

    @property
    def running(self) -> bool:
        return self._zc is not None

    def start_discovery(self, on_found: Callable[[DiscoveredServer], None],
                        on_error: Callable[[str], None]) -> None:
        self.stop_discovery()
        try:
            self._zc = Zeroconf(ip_version=IPVersion.V4Only)
            self._browser = ServiceBrowser(self._zc, SERVICE_TYPE, _Listener(on_found, on_error))
        except Exception as e:
            log.error("Discovery could not start: %s", e)
            self.stop_discovery()
            on_error(f"Discovery failed: {e}")

    def stop_discovery(self) -> None:
        browser, zc = self._browser, self._zc
        self._browser = self._zc = None
        if browser is not None:
            try:
                browser.cancel()
            except Exception as e:
                log.debug("browser cancel: %s", e)
        if zc is not None:
            try:
                zc.close()
            except Exception as e:
                log.debug("zeroconf close: %s", e)


def discover_servers(seconds: float) -> List[DiscoveredServer]:
    """Blocking scan for ``seconds``; returns whatever answered in time."""
    found: List[DiscoveredServer] = []
    lock = threading.Lock()

    def _add(server: DiscoveredServer) -> None:
        with lock:
            found.append(server)

    svc = DiscoveryService()
    svc.start_discovery(_add, lambda msg: log.warning("%s", msg))
    try:
        time.sleep(max(0.0, seconds))
    finally:
        svc.stop_discovery()
    with lock:
        return sorted(found, key=lambda s: (s.display_name.lower(), s.host))
