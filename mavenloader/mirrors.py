import logging
import math
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from urllib.parse import urlparse

import requests

from .models import MirrorEntry, ProbeResult
from .config import (CENTRAL_URL, DEFAULT_MIRRORS, CUSTOM_MIRROR_NAME, SELECT_ENV, CENTRAL_ENV,
                     PROBE_CONNECT_TIMEOUT, PROBE_READ_TIMEOUT, PROBE_DEADLINE, PROBE_OK_STATUSES)

logger = logging.getLogger(__name__)


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


class MirrorRegistry:
    """Named candidate endpoints for Maven Central. First registration of a name wins."""

    def __init__(self, entries: dict[str, str] | None = None):
        self._entries: dict[str, MirrorEntry] = {}
        for name, url in (entries or {}).items():
            self.register(name, url)

    @classmethod
    def from_env(cls, environ=None) -> "MirrorRegistry":
        """Built-in mirror table plus the operator mirror from MAVEN_CENTRAL, if any."""
        environ = os.environ if environ is None else environ
        registry = cls(DEFAULT_MIRRORS)
        custom = environ.get(CENTRAL_ENV, "")
        if custom:
            if is_valid_url(custom):
                registry.register(CUSTOM_MIRROR_NAME, custom)
            else:
                logger.debug(f"Ignoring malformed {CENTRAL_ENV} value: {custom!r}")
        return registry

    def register(self, name: str, url: str) -> bool:
        """Adds an entry. Returns False (and changes nothing) if the name is taken."""
        if name in self._entries:
            return False
        self._entries[name] = MirrorEntry(name, url)
        return True

    def get(self, name: str) -> str | None:
        entry = self._entries.get(name)
        return entry.url if entry else None

    def all(self) -> dict[str, str]:
        return {name: entry.url for name, entry in self._entries.items()}

    def __len__(self):
        return len(self._entries)


def probe_mirror(name: str, url: str, session: requests.Session | None = None) -> ProbeResult:
    """
    Sends one GET to the mirror and measures the round trip to the status line.
    200/301/302/404 all count as reachable; only latency matters here.
    """
    requester = session or requests
    response = None
    start = time.monotonic()
    try:
        response = requester.get(url, timeout=(PROBE_CONNECT_TIMEOUT, PROBE_READ_TIMEOUT),
                                 allow_redirects=False, stream=True)
        if response.status_code in PROBE_OK_STATUSES:
            latency = time.monotonic() - start
            logger.info(f"Mirror {name} responded in {latency * 1000:.0f} ms")
            return ProbeResult(url, latency, True)
        logger.warning(f"Mirror {name} failed with response code: {response.status_code}")
    except requests.exceptions.RequestException as e:
        logger.warning(f"Mirror {name} failed to connect: {e}")
    finally:
        if response is not None:
            response.close()
    return ProbeResult(url)


class MirrorSelector:
    """
    Picks the fastest mirror once and remembers it.

    select() is safe to call from several threads: the first caller runs the
    probe race while holding the lock, everyone else waits and reads the
    same result.
    """

    def __init__(self, registry: MirrorRegistry, pin: str | None = None,
                 probe=probe_mirror, deadline: float = PROBE_DEADLINE):
        self.registry = registry
        self.pin = pin
        self.probe = probe
        self.deadline = deadline
        self._selected: str | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls, environ=None) -> "MirrorSelector":
        environ = os.environ if environ is None else environ
        return cls(MirrorRegistry.from_env(environ), pin=environ.get(SELECT_ENV) or None)

    @property
    def selected(self) -> str | None:
        """The winner, or None if select() has not run yet."""
        return self._selected

    def select(self) -> str:
        if self._selected is not None:
            return self._selected
        with self._lock:
            if self._selected is None:
                self._selected = self._compute()
            return self._selected

    def _compute(self) -> str:
        if self.pin:
            pinned = self.registry.get(self.pin)
            if pinned is not None:
                logger.info(f"The mirror {self.pin} ({pinned}) has been selected")
                return pinned
            logger.warning(f"Pinned mirror {self.pin!r} is not registered, probing all mirrors")

        mirrors = self.registry.all()
        if not mirrors:
            logger.info(f"No mirrors registered, using {CENTRAL_URL}")
            return CENTRAL_URL

        best = race_mirrors(mirrors, self.probe, self.deadline)
        if best is None:
            logger.warning(f"No mirror responded, falling back to {CENTRAL_URL}")
            return CENTRAL_URL
        logger.info(f"The fastest mirror is selected: {best.url} ({best.latency * 1000:.0f} ms)")
        return best.url


def race_mirrors(mirrors: dict[str, str], probe=probe_mirror,
                 deadline: float = PROBE_DEADLINE) -> ProbeResult | None:
    """
    Probes every mirror concurrently and returns the fastest successful result,
    or None. Each probe gets `deadline` seconds from submission; probes still
    running after that are abandoned, not cancelled.
    """
    executor = ThreadPoolExecutor(max_workers=len(mirrors), thread_name_prefix="MirrorProbe")
    try:
        submitted = time.monotonic()
        futures = {executor.submit(probe, name, url): name for name, url in mirrors.items()}

        best: ProbeResult | None = None
        for future, name in futures.items():
            remaining = max(0.0, submitted + deadline - time.monotonic())
            try:
                result = future.result(timeout=remaining)
            except FutureTimeoutError:
                logger.warning(f"Error testing mirror {name}: no response within {deadline}s")
                continue
            except Exception as e:
                logger.warning(f"Error testing mirror {name}: {e}")
                continue
            if result.ok and math.isfinite(result.latency) and (best is None or result.latency < best.latency):
                best = result
        return best
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


_default_selector: MirrorSelector | None = None
_default_lock = threading.Lock()


def get_selector() -> MirrorSelector:
    """The process-wide selector, built from the environment on first use."""
    global _default_selector
    if _default_selector is None:
        with _default_lock:
            if _default_selector is None:
                _default_selector = MirrorSelector.from_env()
    return _default_selector


def select_mirror() -> str:
    return get_selector().select()


def reset_selector(selector: MirrorSelector | None = None):
    """Replaces the process-wide selector. Meant for tests."""
    global _default_selector
    with _default_lock:
        _default_selector = selector
