"""Registry endpoint configuration and the process-wide endpoint table."""

from __future__ import annotations

import enum
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

import requests

from imageupdater import log

RATE_LIMIT_NONE = 2**31 - 1
RATE_LIMIT_DEFAULT = 10


class TagListSort(enum.IntEnum):
    """How a registry returns its list of tags."""

    UNKNOWN = -1
    UNSORTED = 0
    LATEST_FIRST = 1
    LATEST_LAST = 2

    def is_time_sorted(self) -> bool:
        return self in (TagListSort.LATEST_FIRST, TagListSort.LATEST_LAST)

    @classmethod
    def from_string(cls, text: str) -> TagListSort:
        """Return the sort mode named by ``text``; unknown names give UNKNOWN."""
        lowered = text.lower()
        if lowered == "latest-first":
            return cls.LATEST_FIRST
        if lowered == "latest-last":
            return cls.LATEST_LAST
        if lowered in ("none", ""):
            return cls.UNSORTED
        log.warn("unknown tag list sort mode: %s", text)
        return cls.UNKNOWN

    def __str__(self) -> str:
        return _SORT_NAMES.get(self, "unknown")


_SORT_NAMES = {
    TagListSort.LATEST_FIRST: "latest-first",
    TagListSort.LATEST_LAST: "latest-last",
    TagListSort.UNSORTED: "unsorted",
}


class RateLimiter:
    """Spaces calls to ``take`` evenly so that at most ``rate`` pass per second."""

    def __init__(self, rate: int) -> None:
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self._interval = 1.0 / rate
        self._last: float | None = None
        self._lock = threading.Lock()

    def take(self) -> float:
        """Block until the next call is allowed; return the monotonic time it was granted."""
        with self._lock:
            now = time.monotonic()
            if self._last is not None:
                target = self._last + self._interval
                if target > now:
                    time.sleep(target - now)
                    now = max(target, time.monotonic())
            self._last = now
            return now


def _to_timedelta(value: timedelta | float | int) -> timedelta:
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=value)


@dataclass(eq=False)
class RegistryEndpoint:
    """How to reach one registry API endpoint."""

    registry_name: str = ""
    registry_prefix: str = ""
    registry_api: str = ""
    username: str = ""
    password: str = ""
    ping: bool = False
    credentials: str = ""
    insecure: bool = False
    default_ns: str = ""
    creds_expire: timedelta = timedelta(0)
    creds_updated: datetime | None = None
    tag_list_sort: TagListSort = TagListSort.UNSORTED
    limiter: RateLimiter = field(default_factory=lambda: RateLimiter(RATE_LIMIT_DEFAULT))
    is_default: bool = False
    limit: int = RATE_LIMIT_NONE
    lock: Any = field(default_factory=threading.Lock, repr=False)

    def deep_copy(self) -> RegistryEndpoint:
        """Return a copy sharing the rate limiter; credentials fetched at runtime are not copied."""
        with self.lock:
            return RegistryEndpoint(
                registry_name=self.registry_name,
                registry_prefix=self.registry_prefix,
                registry_api=self.registry_api,
                ping=self.ping,
                credentials=self.credentials,
                insecure=self.insecure,
                default_ns=self.default_ns,
                creds_expire=self.creds_expire,
                creds_updated=self.creds_updated,
                tag_list_sort=self.tag_list_sort,
                limiter=self.limiter,
                is_default=self.is_default,
                limit=self.limit,
            )

    def session(self) -> requests.Session:
        """Return an HTTP session for this endpoint, honouring proxy settings from the environment."""
        sess = requests.Session()
        sess.trust_env = True
        if self.insecure:
            sess.verify = False
        return sess


def new_registry_endpoint(
    prefix: str,
    name: str,
    api_url: str,
    credentials: str,
    default_ns: str,
    insecure: bool,
    tag_list_sort: TagListSort,
    limit: int,
    creds_expire: timedelta | float | int,
) -> RegistryEndpoint:
    """Return an endpoint with the given configuration."""
    if limit <= 0:
        limit = RATE_LIMIT_NONE
    return RegistryEndpoint(
        registry_name=name,
        registry_prefix=prefix,
        registry_api=api_url.removesuffix("/"),
        credentials=credentials,
        creds_expire=_to_timedelta(creds_expire),
        insecure=insecure,
        default_ns=default_ns,
        tag_list_sort=tag_list_sort,
        limiter=RateLimiter(limit),
        limit=limit,
    )


# Registries whose API endpoint cannot be inferred from the image prefix.
_REGISTRY_TWEAKS: dict[str, RegistryEndpoint] = {
    "docker.io": RegistryEndpoint(
        registry_name="Docker Hub",
        registry_prefix="docker.io",
        registry_api="https://registry-1.docker.io",
        ping=True,
        insecure=False,
        default_ns="library",
        limiter=RateLimiter(RATE_LIMIT_DEFAULT),
        is_default=True,
        limit=RATE_LIMIT_DEFAULT,
    ),
}

_registries: dict[str, RegistryEndpoint] = {}
_default_registry: RegistryEndpoint | None = None
_registry_lock = threading.RLock()


def add_registry_endpoint(ep: RegistryEndpoint) -> None:
    """Add or replace the endpoint for ``ep.registry_prefix``."""
    with _registry_lock:
        if ep.is_default:
            previous = get_default_registry()
            if previous is not None:
                previous.is_default = False
            set_default_registry(ep)
        _registries[ep.registry_prefix] = ep

    ctx = log.with_context()
    ctx.add_field("registry", ep.registry_api)
    ctx.add_field("prefix", ep.registry_prefix)
    if ep.limit != RATE_LIMIT_NONE:
        ctx.debug("setting rate limit to %d requests per second", ep.limit)
    else:
        ctx.debug("rate limiting is disabled")


def add_registry_endpoint_from_config(config: Any) -> None:
    """Create an endpoint from a registry configuration entry and add it."""
    ep = new_registry_endpoint(
        config.prefix,
        config.name,
        config.api_url,
        config.credentials,
        config.default_ns,
        config.insecure,
        TagListSort.from_string(config.tag_sort_mode),
        config.limit,
        config.creds_expire,
    )
    add_registry_endpoint(ep)


def _infer_endpoint(prefix: str) -> RegistryEndpoint:
    return new_registry_endpoint(
        prefix, prefix, "https://" + prefix, "", "", False, TagListSort.UNSORTED, 20, 0
    )


def get_registry_endpoint(prefix: str) -> RegistryEndpoint:
    """Return the endpoint for ``prefix``, inferring and adding one if unknown.

    An empty prefix selects the default registry; LookupError is raised if
    there is none.
    """
    if prefix == "":
        with _registry_lock:
            if _default_registry is None:
                raise LookupError("no default endpoint configured")
            return _default_registry

    with _registry_lock:
        found = _registries.get(prefix)
    if found is not None:
        return found

    ep = _infer_endpoint(prefix)
    add_registry_endpoint(ep)
    log.debug("Inferred registry from prefix %s to use API %s", prefix, ep.registry_api)
    return ep


def set_default_registry(ep: RegistryEndpoint) -> None:
    """Make ``ep`` the default registry endpoint."""
    global _default_registry
    log.debug("Setting default registry endpoint to %s", ep.registry_prefix)
    with _registry_lock:
        ep.is_default = True
        if _default_registry is not None and _default_registry is not ep:
            log.debug("Previous default registry was %s", _default_registry.registry_prefix)
            _default_registry.is_default = False
        _default_registry = ep


def get_default_registry() -> RegistryEndpoint | None:
    """Return the default registry endpoint, or None if there is none."""
    with _registry_lock:
        current = _default_registry
    if current is not None:
        log.debug("Getting default registry endpoint: %s", current.registry_prefix)
    else:
        log.debug("No default registry defined.")
    return current


def set_registry_endpoint_credentials(prefix: str, credentials: str) -> None:
    """Change the credentials reference of the endpoint for ``prefix``."""
    ep = get_registry_endpoint(prefix)
    with ep.lock:
        ep.credentials = credentials


def configured_endpoints() -> list[str]:
    """Return the prefixes of all configured endpoints."""
    with _registry_lock:
        return [ep.registry_prefix for ep in _registries.values()]


def clear_registries() -> None:
    """Remove every configured endpoint."""
    global _registries
    with _registry_lock:
        _registries = {}


def restore_default_registry_configuration() -> None:
    """Reset the endpoint table to the built-in defaults."""
    global _default_registry, _registries
    with _registry_lock:
        _default_registry = None
        _registries = {}
        for key, tweak in _REGISTRY_TWEAKS.items():
            copy = tweak.deep_copy()
            _registries[key] = copy
            if tweak.is_default:
                set_default_registry(copy)


restore_default_registry_configuration()