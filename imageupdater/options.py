"""Options used when retrieving image manifests."""

from __future__ import annotations

import threading

from imageupdater.log import LogContext, with_context


def platform_key(os: str, arch: str, variant: str) -> str:
    """Return a string usable as a platform key, e.g. ``linux/arm/v7``."""
    key = f"{os}/{arch}"
    if variant:
        key += f"/{variant}"
    return key


class ManifestOptions:
    """Platform filters, metadata preference and log context for manifest retrieval."""

    def __init__(self) -> None:
        self._platforms: set[str] = set()
        self._metadata = False
        self._logger: LogContext | None = None
        self._lock = threading.RLock()

    def wants_platform(self, os: str, arch: str, variant: str) -> bool:
        """Return True if the platform is wanted; no filter means all are."""
        with self._lock:
            if not self._platforms:
                return True
            return platform_key(os, arch, variant) in self._platforms

    def with_platform(self, os: str, arch: str, variant: str) -> ManifestOptions:
        """Add a platform to the filter and return these options."""
        with self._lock:
            self._platforms.add(platform_key(os, arch, variant))
        return self

    def platforms(self) -> list[str]:
        """Return the configured platform keys in sorted order."""
        with self._lock:
            return sorted(self._platforms)

    def wants_metadata(self) -> bool:
        return self._metadata

    def with_metadata(self, value: bool) -> ManifestOptions:
        self._metadata = value
        return self

    def with_logger(self, logger: LogContext) -> ManifestOptions:
        self._logger = logger
        return self

    def logger(self) -> LogContext:
        """Return the configured log context, or a fresh default one."""
        if self._logger is None:
            return with_context()
        return self._logger