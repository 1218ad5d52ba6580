"""Image tags with metadata and collections of them."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone

from imageupdater import log
from imageupdater.semver import InvalidVersionError, parse_version, sort_versions

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


@dataclass(eq=False)
class ImageTag:
    """An image tag with its creation date and optional digest."""

    tag_name: str
    tag_date: datetime
    tag_digest: str = ""

    def __str__(self) -> str:
        return self.tag_digest or self.tag_name

    def is_digest(self) -> bool:
        return self.tag_digest != ""

    def equals(self, other: ImageTag) -> bool:
        """Compare by digest if this tag has one, otherwise by name."""
        if self.is_digest():
            return self.tag_digest == other.tag_digest
        return self.tag_name == other.tag_name


class SortableImageTagList(list):
    """An ordered list of ImageTag objects."""

    def tags(self) -> list[str]:
        return [t.tag_name for t in self]


class ImageTagList:
    """A thread-safe collection of image tags keyed by tag name."""

    def __init__(self) -> None:
        self._items: dict[str, ImageTag] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[ImageTag]:
        with self._lock:
            return iter(list(self._items.values()))

    def add(self, tag: ImageTag) -> None:
        """Add a tag, replacing any tag with the same name."""
        with self._lock:
            self._items[tag.tag_name] = tag

    def contains(self, tag: ImageTag) -> bool:
        with self._lock:
            return tag.tag_name in self._items

    def tags(self) -> list[str]:
        with self._lock:
            return list(self._items)

    def _snapshot(self) -> list[ImageTag]:
        with self._lock:
            return list(self._items.values())

    def sort_alphabetically(self) -> SortableImageTagList:
        return SortableImageTagList(sorted(self._snapshot(), key=lambda t: t.tag_name))

    def sort_by_date(self) -> SortableImageTagList:
        """Sort by date, then by name for tags with the same date."""
        return SortableImageTagList(
            sorted(self._snapshot(), key=lambda t: (t.tag_date, t.tag_name))
        )

    def sort_by_semver(self) -> SortableImageTagList:
        """Sort tags that parse as semantic versions; others are left out."""
        with self._lock:
            items = dict(self._items)
        versions = []
        for item in items.values():
            try:
                versions.append(parse_version(item.tag_name))
            except InvalidVersionError as err:
                log.debug("could not parse input tag %s as semver: %s", item.tag_name, err)
        return SortableImageTagList(
            ImageTag(
                v.original,
                items[v.original].tag_date,
                items[v.original].tag_digest,
            )
            for v in sort_versions(versions)
        )


@dataclass
class TagInfo:
    """Creation time and manifest digest of a tag."""

    created_at: datetime = _ZERO_TIME
    digest: bytes = field(default=bytes(32))

    def encoded_digest(self) -> str:
        return "sha256:" + self.digest.hex()