# src/urlsource/locator.py
"""Locator value objects.

A locator is parsed once into one of two variants:

- ``DirectLocator``: the resource is addressed directly (``file:``, ``http:``, ...)
- ``ArchiveEntryLocator``: the resource is an entry inside an archive container,
  written as ``jar:<container-url>!/<entry>`` (or ``zip:``)

Both are frozen dataclasses whose equality and hash depend on the URL alone.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import ClassVar
from urllib.parse import unquote, urlsplit
from urllib.request import url2pathname

from urlsource.exceptions import InvalidLocatorError

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*$")

ARCHIVE_SCHEMES = frozenset({"jar", "zip"})
ARCHIVE_SEPARATOR = "!/"

# Epoch milliseconds are used for every timestamp; -1 means "not known".
UNKNOWN_LAST_MODIFIED = -1


class LocatorKind(str, Enum):
    DIRECT = "direct"
    ARCHIVE_ENTRY = "archive-entry"


@dataclass(frozen=True, eq=False)
class Locator:
    """Base class for parsed locators.

    Only ``parse_locator`` builds usable variants; a bare ``Locator`` passed to
    it is parsed again from its URL.
    """

    url: str
    kind: ClassVar[LocatorKind]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Locator):
            return self.url == other.url
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.url)

    @property
    def scheme(self) -> str:
        return self.url.split(":", 1)[0]

    @property
    def is_local_file(self) -> bool:
        return self.scheme == "file"

    @property
    def file_path(self) -> Path:
        """Filesystem path of a ``file:`` URL."""
        if not self.is_local_file:
            raise InvalidLocatorError("Not a file locator", self)
        parts = urlsplit(self.url)
        if parts.netloc not in ("", "localhost"):
            raise InvalidLocatorError(
                f"Remote host '{parts.netloc}' in file locator", self
            )
        return Path(url2pathname(parts.path))

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True, eq=False)
class DirectLocator(Locator):
    kind: ClassVar[LocatorKind] = LocatorKind.DIRECT


@dataclass(frozen=True, eq=False)
class ArchiveEntryLocator(Locator):
    """An entry inside an archive container.

    ``container`` is the archive's own locator and ``entry`` the decoded path
    of the entry within it. Both are derived from ``url`` and take no part
    in equality.
    """

    kind: ClassVar[LocatorKind] = LocatorKind.ARCHIVE_ENTRY

    container: Locator = field(repr=False)
    entry: str = field(repr=False)


def _normalize(url: str) -> str:
    scheme, sep, rest = url.partition(":")
    if not sep or not _SCHEME_RE.match(scheme):
        raise InvalidLocatorError("Locator has no URL scheme", url)
    return f"{scheme.lower()}:{rest}"


def parse_locator(value: Locator | str | os.PathLike) -> Locator:
    """Parse a URL string or filesystem path into a locator variant.

    Raises:
        InvalidLocatorError: If the value has no scheme, or an archive locator
            lacks the ``!/`` separator or an entry name.
    """
    if isinstance(value, (DirectLocator, ArchiveEntryLocator)):
        return value
    if isinstance(value, Locator):
        value = value.url
    if isinstance(value, os.PathLike):
        return DirectLocator(Path(value).resolve().as_uri())

    url = _normalize(value)
    scheme, _, rest = url.partition(":")
    if scheme not in ARCHIVE_SCHEMES:
        return DirectLocator(url)

    # The container URL ends at the first separator, unless it is itself an
    # archive entry, whose own separator comes first.
    if rest.partition(":")[0].lower() in ARCHIVE_SCHEMES:
        container_url, sep, entry = rest.rpartition(ARCHIVE_SEPARATOR)
    else:
        container_url, sep, entry = rest.partition(ARCHIVE_SEPARATOR)
    if not sep or not container_url:
        raise InvalidLocatorError(
            f"Archive locator must have the form {scheme}:<url>{ARCHIVE_SEPARATOR}<entry>",
            url,
        )
    if not entry:
        raise InvalidLocatorError("Archive locator names no entry", url)
    return ArchiveEntryLocator(
        url,
        container=parse_locator(container_url),
        entry=unquote(entry),
    )
