# src/urlsource/connections.py
"""Scheme-specific connections to a locator.

A connection is an open channel to a resource's metadata and content, prior
to reading bytes. ``Opener`` turns a locator into the right connection.
"""

from __future__ import annotations

import io
import logging
import os
import time
import zipfile
from datetime import timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import BinaryIO, Callable, Protocol

import httpx

from urlsource.exceptions import (
    InvalidLocatorError,
    SourceConnectionError,
    StreamOpenError,
)
from urlsource.locator import (
    UNKNOWN_LAST_MODIFIED,
    ArchiveEntryLocator,
    Locator,
    LocatorKind,
    parse_locator,
)
from urlsource.release import disconnect_quietly
from urlsource.settings import SourceSettings, get_settings

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Protocol for transports that ResourceHandle drives."""

    locator: Locator

    def last_modified(self) -> int:
        """Native modification time in epoch ms, or UNKNOWN_LAST_MODIFIED."""
        ...

    def get_input_stream(self) -> BinaryIO:
        """Open a stream positioned at the start of the content."""
        ...

    def disconnect(self) -> None:
        """Drop pending transport state without reading content."""
        ...


ConnectionFactory = Callable[[Locator], Connection]


def file_last_modified(path: str | os.PathLike) -> int:
    """Modification time of *path* read from the filesystem, in epoch ms."""
    try:
        return os.stat(path).st_mtime_ns // 1_000_000
    except OSError:
        return UNKNOWN_LAST_MODIFIED


def _parse_http_date(value: str | None) -> int:
    if not value:
        return UNKNOWN_LAST_MODIFIED
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning("Unparsable Last-Modified header: %r", value)
        return UNKNOWN_LAST_MODIFIED
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


class FileConnection:
    """Connection to a ``file:`` locator."""

    def __init__(self, locator: Locator):
        self.locator = locator
        try:
            self.path: Path = locator.file_path
        except InvalidLocatorError as e:
            raise SourceConnectionError(e.detail, locator) from e

    def last_modified(self) -> int:
        return file_last_modified(self.path)

    def get_input_stream(self) -> BinaryIO:
        try:
            return open(self.path, "rb")
        except OSError as e:
            raise StreamOpenError(f"Cannot open file: {e.strerror}", self.locator) from e

    def disconnect(self) -> None:
        pass


class _ResponseStream(io.RawIOBase):
    """Raw stream over a streaming httpx response.

    Owns both the response and the client that produced it; closing the
    stream closes both.
    """

    def __init__(self, response: httpx.Response, client: httpx.Client):
        self._response = response
        self._client = client
        self._chunks = response.iter_bytes()
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        while not self._pending:
            try:
                chunk = next(self._chunks, None)
            except httpx.HTTPError as e:
                raise OSError(f"Read from {self._response.url} failed: {e}") from e
            if chunk is None:
                return 0
            self._pending = chunk
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def close(self) -> None:
        if not self.closed:
            try:
                self._response.close()
            finally:
                self._client.close()
        super().close()


class HttpConnection:
    """Connection to an ``http:`` or ``https:`` locator.

    The first call to ``last_modified()`` or ``get_input_stream()`` sends a
    streaming GET. The response stays pending on the connection until a
    stream takes it over or ``disconnect()`` drops it. Its ``Last-Modified``
    value is kept for the life of the connection.
    """

    def __init__(
        self,
        locator: Locator,
        settings: SourceSettings,
        transport: httpx.BaseTransport | None = None,
    ):
        self.locator = locator
        self._settings = settings
        self._transport = transport
        self._client: httpx.Client | None = None
        self._response: httpx.Response | None = None
        self._last_modified: int | None = None

    def _headers(self) -> dict[str, str]:
        headers = {"User-Agent": self._settings.http_user_agent}
        if not self._settings.http_use_caches:
            headers["Cache-Control"] = "no-cache"
            headers["Pragma"] = "no-cache"
        return headers

    def _connect(self) -> httpx.Response:
        if self._response is not None:
            return self._response

        client = httpx.Client(
            transport=self._transport,
            timeout=self._settings.http_timeout_seconds,
            follow_redirects=self._settings.http_follow_redirects,
            headers=self._headers(),
        )
        try:
            response = client.send(
                client.build_request("GET", self.locator.url), stream=True
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            client.close()
            raise SourceConnectionError(f"GET failed: {e}", self.locator) from e

        logger.debug("GET %s -> %s", self.locator, response.status_code)
        if self._last_modified is None:
            self._last_modified = _parse_http_date(response.headers.get("Last-Modified"))
        self._client = client
        self._response = response
        return response

    def last_modified(self) -> int:
        # Answered from the first response; a stream handed out earlier must
        # not trigger another request.
        if self._last_modified is not None:
            return self._last_modified
        try:
            self._connect()
        except SourceConnectionError as e:
            logger.warning("Cannot read Last-Modified of %s: %s", self.locator, e)
            return UNKNOWN_LAST_MODIFIED
        return self._last_modified

    def get_input_stream(self) -> BinaryIO:
        response = self._connect()
        client = self._client
        self._client = None
        self._response = None

        if response.is_error:
            try:
                response.close()
            finally:
                client.close()
            raise StreamOpenError(
                f"HTTP {response.status_code} {response.reason_phrase}", self.locator
            )
        return io.BufferedReader(_ResponseStream(response, client))

    def disconnect(self) -> None:
        response, client = self._response, self._client
        self._response = None
        self._client = None
        if response is not None:
            try:
                response.close()
            finally:
                client.close()


class ArchiveEntryConnection:
    """Connection to an entry inside a zip-format archive.

    Entry bytes are copied into memory, so no archive file handle outlives
    a call.
    """

    def __init__(self, locator: ArchiveEntryLocator, opener: Opener):
        self.locator = locator
        self._opener = opener

    @property
    def container(self) -> Locator:
        return self.locator.container

    def _local_container_path(self) -> Path:
        try:
            return self.container.file_path
        except InvalidLocatorError as e:
            raise StreamOpenError(e.detail, self.container) from e

    def _read_container(self) -> bytes:
        connection = self._opener(self.container)
        try:
            with connection.get_input_stream() as stream:
                return stream.read()
        finally:
            disconnect_quietly(connection)

    def _open_archive(self) -> zipfile.ZipFile:
        if self.container.is_local_file:
            source = self._local_container_path()
        else:
            source = io.BytesIO(self._read_container())
        try:
            return zipfile.ZipFile(source)
        except (OSError, zipfile.BadZipFile) as e:
            raise StreamOpenError(f"Cannot open archive: {e}", self.container) from e

    def last_modified(self) -> int:
        """Timestamp recorded for the entry itself inside the archive."""
        try:
            with self._open_archive() as archive:
                info = archive.getinfo(self.locator.entry)
        except (OSError, KeyError) as e:
            logger.warning("Cannot read entry timestamp of %s: %s", self.locator, e)
            return UNKNOWN_LAST_MODIFIED
        return int(time.mktime(info.date_time + (0, 0, -1)) * 1000)

    def get_input_stream(self) -> BinaryIO:
        with self._open_archive() as archive:
            try:
                data = archive.read(self.locator.entry)
            except KeyError as e:
                raise StreamOpenError(
                    f"No entry '{self.locator.entry}' in archive", self.locator
                ) from e
            except (OSError, zipfile.BadZipFile) as e:
                raise StreamOpenError(f"Cannot read entry: {e}", self.locator) from e
        return io.BytesIO(data)

    def disconnect(self) -> None:
        pass


class Opener:
    """Maps locators to connections.

    Archive-entry locators always get an ``ArchiveEntryConnection``; direct
    locators are dispatched on their scheme. Extra schemes can be added::

        opener = Opener()

        @opener.register("mem")
        def open_mem(locator: Locator) -> Connection:
            return MemoryConnection(locator)
    """

    def __init__(
        self,
        settings: SourceSettings | None = None,
        *,
        http_transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings if settings is not None else get_settings()
        self._http_transport = http_transport
        self._factories: dict[str, ConnectionFactory] = {
            "file": FileConnection,
            "http": self._open_http,
            "https": self._open_http,
        }

    def _open_http(self, locator: Locator) -> HttpConnection:
        return HttpConnection(locator, self.settings, self._http_transport)

    def register(self, scheme: str, factory: ConnectionFactory | None = None):
        """Register *factory* for *scheme*; usable as a decorator."""

        def decorator(fn: ConnectionFactory) -> ConnectionFactory:
            self._factories[scheme.lower()] = fn
            return fn

        if factory is None:
            return decorator
        return decorator(factory)

    @property
    def schemes(self) -> list[str]:
        return sorted(self._factories)

    def __call__(self, locator: Locator | str | os.PathLike) -> Connection:
        """Open a connection to *locator*.

        Raises:
            SourceConnectionError: If no factory handles the scheme, or the
                factory cannot establish the connection.
        """
        locator = parse_locator(locator)
        if locator.kind is LocatorKind.ARCHIVE_ENTRY:
            return ArchiveEntryConnection(locator, self)

        factory = self._factories.get(locator.scheme)
        if factory is None:
            raise SourceConnectionError(
                f"Unsupported locator scheme '{locator.scheme}'", locator
            )
        logger.debug("Opening %s connection to %s", locator.scheme, locator)
        return factory(locator)
