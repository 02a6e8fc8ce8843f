# src/urlsource/source.py
"""Resource handle used by a template cache.

A ``ResourceHandle`` wraps one locator and gives its owner three things:
a fresh byte stream for the current content, a cheap last-modified query for
freshness checks, and deterministic release of whatever connection or stream
it holds.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import BinaryIO

from urlsource.connections import Connection, Opener, file_last_modified
from urlsource.exceptions import (
    HandleClosedError,
    InvalidHandleTransition,
    InvalidLocatorError,
    ReleaseError,
    ResourceSourceError,
)
from urlsource.locator import (
    UNKNOWN_LAST_MODIFIED,
    ArchiveEntryLocator,
    Locator,
    LocatorKind,
    parse_locator,
)
from urlsource.release import (
    close_quietly,
    disconnect_quietly,
    release_connection,
    release_connection_quietly,
)

logger = logging.getLogger(__name__)


def _local_last_modified(locator: Locator) -> int:
    """Read the timestamp of a file: locator straight from the filesystem."""
    try:
        path = locator.file_path
    except InvalidLocatorError as e:
        logger.warning("Cannot map %s to a local path: %s", locator, e)
        return UNKNOWN_LAST_MODIFIED
    return file_last_modified(path)


class HandleState(str, Enum):
    UNOPENED = "unopened"
    CONNECTED = "connected"
    STREAM_OPEN = "stream_open"
    CLOSED = "closed"


VALID_TRANSITIONS: dict[HandleState, set[HandleState]] = {
    HandleState.UNOPENED: {HandleState.CONNECTED, HandleState.CLOSED},
    HandleState.CONNECTED: {HandleState.STREAM_OPEN, HandleState.CLOSED},
    HandleState.STREAM_OPEN: {HandleState.UNOPENED, HandleState.CLOSED},
    HandleState.CLOSED: {HandleState.UNOPENED},
}


class ResourceHandle:
    """Handle on a single byte-readable resource.

    Identity is the locator alone: two handles with equal locators compare
    and hash equal whatever their connection or stream state, so either can
    key a cache entry. They never share transport resources.

    The handle is not thread-safe; its owner must not call it concurrently.

    Parameters
    ----------
    locator
        URL string, filesystem path, or parsed ``Locator``.
    opener
        Turns locators into connections. Defaults to ``Opener()``.
    reopen_after_close
        Reconnect transparently when used after ``close()`` instead of raising
        ``HandleClosedError``. Defaults to the opener's settings.

    Raises
    ------
    InvalidLocatorError
        If *locator* cannot be parsed.
    SourceConnectionError
        If the initial connection cannot be established.
    """

    def __init__(
        self,
        locator: Locator | str | os.PathLike,
        *,
        opener: Opener | None = None,
        reopen_after_close: bool | None = None,
    ):
        self._locator = parse_locator(locator)
        self._opener = opener if opener is not None else Opener()
        if reopen_after_close is None:
            reopen_after_close = self._opener.settings.reopen_after_close
        self._reopen_after_close = reopen_after_close

        self._state = HandleState.UNOPENED
        self._connection: Connection | None = None
        self._stream: BinaryIO | None = None
        self._connect()

    # -- Identity -------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ResourceHandle):
            return self._locator == other._locator
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._locator)

    def __str__(self) -> str:
        return self._locator.url

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._locator.url!r})"

    def __enter__(self) -> "ResourceHandle":
        return self

    def __exit__(self, *_exc_info) -> None:
        self.close()

    @property
    def locator(self) -> Locator:
        return self._locator

    @property
    def state(self) -> HandleState:
        return self._state

    @property
    def connection(self) -> Connection | None:
        return self._connection

    @property
    def open_stream(self) -> BinaryIO | None:
        return self._stream

    # -- State ----------------------------------------------------------------

    def _transition(self, new_state: HandleState) -> None:
        if new_state not in VALID_TRANSITIONS[self._state]:
            raise InvalidHandleTransition(
                f"Cannot transition from '{self._state.value}' to '{new_state.value}'",
                self._locator,
            )
        self._state = new_state

    def _connect(self) -> Connection:
        """Establish a connection from the locator, from scratch."""
        self._connection = self._opener(self._locator)
        self._transition(HandleState.CONNECTED)
        logger.debug("Connected %s", self._locator)
        return self._connection

    def _ensure_usable(self) -> None:
        if self._state is not HandleState.CLOSED:
            return
        if not self._reopen_after_close:
            raise HandleClosedError("Handle used after close()", self._locator)
        logger.debug("Reopening closed handle %s", self._locator)
        self._transition(HandleState.UNOPENED)

    # -- Operations -----------------------------------------------------------

    def last_modified(self) -> int:
        """Modification time of the resource in epoch milliseconds.

        Returns ``UNKNOWN_LAST_MODIFIED`` when the time cannot be determined;
        transport failures never propagate. Safe to call repeatedly: any
        connection opened only to read a timestamp is released before
        returning.

        Raises:
            HandleClosedError: If the handle was closed and reopening is off.
        """
        self._ensure_usable()
        if self._locator.kind is LocatorKind.ARCHIVE_ENTRY:
            return self._archive_last_modified(self._locator)
        return self._direct_last_modified()

    def _archive_last_modified(self, locator: ArchiveEntryLocator) -> int:
        # Entries cannot change independently of the archive that holds them,
        # and asking the entry itself keeps the archive file open. Use the
        # container's own timestamp instead.
        container = locator.container
        if container.is_local_file:
            return _local_last_modified(container)

        try:
            container_connection = self._opener(container)
        except ResourceSourceError as e:
            logger.warning("Cannot connect to archive %s: %s", container, e)
            return UNKNOWN_LAST_MODIFIED
        try:
            return container_connection.last_modified()
        except OSError as e:
            logger.warning("Cannot read timestamp of archive %s: %s", container, e)
            return UNKNOWN_LAST_MODIFIED
        finally:
            release_connection_quietly(container_connection)

    def _direct_last_modified(self) -> int:
        connection = self._connection
        if connection is None:
            try:
                connection = self._connect()
            except ResourceSourceError as e:
                logger.warning("Cannot reconnect to %s: %s", self._locator, e)
                return UNKNOWN_LAST_MODIFIED

        try:
            last_modified = connection.last_modified()
        except OSError as e:
            logger.warning("Cannot read timestamp of %s: %s", self._locator, e)
            last_modified = UNKNOWN_LAST_MODIFIED

        if last_modified == UNKNOWN_LAST_MODIFIED and self._locator.is_local_file:
            return _local_last_modified(self._locator)
        return last_modified

    def get_input_stream(self) -> BinaryIO:
        """Return a stream reading the resource from its first byte.

        Each call yields an independent full read. A stream returned by an
        earlier call is closed first and the connection is re-established
        from the locator.

        Raises:
            HandleClosedError: If the handle was closed and reopening is off.
            SourceConnectionError: If re-establishing the connection fails.
            StreamOpenError: If the connection cannot deliver a stream.
        """
        self._ensure_usable()
        if self._stream is not None:
            # The old stream may already be closed by its reader.
            close_quietly(self._stream)
            disconnect_quietly(self._connection)
            self._stream = None
            self._connection = None
            self._transition(HandleState.UNOPENED)
            logger.debug("Re-opening %s from the start", self._locator)

        connection = self._connection
        if connection is None:
            connection = self._connect()

        self._stream = connection.get_input_stream()
        self._transition(HandleState.STREAM_OPEN)
        return self._stream

    def close(self) -> None:
        """Release the current stream or connection.

        State is cleared even when releasing fails, so the handle never keeps
        a dangling reference. Closing a closed handle does nothing.

        Raises:
            ReleaseError: If closing the stream or connection failed.
        """
        if self._state is HandleState.CLOSED:
            return
        stream, connection = self._stream, self._connection
        try:
            if stream is not None:
                stream.close()
            elif connection is not None:
                release_connection(connection)
        except OSError as e:
            raise ReleaseError(f"Failed to release: {e}", self._locator) from e
        finally:
            disconnect_quietly(connection)
            self._stream = None
            self._connection = None
            self._transition(HandleState.CLOSED)
            logger.debug("Closed %s", self._locator)
