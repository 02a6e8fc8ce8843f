# src/urlsource/release.py
"""Best-effort release helpers.

Every teardown point that must not fail goes through one of these, so the
split between absorbed and surfaced close errors lives in one place.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, BinaryIO

if TYPE_CHECKING:
    from urlsource.connections import Connection

logger = logging.getLogger(__name__)


def close_quietly(stream: BinaryIO | None) -> bool:
    """Close *stream*, ignoring failures. Returns True if it closed cleanly."""
    if stream is None:
        return True
    try:
        stream.close()
    except OSError as e:
        logger.warning("Ignoring failure while closing stream: %s", e)
        return False
    return True


def disconnect_quietly(connection: Connection | None) -> bool:
    """Drop a connection's pending transport state, ignoring failures."""
    if connection is None:
        return True
    try:
        connection.disconnect()
    except OSError as e:
        logger.warning("Ignoring failure while disconnecting %s: %s", connection.locator, e)
        return False
    return True


def release_connection(connection: Connection) -> None:
    """Open and immediately close a stream on *connection*.

    Frees transport resources tied to a response body that was never read.
    Failures propagate; callers decide whether to absorb them.
    """
    connection.get_input_stream().close()


def release_connection_quietly(connection: Connection | None) -> bool:
    """Like ``release_connection`` but ignoring failures."""
    if connection is None:
        return True
    try:
        release_connection(connection)
    except OSError as e:
        logger.warning("Ignoring failure while releasing %s: %s", connection.locator, e)
        return False
    return True
