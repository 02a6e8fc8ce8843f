# src/urlsource/__init__.py
"""Resource-source handles for template caches."""

from urlsource.connections import (
    ArchiveEntryConnection,
    Connection,
    ConnectionFactory,
    FileConnection,
    HttpConnection,
    Opener,
    file_last_modified,
)
from urlsource.exceptions import (
    HandleClosedError,
    InvalidHandleTransition,
    InvalidLocatorError,
    ProblemDetail,
    ReleaseError,
    ResourceSourceError,
    SourceConnectionError,
    StreamOpenError,
)
from urlsource.locator import (
    ARCHIVE_SCHEMES,
    UNKNOWN_LAST_MODIFIED,
    ArchiveEntryLocator,
    DirectLocator,
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
from urlsource.settings import SourceSettings, get_settings
from urlsource.source import VALID_TRANSITIONS, HandleState, ResourceHandle

__all__ = [
    # Handle
    "ResourceHandle",
    "HandleState",
    "VALID_TRANSITIONS",
    # Locators
    "Locator",
    "DirectLocator",
    "ArchiveEntryLocator",
    "LocatorKind",
    "parse_locator",
    "ARCHIVE_SCHEMES",
    "UNKNOWN_LAST_MODIFIED",
    # Connections
    "Connection",
    "ConnectionFactory",
    "FileConnection",
    "HttpConnection",
    "ArchiveEntryConnection",
    "Opener",
    "file_last_modified",
    # Release helpers
    "close_quietly",
    "disconnect_quietly",
    "release_connection",
    "release_connection_quietly",
    # Exceptions
    "ResourceSourceError",
    "ProblemDetail",
    "SourceConnectionError",
    "StreamOpenError",
    "ReleaseError",
    "HandleClosedError",
    "InvalidHandleTransition",
    "InvalidLocatorError",
    # Settings
    "SourceSettings",
    "get_settings",
]
