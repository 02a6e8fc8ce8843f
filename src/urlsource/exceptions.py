# src/urlsource/exceptions.py
"""Error hierarchy with RFC 9457 style problem details."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, ClassVar

from pydantic import BaseModel

if TYPE_CHECKING:
    from urlsource.locator import Locator


def _camel_to_kebab(name: str) -> str:
    """Convert CamelCase to kebab-case."""
    return re.sub(r"(?<!^)(?=[A-Z])", "-", name).lower()


class ProblemDetail(BaseModel):
    """RFC 9457 Problem Details."""

    type: str = "about:blank"
    title: str
    detail: str | None = None
    instance: str | None = None


class ResourceSourceError(Exception):
    """Base class for all resource-source failures.

    ``locator`` is the resource the failure relates to, if known.
    """

    title: ClassVar[str] = "Resource Source Error"

    def __init__(self, detail: str, locator: Locator | str | None = None) -> None:
        self.detail = detail
        self.locator = locator
        super().__init__(detail)

    @classmethod
    def problem_id(cls) -> str:
        """Return kebab-case identifier derived from class name."""
        return _camel_to_kebab(cls.__name__)

    @classmethod
    def type_uri(cls) -> str:
        """Return the full type URI for this problem."""
        return f"urlsource:problems/{cls.problem_id()}"

    def to_problem(self) -> ProblemDetail:
        """Create a ProblemDetail instance from this error."""
        return ProblemDetail(
            type=self.type_uri(),
            title=self.title,
            detail=self.detail,
            instance=str(self.locator) if self.locator is not None else None,
        )

    def __str__(self) -> str:
        if self.locator is None:
            return self.detail
        return f"{self.detail} ({self.locator})"


class SourceConnectionError(ResourceSourceError, ConnectionError):
    """A connection to the locator could not be established."""

    title: ClassVar[str] = "Connection Failed"


class StreamOpenError(ResourceSourceError, OSError):
    """The connection exists but cannot deliver a content stream."""

    title: ClassVar[str] = "Stream Unavailable"


class ReleaseError(ResourceSourceError, OSError):
    """Closing a stream or connection failed during teardown."""

    title: ClassVar[str] = "Release Failed"


class HandleClosedError(ResourceSourceError, RuntimeError):
    """The handle was used after close()."""

    title: ClassVar[str] = "Handle Closed"


class InvalidHandleTransition(ResourceSourceError, RuntimeError):
    """Invalid handle state transition."""

    title: ClassVar[str] = "Conflict"


class InvalidLocatorError(ResourceSourceError, ValueError):
    """The locator string is not a usable URL."""

    title: ClassVar[str] = "Bad Locator"
