# tests/conftest.py
"""Shared test fixtures for DRY tests."""

import io
import os
import zipfile
from dataclasses import dataclass

import httpx
import pytest

from urlsource.connections import Opener
from urlsource.exceptions import SourceConnectionError, StreamOpenError
from urlsource.locator import Locator, parse_locator
from urlsource.settings import SourceSettings

TEMPLATE_MTIME = 1_600_000_000  # seconds


class FakeStream(io.BytesIO):
    """In-memory stream that reports close() to its transport."""

    def __init__(self, transport: "FakeTransport"):
        super().__init__(transport.content)
        self._transport = transport

    def close(self) -> None:
        if not self.closed:
            self._transport.streams_closed += 1
            super().close()
            if self._transport.fail_close:
                raise OSError("close failed")


class FakeConnection:
    """Connection whose behaviour is scripted by a FakeTransport."""

    def __init__(self, locator: Locator, transport: "FakeTransport"):
        self.locator = locator
        self._transport = transport

    def last_modified(self) -> int:
        self._transport.last_modified_calls += 1
        return self._transport.last_modified

    def get_input_stream(self) -> FakeStream:
        if self._transport.fail_stream:
            raise StreamOpenError("no stream", self.locator)
        self._transport.streams_opened += 1
        return FakeStream(self._transport)

    def disconnect(self) -> None:
        self._transport.disconnects += 1


@dataclass
class FakeTransport:
    """Counts every connection and stream it hands out."""

    content: bytes = b"hi"
    last_modified: int = 1_000
    fail_connect: bool = False
    fail_stream: bool = False
    fail_close: bool = False
    connections: int = 0
    streams_opened: int = 0
    streams_closed: int = 0
    disconnects: int = 0
    last_modified_calls: int = 0

    @property
    def open_streams(self) -> int:
        return self.streams_opened - self.streams_closed

    def connect(self, locator: Locator) -> FakeConnection:
        if self.fail_connect:
            raise SourceConnectionError("connection refused", locator)
        self.connections += 1
        return FakeConnection(locator, self)


def build_zip(entries: dict[str, bytes], date_time=(1990, 1, 1, 0, 0, 0)) -> bytes:
    """Build a zip archive in memory with fixed entry timestamps."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in entries.items():
            archive.writestr(zipfile.ZipInfo(name, date_time=date_time), data)
    return buffer.getvalue()


@pytest.fixture
def settings():
    """Settings isolated from the caller's environment."""
    return SourceSettings(
        http_timeout_seconds=None,
        http_follow_redirects=True,
        http_use_caches=True,
        http_user_agent="urlsource",
        reopen_after_close=False,
    )


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def fake_connection(fake_transport):
    """Scripted connection to ``fake://host/t.ftl``, opened outside any handle."""
    return fake_transport.connect(parse_locator("fake://host/t.ftl"))


@pytest.fixture
def opener(settings, fake_transport):
    """Opener with the scripted ``fake:`` scheme registered."""
    opener = Opener(settings)
    opener.register("fake", fake_transport.connect)
    return opener


@pytest.fixture
def template_mtime():
    """Modification time, in seconds, of the template fixtures."""
    return TEMPLATE_MTIME


@pytest.fixture
def make_zip():
    """Build a zip archive in memory: ``make_zip({name: data}, date_time=...)``."""
    return build_zip


@pytest.fixture
def template_file(tmp_path):
    """Local template ``t.ftl`` containing ``hi`` with a fixed mtime."""
    path = tmp_path / "t.ftl"
    path.write_bytes(b"hi")
    os.utime(path, (TEMPLATE_MTIME, TEMPLATE_MTIME))
    return path


@pytest.fixture
def template_jar(tmp_path):
    """Local archive holding ``templates/t.ftl`` with a fixed file mtime."""
    path = tmp_path / "templates.jar"
    path.write_bytes(build_zip({"templates/t.ftl": b"hi from jar"}))
    os.utime(path, (TEMPLATE_MTIME, TEMPLATE_MTIME))
    return path


@pytest.fixture
def http_requests():
    """Requests seen by the ``http_opener`` transport."""
    return []


@pytest.fixture
def http_routes():
    """Path -> callable building the httpx.Response served by ``http_opener``."""
    return {}


@pytest.fixture
def http_opener(settings, http_requests, http_routes):
    """Opener whose HTTP traffic goes to an in-memory MockTransport."""

    def handler(request: httpx.Request) -> httpx.Response:
        http_requests.append(request)
        route = http_routes.get(request.url.path)
        if route is None:
            return httpx.Response(404)
        return route(request)

    return Opener(settings, http_transport=httpx.MockTransport(handler))
