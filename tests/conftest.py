"""Shared fixtures: a scripted stand-in for ``requests.Session``."""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import pytest
import requests
from requests.cookies import RequestsCookieJar, create_cookie

from bbstats import PortalClient, PortalRunConfig, PortalTransport, SessionTokens

PORTAL = "https://appworld.blackberry.com"
PORTAL_HOST = "appworld.blackberry.com"
IDP = "https://blackberryid.blackberry.com"

TOKENS = SessionTokens(
    session_cookie_id="JSESSION-123",
    session_cookie_data="COOKIE-DATA-456",
    server_session_id="ISV-SESSION-789",
    csrf_token="WNVZ-J9M0-V86A-1FLF",
)


class FakeResponse:
    """Minimal ``requests.Response`` stand-in."""

    def __init__(self, text: str = "", status_code: int = 200, content: bytes = None,
                 json_data: Any = None, cookies: List[Tuple[str, str, str]] = None):
        self.text = text
        self.status_code = status_code
        self.content = content if content is not None else text.encode("utf-8")
        self._json = json_data
        # (name, value, path) set on the portal host when the response is served
        self.set_cookies = cookies or []

    def json(self):
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


@dataclass
class RecordedCall:
    method: str
    url: str
    params: Optional[Dict] = None
    data: Optional[Dict] = None
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)


class FakeSession:
    """Plays back queued responses and records every request."""

    def __init__(self, responses: List[FakeResponse] = None):
        self.cookies = RequestsCookieJar()
        self.headers: Dict[str, str] = {}
        self.responses = list(responses or [])
        self.calls: List[RecordedCall] = []
        self.closed = False

    def queue(self, *responses: FakeResponse) -> None:
        self.responses.extend(responses)

    def request(self, method, url, params=None, data=None, headers=None, **kwargs):
        self.calls.append(RecordedCall(
            method=method,
            url=url,
            params=dict(params) if params else None,
            data=dict(data) if data else None,
            headers=dict(headers or {}),
            cookies={c.name: c.value for c in self.cookies},
        ))
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        response = self.responses.pop(0)
        for name, value, path in response.set_cookies:
            self.cookies.set_cookie(create_cookie(name, value, domain=PORTAL_HOST, path=path))
        return response

    def close(self):
        self.closed = True


def make_zip(entries: Dict[str, Union[str, bytes]]) -> bytes:
    """In-memory zip archive with the given members."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as archive:
        for name, body in entries.items():
            archive.writestr(name, body)
    return buf.getvalue()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def config(tmp_path) -> PortalRunConfig:
    return PortalRunConfig(scratch_dir=str(tmp_path / "scratch"))


@pytest.fixture
def client(config, session) -> PortalClient:
    """Unauthenticated client wired to the fake session."""
    return PortalClient(config, transport=PortalTransport(session=session))


@pytest.fixture
def authed_client(client) -> PortalClient:
    """Client seeded with saved tokens."""
    client.set_login_tokens(TOKENS)
    return client
