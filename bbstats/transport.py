"""
Portal Transport
Thin wrapper around a ``requests.Session`` that looks like the browser the
portal was built for.

All requests share one cookie jar (see ``auth.cookie_store``). Non-success
responses raise ``requests.HTTPError``; network failures raise the usual
``requests.RequestException`` subclasses. Nothing here retries.
"""

import logging
from typing import Dict, Mapping, Optional
from urllib.parse import urlparse

import requests

logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 6.1; WOW64; rv:37.0) "
    "Gecko/20100101 Firefox/37.0"
)


class PortalTransport:
    """
    Blocking HTTP client with browser-like default headers.
    """

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        verify_tls: bool = True,
        timeout: Optional[float] = None,
        session: requests.Session = None
    ):
        """
        Initialize the transport.

        Args:
            user_agent: User-Agent sent with every request
            verify_tls: Verify server certificates
            timeout: Per-request timeout in seconds (None waits forever)
            session: Pre-built session (mainly for tests)
        """
        self.user_agent = user_agent
        self.verify_tls = verify_tls
        self.timeout = timeout
        self.session = session if session is not None else self._create_session()

    def _create_session(self) -> requests.Session:
        """Create configured requests session with the portal's expected headers."""
        session = requests.Session()
        session.headers.update({
            'User-Agent': self.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.5',
            'DNT': '1',
            'Connection': 'keep-alive',
            'Pragma': 'no-cache',
            'Cache-Control': 'no-cache',
        })
        return session

    @property
    def cookies(self):
        """The cookie jar shared by every request."""
        return self.session.cookies

    def request(
        self,
        method: str,
        url: str,
        params: Mapping = None,
        data: Mapping = None,
        referer: str = None,
        headers: Dict[str, str] = None
    ) -> requests.Response:
        """
        Send one request and fail loudly on a non-2xx status.

        Args:
            method: HTTP verb
            url: Absolute URL
            params: Query parameters
            data: Form body (sent url-encoded)
            referer: Optional Referer header
            headers: Extra headers

        Returns:
            The response

        Raises:
            requests.HTTPError: For 4xx/5xx responses
            requests.RequestException: For network errors
        """
        extra = dict(headers or {})
        if referer:
            extra['Referer'] = referer

        logger.debug(f"[HTTP] {method} {urlparse(url).netloc}{urlparse(url).path}")
        response = self.session.request(
            method,
            url,
            params=params,
            data=data,
            headers=extra,
            timeout=self.timeout,
            verify=self.verify_tls,
            allow_redirects=True,
        )
        logger.debug(f"[HTTP] -> {response.status_code}")
        response.raise_for_status()
        return response

    def get(self, url: str, **kwargs) -> requests.Response:
        return self.request('GET', url, **kwargs)

    def post(self, url: str, **kwargs) -> requests.Response:
        return self.request('POST', url, **kwargs)

    def close(self) -> None:
        self.session.close()
