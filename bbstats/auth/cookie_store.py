"""
Cookie Store
============
Keyed view over the cookie jar shared with the HTTP session.

The portal identifies a session purely through cookies, and one of them
(``bbidcchk``) is normally set by JavaScript in the browser. The store lets
the login pipeline read cookies the server issued and plant the ones a
browser would have created itself.

Lookups match on exact name plus a path *prefix* and return the first hit.
Expired cookies are not swept; they stay queryable until overwritten.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Iterator, Optional

from requests.cookies import RequestsCookieJar, create_cookie

logger = logging.getLogger(__name__)

# Cookies planted by the client live for one day
DEFAULT_COOKIE_LIFETIME = 60 * 60 * 24


@dataclass
class CookieEntry:
    """A single cookie as the pipeline sees it."""
    name: str
    value: str
    path: str = "/"
    domain: str = ""
    expires: Optional[int] = None
    secure: bool = False

    @classmethod
    def lasting(cls, name: str, value: str, *, path: str, domain: str,
                secure: bool = False,
                lifetime: int = DEFAULT_COOKIE_LIFETIME) -> "CookieEntry":
        """Build an entry that expires ``lifetime`` seconds from now."""
        return cls(
            name=name,
            value=value,
            path=path,
            domain=domain,
            expires=int(time.time()) + lifetime,
            secure=secure,
        )

    def to_dict(self) -> dict:
        return asdict(self)


class CookieStore:
    """
    Name + path-prefix keyed access to a ``RequestsCookieJar``.
    """

    def __init__(self, jar: RequestsCookieJar = None):
        """
        Args:
            jar: The jar used by the HTTP session (a fresh one if omitted)
        """
        self.jar = jar if jar is not None else RequestsCookieJar()

    def set(self, entry: CookieEntry) -> None:
        """Insert or overwrite a cookie."""
        cookie = create_cookie(
            entry.name,
            entry.value,
            domain=entry.domain,
            path=entry.path,
            secure=entry.secure,
            expires=entry.expires,
        )
        self.jar.set_cookie(cookie)
        logger.debug(f"[COOKIES] Set {entry.name} (path={entry.path}, domain={entry.domain})")

    def get(self, name: str, path_prefix: str = "/", attribute: str = None) -> Any:
        """
        Find the first cookie called ``name`` whose path starts with ``path_prefix``.

        Args:
            name: Exact cookie name
            path_prefix: Required start of the cookie path
            attribute: Optional ``CookieEntry`` field to return instead of the entry

        Returns:
            The ``CookieEntry``, the requested attribute, or None if not found
        """
        for entry in self:
            if entry.name == name and entry.path.startswith(path_prefix):
                if attribute is None:
                    return entry
                return getattr(entry, attribute)
        return None

    def value(self, name: str, path_prefix: str = "/") -> Optional[str]:
        """Shorthand for ``get(name, path_prefix, "value")``."""
        return self.get(name, path_prefix, "value")

    def clear(self) -> None:
        self.jar.clear()

    def __iter__(self) -> Iterator[CookieEntry]:
        for cookie in self.jar:
            yield CookieEntry(
                name=cookie.name,
                value=cookie.value,
                path=cookie.path,
                domain=cookie.domain,
                expires=cookie.expires,
                secure=bool(cookie.secure),
            )

    def __len__(self) -> int:
        return len(self.jar)
