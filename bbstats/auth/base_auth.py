"""
Authentication Primitives
=========================
Value types shared by the login pipeline, the report workflow and the
token store.

    - ``Credentials``: username/password, held only for one login
    - ``SessionTokens``: the four values that make up a portal session
    - ``requires_session``: guard for operations that need a session

A ``SessionTokens`` value is either complete (all four fields set) or
empty. Nothing downstream accepts a partially filled one.
"""

from __future__ import annotations

import functools
import logging
import os
from dataclasses import dataclass, fields
from typing import Dict, Mapping, Optional

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Credentials container
# ---------------------------------------------------------------------------

@dataclass
class Credentials:
    """Plain credential container, used for a single login."""
    username: str = ""
    password: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.password)

    @classmethod
    def from_env(cls, prefix: str = "BBSTATS") -> "Credentials":
        """Read ``{PREFIX}_USERNAME`` / ``{PREFIX}_PASSWORD``."""
        return cls(
            username=os.environ.get(f"{prefix}_USERNAME", ""),
            password=os.environ.get(f"{prefix}_PASSWORD", ""),
        )

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='***')"


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------

# Portal names for each token, used for persistence and cookie seeding
_TOKEN_KEYS = {
    "session_cookie_id": "JSESSIONID",
    "session_cookie_data": "ISV_COOKIE_DATA",
    "server_session_id": "ISV_SESSION_ID",
    "csrf_token": "csrfToken",
}


@dataclass(frozen=True)
class SessionTokens:
    """Everything needed to talk to the portal as a logged-in user."""
    session_cookie_id: str = ""
    session_cookie_data: str = ""
    server_session_id: str = ""
    csrf_token: str = ""

    @property
    def is_authenticated(self) -> bool:
        return all(getattr(self, f.name) for f in fields(self))

    @property
    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))

    def __bool__(self) -> bool:
        return self.is_authenticated

    @property
    def cookies(self) -> Dict[str, str]:
        """The three portal cookies (everything except the CSRF token)."""
        return {
            "JSESSIONID": self.session_cookie_id,
            "ISV_COOKIE_DATA": self.session_cookie_data,
            "ISV_SESSION_ID": self.server_session_id,
        }

    def to_dict(self) -> Dict[str, str]:
        """Serialise using the portal's own key names."""
        if not self.is_authenticated:
            return {}
        return {portal: getattr(self, attr) for attr, portal in _TOKEN_KEYS.items()}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, str]]) -> "SessionTokens":
        """Build tokens from a mapping keyed by the portal names.

        Anything short of all four values yields the empty token set.
        """
        if not data:
            return cls()
        values = {attr: str(data.get(portal) or "") for attr, portal in _TOKEN_KEYS.items()}
        tokens = cls(**values)
        if not tokens.is_authenticated:
            logger.warning("[AUTH] Incomplete session tokens supplied — ignoring them")
            return cls()
        return tokens

    def __repr__(self) -> str:
        state = "authenticated" if self.is_authenticated else "empty"
        return f"SessionTokens(<{state}>)"


# ---------------------------------------------------------------------------
# Precondition guard
# ---------------------------------------------------------------------------

def requires_session(func):
    """Skip the call (warning, ``None``) unless ``self.tokens`` is complete.

    The decorated method's owner must expose a ``tokens`` attribute or
    property returning ``SessionTokens``.
    """
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if not self.tokens:
            logger.warning(
                f"[AUTH] {func.__name__}(): login tokens are empty. Login first!"
            )
            return None
        return func(self, *args, **kwargs)
    return wrapper
