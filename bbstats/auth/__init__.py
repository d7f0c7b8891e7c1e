"""
Authentication Module
=====================
Session establishment for the vendor portal.

Architecture:
    - ``SessionAuthenticator``: five-step OpenID handshake over plain HTTP
    - ``CookieStore``: name + path-prefix view over the cookie jar
    - ``SessionStore``: saves / loads session tokens between runs
    - ``Credentials``: username/password for one login
    - ``SessionTokens``: the four values that make up a session

Usage::

    from bbstats.auth import SessionAuthenticator, SessionStore

    store = SessionStore("bbstats_tokens.json")
    if store.has_valid_session():
        auth.set_login_tokens(store.load())
    else:
        store.save(auth.login(username, password))
"""

from .base_auth import Credentials, SessionTokens, requires_session
from .cookie_store import CookieEntry, CookieStore
from .login_manager import ExtractionContext, LoginStep, SessionAuthenticator
from .session_store import SessionStore

__all__ = [
    "Credentials",
    "SessionTokens",
    "requires_session",
    "CookieEntry",
    "CookieStore",
    "ExtractionContext",
    "LoginStep",
    "SessionAuthenticator",
    "SessionStore",
]
