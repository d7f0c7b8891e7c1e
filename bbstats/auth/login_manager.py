"""
Login Manager
=============
Plain-HTTP reproduction of the portal's OpenID login handshake.

The portal (relying party) delegates authentication to the identity
provider. A browser completes the handshake by following redirects,
auto-submitting hidden forms and running a bit of inline JavaScript. We do
the same with five fixed steps, each a (request, extract) pair:

    1. home            GET  portal home            → JSESSIONID, csrfToken
    2. login_initiator GET  sso/loginInitiator.do  → openid.assoc_handle
    3. auth            POST idp /openid/auth       → login-form fields, bbidcchk
    4. login           POST idp /bbid/login        → signed OpenID response
    5. verify_login    POST sso/verifyLogin.do     → ISV_SESSION_ID, csrfToken

Every request needs values scraped by the steps before it, so the order is
strict. A missing field does not abort the run: it is sent empty and the
final ``ISV_SESSION_ID`` check decides success.

Security:
    - Credentials and token values are never logged.
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import requests

from ..run_config import PortalRunConfig
from ..transport import PortalTransport
from ..utils import extract
from .base_auth import Credentials, SessionTokens
from .cookie_store import CookieEntry, CookieStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Portal paths
# ---------------------------------------------------------------------------

HOME_PATH = "/isvportal/home.do"
LOGIN_INITIATOR_PATH = "/isvportal/sso/loginInitiator.do"
VERIFY_LOGIN_PATH = "/isvportal/sso/verifyLogin.do"
LOGOUT_PATH = "/isvportal/logout.do"
REPORTS_HOME_PATH = "/isvportal/reports/home.do"
IDP_AUTH_PATH = "/openid/auth"
IDP_LOGIN_PATH = "/bbid/login"

PORTAL_COOKIE_PATH = "/isvportal"
IDP_COOKIE_PATH = "/bbid"


# ---------------------------------------------------------------------------
# Field banks
# ---------------------------------------------------------------------------

# Hidden inputs of the identity provider's login form (step 3)
_LOGIN_FORM_FIELDS: List[str] = [
    'formId:logincommandLink',
    'callbackuri',
    'userdata',
    'authtype',
    'openidmode',
    'css',
    'realm',
    'requireConfirmedEmail',
    'email',
    'rpid',
    'sig',
    'azEdit',
    'javax.faces.ViewState',
]

# Signed OpenID response relayed back to the portal (step 4)
_OPENID_RESPONSE_FIELDS: List[str] = [
    'openid.ns',
    'openid.op_endpoint',
    'openid.claimed_id',
    'openid.response_nonce',
    'openid.mode',
    'openid.identity',
    'openid.return_to',
    'openid.assoc_handle',
    'openid.signed',
    'openid.sig',
    'openid.ns.ext1',
    'openid.ext1.auth_policies',
    'openid.ext1.auth_time',
    'openid.ns.ext2',
    'openid.ext2.mode',
    'openid.ext2.type.email',
    'openid.ext2.value.email',
    'openid.ext2.type.firstname',
    'openid.ext2.value.firstname',
    'openid.ext2.type.lastname',
    'openid.ext2.value.lastname',
    'openid.ext2.type.nickname',
    'openid.ext2.value.nickname',
    'openid.ext2.type.confirmedemail',
    'openid.ext2.value.confirmedemail',
]

# Matched only with `value` directly after `name`; the looser pattern picks
# up the wrong input for these.
_ADJACENT_VALUE_FIELDS = {'email', 'openid.assoc_handle'}

# The identity provider sets this cookie from inline script:
#     var name = "bbidcchk";
#     document.cookie = name + " = 1; secure; path=/bbid";
# A pure HTTP client never runs that script, so we scrape the value and
# plant the cookie ourselves. Breaks if the page changes how it does this.
SCRIPT_COOKIE_NAME = "bbidcchk"
_SCRIPT_COOKIE_RE = re.compile(
    r'"bbidcchk";.+?document\.cookie *=.+?= *([^;]*) *;', re.S
)


def _hidden_field(html: str, name: str) -> str:
    """Value of the named input, tolerant of attributes in between."""
    escaped = re.escape(name)
    if name in _ADJACENT_VALUE_FIELDS:
        return extract(html, 'name="' + escaped + '" value="', '"')
    return extract(html, 'name="' + escaped + '".+?value="', '"')


def extract_script_cookie(html: str) -> str:
    """Value the inline script would assign to the ``bbidcchk`` cookie."""
    match = _SCRIPT_COOKIE_RE.search(html or "")
    return match.group(1).strip() if match else ""


def build_auth_request(config: PortalRunConfig, assoc_handle: str) -> Dict[str, str]:
    """OpenID 2.0 checkid_setup request with attribute exchange + PAPE."""
    return {
        "openid.ns": "http://specs.openid.net/auth/2.0",
        "openid.claimed_id": "http://specs.openid.net/auth/2.0/identifier_select",
        "openid.identity": "http://specs.openid.net/auth/2.0/identifier_select",
        "openid.return_to": config.portal_url(VERIFY_LOGIN_PATH),
        "openid.realm": config.portal_origin.rstrip("/"),
        "openid.assoc_handle": assoc_handle,
        "openid.mode": "checkid_setup",
        "openid.ns.ext1": "http://openid.net/srv/ax/1.0",
        "openid.ext1.mode": "fetch_request",
        "openid.ext1.type.email": "http://axschema.org/contact/email",
        "openid.ext1.type.firstname": "http://axschema.org/namePerson/first",
        "openid.ext1.type.lastname": "http://axschema.org/namePerson/last",
        "openid.ext1.type.nickname": "http://axschema.org/namePerson/friendly",
        "openid.ext1.type.confirmedemail": "http://axschema.org/contact/confirmedemail",
        "openid.ext1.required": "email,firstname,lastname,nickname,confirmedemail",
        "openid.ns.ext2": "http://specs.openid.net/extensions/pape/1.0",
        "openid.ext2.preferred_auth_policies": "",
        "openid.ext2.max_auth_age": "60",
    }


# ---------------------------------------------------------------------------
# Pipeline state
# ---------------------------------------------------------------------------

@dataclass
class ExtractionContext:
    """Values scraped during one login attempt.

    Created per ``login()`` call and dropped when it returns.
    """
    credentials: Credentials
    session_id: str = ""
    csrf_token: str = ""
    assoc_handle: str = ""
    login_form: Dict[str, str] = field(default_factory=dict)
    script_cookie: str = ""
    openid_response: Dict[str, str] = field(default_factory=dict)
    verified_csrf_token: str = ""

    def missing(self) -> List[str]:
        """Names of fields that came back empty (for debugging)."""
        names = []
        for attr in ("session_id", "csrf_token", "assoc_handle", "script_cookie"):
            if not getattr(self, attr):
                names.append(attr)
        names += [k for k, v in self.login_form.items() if not v]
        names += [k for k, v in self.openid_response.items() if not v]
        return names


@dataclass
class LoginStep:
    """One request of the handshake and the scraping of its response."""
    name: str
    send: Callable[[ExtractionContext], requests.Response]
    parse: Callable[[requests.Response, ExtractionContext], None]


# ---------------------------------------------------------------------------
# Authenticator
# ---------------------------------------------------------------------------

class SessionAuthenticator:
    """Establishes and holds the portal session.

    Usage::

        auth = SessionAuthenticator(config, transport, cookies)
        tokens = auth.login("dev@example.com", "secret")
        if not tokens:
            ...  # login failed

        # later / another process
        auth.set_login_tokens(saved_tokens)
    """

    def __init__(
        self,
        config: PortalRunConfig,
        transport: PortalTransport,
        cookies: Optional[CookieStore] = None,
    ):
        """
        Args:
            config:    Portal locations and identity.
            transport: HTTP transport whose cookie jar carries the session.
            cookies:   Store over the same jar (built from transport if omitted).
        """
        self.config = config
        self.transport = transport
        self.cookies = cookies or CookieStore(transport.cookies)
        self._tokens = SessionTokens()

    # ── Public API ────────────────────────────────────────────────

    @property
    def tokens(self) -> SessionTokens:
        return self._tokens

    def login(self, username: str, password: str) -> SessionTokens:
        """Run the five-step handshake.

        Returns:
            Complete ``SessionTokens`` on success, empty ones on failure.
            Transport errors propagate.
        """
        ctx = ExtractionContext(credentials=Credentials(username, password))
        logger.info("[AUTH] Starting portal login")

        for step in self.steps():
            logger.debug(f"[AUTH] Step: {step.name}")
            response = step.send(ctx)
            step.parse(response, ctx)

        missing = ctx.missing()
        if missing:
            logger.debug(f"[AUTH] Fields not found during login: {', '.join(missing)}")

        self._tokens = self._collect_tokens(ctx)
        if self._tokens:
            logger.info("[AUTH] Login succeeded")
        else:
            logger.warning("[AUTH] Login failed — no server session was issued")
        return self._tokens

    def logout(self) -> Optional[requests.Response]:
        """End the portal session and forget the local tokens."""
        if not self._tokens:
            logger.warning("[AUTH] logout(): login tokens are empty. Login first!")
            return None

        response = self.transport.get(
            self.config.portal_url(LOGOUT_PATH),
            params={"rand": random.randint(1000, 9999)},
            referer=self.reports_home_referer(),
        )
        self._tokens = SessionTokens()
        self.cookies.clear()
        logger.info("[AUTH] Logged out")
        return response

    def set_login_tokens(self, tokens: SessionTokens) -> None:
        """Reuse a previously obtained session without logging in again.

        Seeds the three session cookies so subsequent requests carry them.
        """
        if isinstance(tokens, dict):
            tokens = SessionTokens.from_dict(tokens)
        if not tokens:
            logger.warning("[AUTH] set_login_tokens(): tokens are incomplete — ignored")
            return

        self._tokens = tokens
        for name, value in tokens.cookies.items():
            self.cookies.set(CookieEntry.lasting(
                name,
                value,
                path=PORTAL_COOKIE_PATH,
                domain=self.config.portal_host,
            ))
        logger.info("[AUTH] Session resumed from saved tokens")

    resume = set_login_tokens

    def get_login_tokens(self) -> SessionTokens:
        return self._tokens

    def reports_home_referer(self) -> str:
        return self.config.portal_url(REPORTS_HOME_PATH) + "?csrfToken=" + self._tokens.csrf_token

    # ── Pipeline ──────────────────────────────────────────────────

    def steps(self) -> List[LoginStep]:
        """The handshake, in the only order that works."""
        return [
            LoginStep("home", self._req_home, self._parse_home),
            LoginStep("login_initiator", self._req_login_initiator, self._parse_login_initiator),
            LoginStep("auth", self._req_auth, self._parse_auth),
            LoginStep("login", self._req_login, self._parse_login),
            LoginStep("verify_login", self._req_verify_login, self._parse_verify_login),
        ]

    # 1. Anonymous landing page
    def _req_home(self, ctx: ExtractionContext) -> requests.Response:
        return self.transport.get(self.config.portal_url(HOME_PATH))

    def _parse_home(self, response: requests.Response, ctx: ExtractionContext) -> None:
        ctx.session_id = self.cookies.value("JSESSIONID", PORTAL_COOKIE_PATH) or ""
        ctx.csrf_token = extract(response.text, r'\?csrfToken=', '">')

    # 2. SSO initiator hands out the OpenID association handle
    def _req_login_initiator(self, ctx: ExtractionContext) -> requests.Response:
        url = self.config.portal_url(LOGIN_INITIATOR_PATH) + ";jsessionid=" + ctx.session_id
        return self.transport.get(url, params={"csrfToken": ctx.csrf_token})

    def _parse_login_initiator(self, response: requests.Response, ctx: ExtractionContext) -> None:
        ctx.assoc_handle = extract(response.text, r'openid\.assoc_handle" value="', '"/>')

    # 3. Identity provider renders its login form
    def _req_auth(self, ctx: ExtractionContext) -> requests.Response:
        return self.transport.post(
            self.config.idp_url(IDP_AUTH_PATH),
            params={"csrfToken": ctx.csrf_token},
            data=build_auth_request(self.config, ctx.assoc_handle),
        )

    def _parse_auth(self, response: requests.Response, ctx: ExtractionContext) -> None:
        html = response.text
        ctx.login_form = {name: _hidden_field(html, name) for name in _LOGIN_FORM_FIELDS}

        ctx.script_cookie = extract_script_cookie(html)
        self.cookies.set(CookieEntry.lasting(
            SCRIPT_COOKIE_NAME,
            ctx.script_cookie,
            path=IDP_COOKIE_PATH,
            domain=self.config.idp_host,
            secure=True,
        ))

    # 4. Submit credentials with the scraped form state
    def _req_login(self, ctx: ExtractionContext) -> requests.Response:
        body = {
            "formId": "formId",
            "formId:email": ctx.credentials.username,
            "formId:password": ctx.credentials.password,
        }
        body.update(ctx.login_form)
        body["conversationPropagation"] = "join"
        return self.transport.post(self.config.idp_url(IDP_LOGIN_PATH), data=body)

    def _parse_login(self, response: requests.Response, ctx: ExtractionContext) -> None:
        html = response.text
        ctx.openid_response = {name: _hidden_field(html, name) for name in _OPENID_RESPONSE_FIELDS}

    # 5. Relay the signed assertion back to the portal
    def _req_verify_login(self, ctx: ExtractionContext) -> requests.Response:
        return self.transport.post(
            self.config.portal_url(VERIFY_LOGIN_PATH),
            data=dict(ctx.openid_response),
        )

    def _parse_verify_login(self, response: requests.Response, ctx: ExtractionContext) -> None:
        ctx.verified_csrf_token = extract(response.text, r'home\.do\?csrfToken=', '"')

    # ── Internal ──────────────────────────────────────────────────

    def _collect_tokens(self, ctx: ExtractionContext) -> SessionTokens:
        """Assemble tokens if the portal issued a server session, else empty."""
        server_session = self.cookies.value("ISV_SESSION_ID", PORTAL_COOKIE_PATH)
        if server_session is None:
            return SessionTokens()

        tokens = SessionTokens(
            session_cookie_id=self.cookies.value("JSESSIONID", PORTAL_COOKIE_PATH) or "",
            session_cookie_data=self.cookies.value("ISV_COOKIE_DATA", PORTAL_COOKIE_PATH) or "",
            server_session_id=server_session,
            csrf_token=ctx.verified_csrf_token,
        )
        if not tokens.is_authenticated:
            logger.warning("[AUTH] Server session issued but other session values are missing")
            return SessionTokens()
        return tokens
