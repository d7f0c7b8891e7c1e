"""
Session Store
=============
Persists portal session tokens across runs.

Responsibilities:
    1. Save ``SessionTokens`` after a successful login
    2. Load saved tokens so a new process can skip the handshake
    3. Validate freshness (file age, completeness)

The file holds the four tokens under the portal's own key names::

    {"JSESSIONID": "...", "ISV_COOKIE_DATA": "...",
     "ISV_SESSION_ID": "...", "csrfToken": "..."}

Security:
    - The file is as good as a password while the session lives.
      Keep it out of version control.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path

from .base_auth import SessionTokens

logger = logging.getLogger(__name__)


_DEFAULT_STATE_PATH = "bbstats_tokens.json"
_MAX_SESSION_AGE_HOURS = 8


class SessionStore:
    """Reads and writes the saved-token file."""

    def __init__(
        self,
        state_path: str = _DEFAULT_STATE_PATH,
        *,
        max_age_hours: float = _MAX_SESSION_AGE_HOURS,
        force_login: bool = False,
    ):
        """
        Args:
            state_path:    File path for the token JSON.
            max_age_hours: Maximum age (in hours) of a saved session.
            force_login:   If True, never report a saved session as valid.
        """
        self.state_path = Path(state_path)
        self.max_age_hours = max_age_hours
        self.force_login = force_login

    # ── Public API ────────────────────────────────────────────────

    def has_valid_session(self) -> bool:
        """Check if a saved token file exists and is still usable.

        Validates:
            - File exists and is readable JSON
            - Contains all four tokens
            - File is not older than ``max_age_hours``
        """
        if self.force_login:
            logger.info("[SESSION] force_login=True — ignoring saved session")
            return False

        if not self.state_path.exists():
            logger.info("[SESSION] No saved session file found")
            return False

        if not self._read():
            return False

        age_hours = (time.time() - self.state_path.stat().st_mtime) / 3600
        if age_hours > self.max_age_hours:
            logger.info(
                f"[SESSION] Session is {age_hours:.1f}h old — expired "
                f"(max {self.max_age_hours}h)"
            )
            return False

        logger.info(f"[SESSION] Valid saved session, age {age_hours:.1f}h")
        return True

    def load(self) -> SessionTokens:
        """Saved tokens, or empty tokens if there are none."""
        if not self.state_path.exists():
            return SessionTokens()
        return self._read()

    def save(self, tokens: SessionTokens) -> bool:
        """Write tokens to disk. Empty tokens are not saved."""
        if not tokens:
            logger.warning("[SESSION] Refusing to save empty session tokens")
            return False

        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        self.state_path.write_text(json.dumps(tokens.to_dict(), indent=2), encoding="utf-8")
        logger.info(f"[SESSION] Session saved to {self.state_path}")
        return True

    def clear(self) -> None:
        """Forget the saved session."""
        if self.state_path.exists():
            self.state_path.unlink()
            logger.info(f"[SESSION] Removed {self.state_path}")

    # ── Internal ──────────────────────────────────────────────────

    def _read(self) -> SessionTokens:
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning(f"[SESSION] Corrupt session file: {exc}")
            return SessionTokens()

        if not isinstance(data, dict):
            logger.warning("[SESSION] Session file does not hold an object — ignoring")
            return SessionTokens()

        tokens = SessionTokens.from_dict(data)
        if not tokens:
            logger.info("[SESSION] Session file is incomplete — stale")
        return tokens
