"""
Unified Run Configuration
=========================
Single source of truth for portal locations, HTTP identity, scratch paths
and session persistence.

Values come from, in increasing priority:
    1. ``_DEFAULTS`` below
    2. ``BBSTATS_*`` environment variables (``.env`` is loaded by the CLI)
    3. Command-line flags
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import Dict, Optional

from .transport import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults (the ONLY place these values live)
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "portal_origin": "https://appworld.blackberry.com",
    "idp_origin": "https://blackberryid.blackberry.com",
    "user_agent": DEFAULT_USER_AGENT,
    "scratch_dir": os.path.join(tempfile.gettempdir(), "bbstats"),
    "verify_tls": True,
    "timeout_seconds": None,         # no timeout unless asked for
    "tokens_file": "bbstats_tokens.json",
    "token_max_age_hours": 8.0,
}

_ENV_PREFIX = "BBSTATS"
_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class PortalRunConfig:
    """
    Configuration consumed by ``PortalClient`` and the CLI.

    Populate via:
      - ``PortalRunConfig()``                → all defaults
      - ``PortalRunConfig.from_env()``       → defaults + BBSTATS_* variables
      - ``PortalRunConfig.from_cli_args(ns)`` → env + argparse overrides
    """

    # ---- Remote hosts ----
    portal_origin: str = _DEFAULTS["portal_origin"]
    idp_origin: str = _DEFAULTS["idp_origin"]

    # ---- HTTP identity ----
    user_agent: str = _DEFAULTS["user_agent"]
    verify_tls: bool = _DEFAULTS["verify_tls"]
    timeout_seconds: Optional[float] = _DEFAULTS["timeout_seconds"]

    # ---- Files ----
    scratch_dir: str = _DEFAULTS["scratch_dir"]
    tokens_file: str = _DEFAULTS["tokens_file"]
    token_max_age_hours: float = _DEFAULTS["token_max_age_hours"]

    # ---- Report naming (report type name -> template) ----
    filename_templates: Dict[str, str] = field(default_factory=dict)

    # ---- Credentials ----
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def portal_host(self) -> str:
        return self.portal_origin.split("://", 1)[-1].rstrip("/")

    @property
    def idp_host(self) -> str:
        return self.idp_origin.split("://", 1)[-1].rstrip("/")

    def portal_url(self, path: str) -> str:
        return self.portal_origin.rstrip("/") + path

    def idp_url(self, path: str) -> str:
        return self.idp_origin.rstrip("/") + path

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_env(cls, environ=None) -> "PortalRunConfig":
        """Build config from ``BBSTATS_*`` environment variables."""
        env = os.environ if environ is None else environ

        def _get(key: str, default=None):
            return env.get(f"{_ENV_PREFIX}_{key}", default)

        timeout = _get("TIMEOUT")
        templates = {
            key[len(f"{_ENV_PREFIX}_TEMPLATE_"):].upper(): value
            for key, value in env.items()
            if key.startswith(f"{_ENV_PREFIX}_TEMPLATE_")
        }

        cfg = cls(
            portal_origin=_get("PORTAL_ORIGIN", _DEFAULTS["portal_origin"]),
            idp_origin=_get("IDP_ORIGIN", _DEFAULTS["idp_origin"]),
            user_agent=_get("USER_AGENT", _DEFAULTS["user_agent"]),
            verify_tls=str(_get("VERIFY_TLS", "1")).strip().lower() in _TRUE_VALUES,
            timeout_seconds=float(timeout) if timeout else None,
            scratch_dir=_get("SCRATCH_DIR", _DEFAULTS["scratch_dir"]),
            tokens_file=_get("TOKENS_FILE", _DEFAULTS["tokens_file"]),
            token_max_age_hours=float(_get("TOKEN_MAX_AGE_HOURS", _DEFAULTS["token_max_age_hours"])),
            filename_templates=templates,
            username=_get("USERNAME"),
            password=_get("PASSWORD"),
        )
        return cfg

    @classmethod
    def from_cli_args(cls, args, environ=None) -> "PortalRunConfig":
        """Build config from an argparse Namespace (``__main__.py``).

        Flags that were not given fall back to the environment.
        """
        cfg = cls.from_env(environ)

        overrides = {
            "username": getattr(args, "username", None),
            "password": getattr(args, "password", None),
            "scratch_dir": getattr(args, "scratch_dir", None),
            "tokens_file": getattr(args, "tokens_file", None),
            "timeout_seconds": getattr(args, "timeout", None),
        }
        for key, value in overrides.items():
            if value is not None:
                setattr(cfg, key, value)

        if getattr(args, "insecure", False):
            cfg.verify_tls = False
        return cfg

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self) -> None:
        """Emit a structured summary to the logger (credentials masked)."""
        logger.info("=" * 60)
        logger.info("BBSTATS RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  Portal:           {self.portal_origin}")
        logger.info(f"  Identity:         {self.idp_origin}")
        logger.info(f"  TLS verify:       {self.verify_tls}")
        logger.info(f"  Timeout:          {self.timeout_seconds or 'none'}")
        logger.info(f"  Scratch dir:      {self.scratch_dir}")
        logger.info(f"  Tokens file:      {self.tokens_file}")
        logger.info(f"  Username:         {'set' if self.username else 'not set'}")
        if self.filename_templates:
            logger.info(f"  Name templates:   {len(self.filename_templates)} override(s)")
        if not self.verify_tls:
            logger.warning("[CONFIG] TLS certificate verification is disabled")
        logger.info("=" * 60)
