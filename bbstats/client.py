"""
Portal Client
Single entry point for the portal: login, report workflow and downloads.

Usage::

    from bbstats import PortalClient, ReportType, ReportState

    client = PortalClient(scratch_dir="/tmp/bbstats")
    if client.login("dev@example.com", "secret"):
        client.schedule_report("all", ReportType.DOWNLOADS_SUMMARY, -30, -1)
        report = client.get_report_state("all", ReportType.DOWNLOADS_SUMMARY, -30, -1)
        if report.state == ReportState.READY:
            rows = client.download_report(report, return_rows=True)
"""

import logging
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Union

import requests

from .artifacts import ArtifactPipeline
from .auth.base_auth import SessionTokens
from .auth.cookie_store import CookieStore
from .auth.login_manager import SessionAuthenticator
from .report_model import AppDescriptor, ReportDescriptor, ReportType
from .reports import ReportLifecycleManager, ReportStateClassifier
from .run_config import PortalRunConfig
from .transport import PortalTransport
from .utils import DateInput

logger = logging.getLogger(__name__)


class PortalClient:
    """
    Wires transport, cookies, login and report operations together.
    """

    def __init__(
        self,
        config: PortalRunConfig = None,
        scratch_dir: str = None,
        transport: PortalTransport = None,
        classifier: ReportStateClassifier = None
    ):
        """
        Initialize the client.

        Args:
            config: Run configuration (defaults if omitted)
            scratch_dir: Shortcut to override ``config.scratch_dir``
            transport: Pre-built transport (mainly for tests)
            classifier: Report state inference strategy
        """
        self.config = config or PortalRunConfig()
        if scratch_dir:
            self.config.scratch_dir = scratch_dir

        self.transport = transport or PortalTransport(
            user_agent=self.config.user_agent,
            verify_tls=self.config.verify_tls,
            timeout=self.config.timeout_seconds,
        )
        self.cookies = CookieStore(self.transport.cookies)
        self.auth = SessionAuthenticator(self.config, self.transport, self.cookies)
        self.reports = ReportLifecycleManager(self.config, self.auth, classifier=classifier)
        self.artifacts = ArtifactPipeline(self.config, self.auth)

    # ── Session ───────────────────────────────────────────────────

    def login(self, username: str, password: str) -> SessionTokens:
        """Log in; returns empty tokens if the portal did not accept it."""
        return self.auth.login(username, password)

    def logout(self) -> Optional[requests.Response]:
        return self.auth.logout()

    def set_login_tokens(self, tokens: Union[SessionTokens, Dict[str, str]]) -> None:
        """Reuse tokens from an earlier ``login`` (e.g. loaded from disk)."""
        self.auth.set_login_tokens(tokens)

    def get_login_tokens(self) -> SessionTokens:
        return self.auth.get_login_tokens()

    @property
    def is_authenticated(self) -> bool:
        return bool(self.auth.tokens)

    # ── Reports ───────────────────────────────────────────────────

    def schedule_report(
        self,
        app_id: Union[int, str],
        report_type: Union[ReportType, int, str],
        start: DateInput = -14,
        end: DateInput = 0
    ) -> Optional[requests.Response]:
        return self.reports.schedule_report(app_id, report_type, start, end)

    def get_reports(self) -> Optional[List[ReportDescriptor]]:
        return self.reports.list_reports()

    def get_report_state(
        self,
        app: Union[AppDescriptor, str],
        report_type: Union[ReportType, int, str],
        start: DateInput = -14,
        end: DateInput = 0,
        today: date = None
    ) -> Optional[ReportDescriptor]:
        return self.reports.get_report_state(app, report_type, start, end, today)

    def download_report(
        self,
        report: ReportDescriptor,
        destination: Union[str, Path] = None,
        return_rows: bool = False
    ) -> Optional[List[Dict[str, str]]]:
        return self.artifacts.download_report(report, destination, return_rows)

    def delete_report(self, report: ReportDescriptor) -> Optional[requests.Response]:
        return self.reports.delete_report(report)

    def delete_all_reports(self) -> Optional[requests.Response]:
        return self.reports.delete_all_reports()

    def get_apps(self) -> Optional[List[AppDescriptor]]:
        return self.reports.list_apps()

    def close(self) -> None:
        self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
