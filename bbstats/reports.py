"""
Report Lifecycle
================
Schedule, list, poll and delete reports on the portal.

The portal has no job-status endpoint. Scheduling returns nothing usable,
and the finished-reports listing only shows reports that are done. To
answer "is my report ready?" we predict the archive name and look for it
in the listing page:

    - inside a download link   → READY
    - anywhere else on the page → PROCESSING
    - nowhere                   → UNKNOWN

That guess lives behind ``ReportStateClassifier`` so it can be swapped
for something authoritative without touching callers.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional, Union
from urllib.parse import parse_qs, urlencode, urlparse

import requests
from bs4 import BeautifulSoup

from .auth.base_auth import SessionTokens, requires_session
from .auth.login_manager import SessionAuthenticator
from .report_model import (
    AppDescriptor,
    FileNameTemplates,
    ReportDescriptor,
    ReportRequest,
    ReportState,
    ReportType,
)
from .run_config import PortalRunConfig
from .utils import DateInput, format_iso_date

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Portal paths
# ---------------------------------------------------------------------------

SCHEDULE_PATH = "/isvportal/reports/scheduleData.do"
SCHEDULE_PAGE_PATH = "/isvportal/reports/scheduleDataPage.do"
LIST_PATH = "/isvportal/reports/fetchDownloadListAction.do"
DOWNLOAD_PATH = "/isvportal/reports/downloadData.do"
DELETE_PATH = "/isvportal/reports/deleteData.do"
DELETE_ALL_PATH = "/isvportal/reports/deleteAllData.do"
PRODUCTS_PATH = "/isvportal/reports/fetchProductsAction.do"

# <a href="/isvportal/reports/downloadData.do?csrfToken=...&fileName=X.zip" class="data-dump data-ready">X.zip</a>
_DOWNLOAD_HREF_RE = re.compile(re.escape(DOWNLOAD_PATH) + r".*?[?&]fileName=")


def _file_name_from_href(href: str) -> str:
    values = parse_qs(urlparse(href).query, keep_blank_values=True).get("fileName")
    return values[0] if values else ""


def download_anchors(html: str) -> List[str]:
    """Hrefs of every report download link on a listing page, in page order."""
    soup = BeautifulSoup(html or "", "lxml")
    return [a["href"] for a in soup.find_all("a", href=_DOWNLOAD_HREF_RE)]


# ---------------------------------------------------------------------------
# State inference
# ---------------------------------------------------------------------------

class ReportStateClassifier(ABC):
    """Decides a report's state from the finished-reports listing."""

    @abstractmethod
    def classify(self, listing_html: str, file_name: str) -> ReportState:
        """Return the state of ``file_name`` given the listing page body.

        Must not raise for unexpected markup; fall back to UNKNOWN.
        """
        ...


class ListingTextClassifier(ReportStateClassifier):
    """Text-search heuristic over the listing page.

    Not confirmed by the portal: a report that is neither linked nor
    mentioned may still be queued.
    """

    def classify(self, listing_html: str, file_name: str) -> ReportState:
        if not file_name:
            return ReportState.UNKNOWN

        for href in download_anchors(listing_html):
            if _file_name_from_href(href) == file_name:
                return ReportState.READY

        stem = file_name[:-4] if file_name.lower().endswith(".zip") else file_name
        if stem.lower() in (listing_html or "").lower():
            return ReportState.PROCESSING
        return ReportState.UNKNOWN


# ---------------------------------------------------------------------------
# Lifecycle manager
# ---------------------------------------------------------------------------

class ReportLifecycleManager:
    """
    Report operations for an authenticated portal session.

    Every public operation needs complete session tokens; without them it
    logs a warning, sends nothing and returns None.
    """

    def __init__(
        self,
        config: PortalRunConfig,
        authenticator: SessionAuthenticator,
        classifier: ReportStateClassifier = None,
        templates: FileNameTemplates = None,
    ):
        """
        Args:
            config: Portal locations
            authenticator: Holder of the session tokens and transport
            classifier: State inference strategy (text heuristic by default)
            templates: File-name templates (config overrides by default)
        """
        self.config = config
        self.authenticator = authenticator
        self.transport = authenticator.transport
        self.classifier = classifier or ListingTextClassifier()
        self.templates = templates or FileNameTemplates(dict(config.filename_templates))

    @property
    def tokens(self) -> SessionTokens:
        return self.authenticator.tokens

    # ── Scheduling ────────────────────────────────────────────────

    @requires_session
    def schedule_report(
        self,
        app_id: Union[int, str],
        report_type: Union[ReportType, int, str],
        start: DateInput = -14,
        end: DateInput = 0,
    ) -> requests.Response:
        """
        Ask the portal to generate a report.

        The portal returns no job id; poll with ``get_report_state``.

        Args:
            app_id: Numeric app id or ``"all"``
            report_type: Report kind
            start: Start date (offset in days or ``YYYY-MM-DD``)
            end: End date (offset in days or ``YYYY-MM-DD``)

        Returns:
            The raw portal response (acknowledgement only)
        """
        request = ReportRequest.build(app_id, report_type, start, end)
        csrf = self.tokens.csrf_token

        response = self.transport.post(
            self.config.portal_url(SCHEDULE_PATH),
            referer=self._schedule_page_referer(),
            data={
                "csrfToken": csrf,
                "selectedReportType": int(request.report_type),
                "selectedSubType": 0,
                "selectedContent": request.selected_content,
                "selectedVG": "",
                "selectedPeriod": 1,
                "selectedSortOption": 0,
                "startDate": format_iso_date(request.start_date),
                "endDate": format_iso_date(request.end_date),
            },
        )
        logger.info(
            f"[REPORTS] Scheduled {request.report_type.name} for app {request.app_id} "
            f"({format_iso_date(request.start_date)} to {format_iso_date(request.end_date)})"
        )
        return response

    # ── Listing ───────────────────────────────────────────────────

    @requires_session
    def list_reports(self) -> List[ReportDescriptor]:
        """
        Finished reports currently stored on the portal, in page order.

        Reports still being generated do not appear here.
        """
        html = self._fetch_listing()
        reports = []
        for href in download_anchors(html):
            file_name = _file_name_from_href(href)
            reports.append(ReportDescriptor(
                file_name=file_name,
                download_link=self.config.portal_url(href) if href.startswith("/") else href,
                delete_link=self.delete_link(file_name),
                state=ReportState.READY,
            ))
        logger.info(f"[REPORTS] {len(reports)} finished report(s) listed")
        return reports

    @requires_session
    def get_report_state(
        self,
        app: Union[AppDescriptor, str],
        report_type: Union[ReportType, int, str],
        start: DateInput = -14,
        end: DateInput = 0,
        today: Optional[date] = None,
    ) -> Optional[ReportDescriptor]:
        """
        Predict a report's archive name and infer its state from the listing.

        Args:
            app: ``AppDescriptor`` from ``list_apps``, a link name, or ``"all"``
            report_type: Report kind
            start: Start date (offset in days or ``YYYY-MM-DD``)
            end: End date (offset in days or ``YYYY-MM-DD``)
            today: Reference date for offsets

        Returns:
            A descriptor whose ``state`` is the best available guess
        """
        if isinstance(app, AppDescriptor) and not app.link_name:
            logger.warning("[REPORTS] get_report_state(): app has no link name")
            return None
        if isinstance(app, str) and not app.strip():
            logger.warning("[REPORTS] get_report_state(): app is empty")
            return None

        try:
            file_name = self.templates.file_name(app, report_type, start, end, today)
        except (KeyError, ValueError) as exc:
            logger.warning(f"[REPORTS] get_report_state(): invalid report type or date ({exc})")
            return None

        html = self._fetch_listing()
        state = self.classifier.classify(html, file_name)
        logger.info(f"[REPORTS] {file_name}: {state.name}")

        return ReportDescriptor(
            file_name=file_name,
            download_link=self.download_link(file_name),
            delete_link=self.delete_link(file_name),
            state=state,
        )

    # ── Deletion ──────────────────────────────────────────────────

    @requires_session
    def delete_report(self, report: ReportDescriptor) -> requests.Response:
        """Remove one report from the portal."""
        response = self.transport.get(
            report.delete_link,
            referer=self.authenticator.reports_home_referer(),
        )
        logger.info(f"[REPORTS] Deleted {report.file_name}")
        return response

    @requires_session
    def delete_all_reports(self) -> requests.Response:
        """Remove every stored report from the portal."""
        response = self.transport.get(
            self.config.portal_url(DELETE_ALL_PATH),
            params={"csrfToken": self.tokens.csrf_token},
            referer=self.authenticator.reports_home_referer(),
        )
        logger.info("[REPORTS] Deleted all reports")
        return response

    # ── Apps ──────────────────────────────────────────────────────

    @requires_session
    def list_apps(self) -> List[AppDescriptor]:
        """
        Apps of the vendor account.

        The link names are guessed from the app names and may not match the
        portal's for every app; prefer the numeric id where possible.
        """
        response = self.transport.post(
            self.config.portal_url(PRODUCTS_PATH),
            referer=self._schedule_page_referer(),
            data={
                "csrfToken": self.tokens.csrf_token,
                "selectedReportType": 1,
                "selectedSubType": 0,
                "selectedContent": 0,
                "selectedVG": "",
                "selectedPeriod": 1,
                "startDate": "",
                "endDate": "",
            },
        )
        contents = list(response.json().get("contents") or [])
        # first entry is the synthetic "All Apps"
        apps = [AppDescriptor.from_product(product) for product in contents[1:]]
        logger.info(f"[REPORTS] {len(apps)} app(s) found")
        return apps

    # ── Links ─────────────────────────────────────────────────────

    def download_link(self, file_name: str) -> str:
        query = urlencode({"csrfToken": self.tokens.csrf_token, "fileName": file_name})
        return self.config.portal_url(DOWNLOAD_PATH) + "?" + query

    def delete_link(self, file_name: str) -> str:
        query = urlencode({"csrfToken": self.tokens.csrf_token, "fileName": file_name})
        return self.config.portal_url(DELETE_PATH) + "?" + query

    # ── Internal ──────────────────────────────────────────────────

    def _fetch_listing(self) -> str:
        response = self.transport.post(
            self.config.portal_url(LIST_PATH),
            referer=self.authenticator.reports_home_referer(),
            data={"csrfToken": self.tokens.csrf_token},
        )
        return response.text

    def _schedule_page_referer(self) -> str:
        return self.config.portal_url(SCHEDULE_PAGE_PATH) + "?csrfToken=" + self.tokens.csrf_token
