"""
Report Data Model
=================
Value types for the report workflow.

Reports live entirely on the portal; nothing here is persisted. A
``ReportDescriptor`` is either read from the finished-reports listing
(state READY) or predicted from the expected file name before the portal
has finished generating it (state UNKNOWN / PROCESSING).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from enum import IntEnum
from typing import Dict, Mapping, Optional, Union

from .utils import DateInput, derive_link_name, format_report_date, normalize_date

logger = logging.getLogger(__name__)


def _squash(name: str) -> str:
    return re.sub(r'[-_\s]', '', name).upper()


class ReportType(IntEnum):
    """Report kinds, valued as the portal's ``selectedReportType``."""
    DOWNLOADS = 1
    DOWNLOADS_SUMMARY = 2
    PURCHASES = 3
    SUBSCRIPTIONS = 4
    REVIEWS = 5

    @classmethod
    def parse(cls, value: Union[str, int, "ReportType"]) -> "ReportType":
        """Accept a member, its number, or its name.

        Names match ignoring case, '-', '_' and spaces, so "DownloadsSummary",
        "downloads-summary" and "DOWNLOADS_SUMMARY" are the same type.

        Raises:
            ValueError: Unknown number
            KeyError: Unknown name
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, int) or str(value).strip().isdigit():
            return cls(int(value))
        wanted = _squash(str(value))
        for member in cls:
            if _squash(member.name) == wanted:
                return member
        raise KeyError(value)


class ReportState(IntEnum):
    """Best guess at where a report is in its generation."""
    UNKNOWN = 0
    PROCESSING = 1
    READY = 2


# Example: Super_Awesome_App_DownloadSummary_11_May_2015_to_10_Jun_2015_by_date.zip
DEFAULT_FILENAME_TEMPLATES: Dict[ReportType, str] = {
    ReportType.DOWNLOADS: "%s_Downloads_for_%s_to_%s_by_date.zip",
    ReportType.DOWNLOADS_SUMMARY: "%s_DownloadSummary_%s_to_%s_by_date.zip",
    ReportType.PURCHASES: "%s_Purchase_for_%s_to_%s_by_date.zip",
    # Unverified: no live Subscriptions report has been seen yet
    ReportType.SUBSCRIPTIONS: "%s_Subscriptions_for_%s_to_%s_by_day.zip",
    ReportType.REVIEWS: "%s_Reviews_%s_to_%s_by_date.zip",
}

ALL_APPS = "all"


@dataclass(frozen=True)
class AppDescriptor:
    """An app as listed by the portal's products endpoint."""
    name: str
    link_name: str
    app_id: Union[int, str]

    @classmethod
    def from_product(cls, product: Mapping) -> "AppDescriptor":
        name = product.get("name", "")
        return cls(name=name, link_name=derive_link_name(name), app_id=product.get("id"))

    @classmethod
    def all_apps(cls) -> "AppDescriptor":
        """Stand-in used for "All Applications" reports."""
        return cls(name="All Applications", link_name="All_Applications", app_id=ALL_APPS)

    @property
    def is_all(self) -> bool:
        return self.app_id == ALL_APPS

    def to_dict(self) -> dict:
        return {"name": self.name, "linkName": self.link_name, "appId": self.app_id}


@dataclass(frozen=True)
class ReportRequest:
    """What to generate: one report type for one app (or all) over a date range."""
    app_id: Union[int, str]
    report_type: ReportType
    start_date: date
    end_date: date

    @classmethod
    def build(
        cls,
        app_id: Union[int, str],
        report_type: Union[ReportType, int, str],
        start: DateInput = -14,
        end: DateInput = 0,
        today: Optional[date] = None,
    ) -> "ReportRequest":
        """Normalise offsets / strings into calendar dates."""
        if isinstance(app_id, str) and app_id.strip().lower() == ALL_APPS:
            app_id = ALL_APPS
        return cls(
            app_id=app_id,
            report_type=ReportType.parse(report_type),
            start_date=normalize_date(start, today),
            end_date=normalize_date(end, today),
        )

    @property
    def selected_content(self) -> str:
        """Value of the schedule form's ``selectedContent`` field."""
        return "" if self.app_id == ALL_APPS else str(self.app_id)


@dataclass
class ReportDescriptor:
    """Name, links and (inferred) state of one report archive."""
    file_name: str
    download_link: str
    delete_link: str
    state: ReportState = ReportState.UNKNOWN

    @property
    def stem(self) -> str:
        """File name without the ``.zip`` extension."""
        if self.file_name.lower().endswith(".zip"):
            return self.file_name[:-4]
        return self.file_name

    @property
    def is_ready(self) -> bool:
        return self.state == ReportState.READY

    def to_dict(self) -> dict:
        return {
            "fileName": self.file_name,
            "downloadLink": self.download_link,
            "deleteLink": self.delete_link,
            "state": int(self.state),
        }


@dataclass
class FileNameTemplates:
    """Per-report-type file-name templates with optional overrides.

    Overrides are keyed by ``ReportType`` member or its name. Keys that name
    no report type are logged and dropped when the templates are built.
    """
    overrides: Dict[Union[str, ReportType], str] = field(default_factory=dict)

    def __post_init__(self):
        resolved: Dict[ReportType, str] = {}
        for key, template in self.overrides.items():
            try:
                resolved[ReportType.parse(key)] = template
            except (KeyError, ValueError):
                logger.warning(f"[CONFIG] Ignoring file-name template for unknown report type '{key}'")
        self.overrides = resolved

    def template_for(self, report_type: ReportType) -> str:
        return self.overrides.get(report_type, DEFAULT_FILENAME_TEMPLATES[report_type])

    def file_name(
        self,
        app: Union[AppDescriptor, str],
        report_type: Union[ReportType, int, str],
        start: DateInput = -14,
        end: DateInput = 0,
        today: Optional[date] = None,
    ) -> str:
        """
        Predict the archive name the portal will give a report.

        Args:
            app: ``AppDescriptor``, its link name, or ``"all"``
            report_type: Report kind
            start: Start date (offset in days or calendar date)
            end: End date (offset in days or calendar date)
            today: Reference date for offsets

        Returns:
            e.g. ``Super_Awesome_App_DownloadSummary_11_May_2015_to_10_Jun_2015_by_date.zip``
        """
        if isinstance(app, str):
            link_name = AppDescriptor.all_apps().link_name if app.lower() == ALL_APPS else app
        else:
            link_name = app.link_name

        template = self.template_for(ReportType.parse(report_type))
        return template % (
            link_name,
            format_report_date(normalize_date(start, today)),
            format_report_date(normalize_date(end, today)),
        )
