"""
BlackBerry World Portal Statistics
A scraping client for the vendor portal's report workflow.

CLI Usage:
    python -m bbstats <command> [options]

    Commands:
        login         Log in and save the session tokens
        logout        End the saved session
        apps          List the account's apps
        schedule      Ask the portal to generate a report
        state         Guess whether a report is ready
        reports       List finished reports
        download      Download a finished report as CSV
        delete        Delete one report
        delete-all    Delete every report
"""

from .client import PortalClient
from .run_config import PortalRunConfig
from .transport import PortalTransport
from .report_model import (
    AppDescriptor,
    FileNameTemplates,
    ReportDescriptor,
    ReportRequest,
    ReportState,
    ReportType,
)
from .reports import ReportLifecycleManager, ReportStateClassifier, ListingTextClassifier
from .artifacts import ArtifactPipeline
from .utils import extract
from .auth import SessionAuthenticator, SessionStore, SessionTokens

__all__ = [
    'PortalClient',
    'PortalRunConfig',
    'PortalTransport',
    # Reports
    'AppDescriptor',
    'FileNameTemplates',
    'ReportDescriptor',
    'ReportRequest',
    'ReportState',
    'ReportType',
    'ReportLifecycleManager',
    'ReportStateClassifier',
    'ListingTextClassifier',
    'ArtifactPipeline',
    # Auth
    'SessionAuthenticator',
    'SessionStore',
    'SessionTokens',
    'extract',
]

__version__ = '1.0.0'
