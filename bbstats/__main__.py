#!/usr/bin/env python3
"""
Command-line interface for the portal client
=============================================
Every command except ``login`` reuses the saved session when it is still
fresh, and logs in (saving the new tokens) otherwise.

All configuration flows through ``PortalRunConfig``: defaults, then
``BBSTATS_*`` environment variables (``.env`` is loaded first), then flags.

Run with: python -m bbstats <command>
"""

import argparse
import getpass
import json
import logging
import sys
from pathlib import Path

import requests
from dotenv import load_dotenv

from .auth.base_auth import Credentials
from .auth.session_store import SessionStore
from .client import PortalClient
from .report_model import ALL_APPS, AppDescriptor, ReportDescriptor, ReportType
from .run_config import PortalRunConfig

logger = logging.getLogger(__name__)

_LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------

def _resolve_credentials(cfg: PortalRunConfig, interactive: bool = True) -> Credentials:
    """Flags/env first, then prompt for whatever is missing."""
    creds = Credentials(username=cfg.username or "", password=cfg.password or "")
    if creds.is_complete or not interactive:
        return creds

    print(f"\n{'=' * 55}")
    print("  Portal Authentication Required")
    print(f"{'=' * 55}")
    if not creds.username:
        creds.username = input("  Username / Email: ").strip()
    if not creds.password:
        creds.password = getpass.getpass("  Password: ")
    print(f"{'=' * 55}\n")
    return creds


def _open_session(client: PortalClient, store: SessionStore, cfg: PortalRunConfig,
                  interactive: bool = True) -> bool:
    """Resume the saved session or log in fresh. Returns True if authenticated."""
    if store.has_valid_session():
        client.set_login_tokens(store.load())
        return client.is_authenticated

    creds = _resolve_credentials(cfg, interactive=interactive)
    if not creds.is_complete:
        logger.error("[AUTH] Credentials incomplete — set BBSTATS_USERNAME / BBSTATS_PASSWORD")
        return False

    tokens = client.login(creds.username, creds.password)
    if not tokens:
        return False
    store.save(tokens)
    return True


def _resolve_app(client: PortalClient, value: str):
    """"all", or the app whose id or link name matches ``value``."""
    if value.strip().lower() == ALL_APPS:
        return ALL_APPS
    for app in client.get_apps() or []:
        if str(app.app_id) == value or app.link_name == value:
            return app
    logger.warning(f"[CLI] No app matches '{value}' — using it as given")
    return value


def _descriptor_for(client: PortalClient, file_name: str) -> ReportDescriptor:
    """Finished report by name, or a descriptor built from the name alone."""
    for report in client.get_reports() or []:
        if report.file_name == file_name:
            return report
    return ReportDescriptor(
        file_name=file_name,
        download_link=client.reports.download_link(file_name),
        delete_link=client.reports.delete_link(file_name),
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_login(client, store, cfg, args) -> int:
    store.force_login = True
    if not _open_session(client, store, cfg, interactive=not args.no_prompt):
        print("Login failed.")
        return 1
    print(f"Logged in. Session saved to {store.state_path}")
    return 0


def cmd_logout(client, store, cfg, args) -> int:
    tokens = store.load()
    if not tokens:
        print("No saved session.")
        return 0
    client.set_login_tokens(tokens)
    client.logout()
    store.clear()
    print("Logged out.")
    return 0


def cmd_apps(client, store, cfg, args) -> int:
    apps = client.get_apps() or []
    if args.json:
        print(json.dumps([app.to_dict() for app in apps], indent=2))
        return 0
    for app in apps:
        print(f"  {app.app_id:>12}  {app.link_name:<45} {app.name}")
    print(f"\n{len(apps)} app(s)")
    return 0


def cmd_schedule(client, store, cfg, args) -> int:
    app = _resolve_app(client, args.app)
    app_id = app.app_id if isinstance(app, AppDescriptor) else app
    client.schedule_report(app_id, ReportType.parse(args.type), args.start, args.end)
    print("Report scheduled. Poll with the 'state' command.")
    return 0


def cmd_state(client, store, cfg, args) -> int:
    app = _resolve_app(client, args.app)
    report = client.get_report_state(app, ReportType.parse(args.type), args.start, args.end)
    if report is None:
        return 1
    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(f"  {report.file_name}: {report.state.name}")
    return 0


def cmd_reports(client, store, cfg, args) -> int:
    reports = client.get_reports() or []
    if args.json:
        print(json.dumps([r.to_dict() for r in reports], indent=2))
        return 0
    for report in reports:
        print(f"  {report.file_name}")
    print(f"\n{len(reports)} finished report(s)")
    return 0


def _mtime(path: Path):
    return path.stat().st_mtime_ns if path.exists() else None


def cmd_download(client, store, cfg, args) -> int:
    report = _descriptor_for(client, args.file_name)
    destination = Path(args.output or Path.cwd() / f"{report.stem}.csv")
    previous = _mtime(destination)
    rows = client.download_report(report, destination, return_rows=args.rows)
    if _mtime(destination) in (None, previous):
        print(f"  Download of {report.file_name} produced no CSV; report left on the portal")
        return 1
    print(f"  Saved: {destination}")
    if rows is not None:
        print(f"  Rows:  {len(rows)}")
    if args.delete:
        client.delete_report(report)
        print(f"  Deleted {report.file_name} from the portal")
    return 0


def cmd_delete(client, store, cfg, args) -> int:
    client.delete_report(_descriptor_for(client, args.file_name))
    print(f"Deleted {args.file_name}")
    return 0


def cmd_delete_all(client, store, cfg, args) -> int:
    client.delete_all_reports()
    print("Deleted all reports")
    return 0


_COMMANDS = {
    'login': cmd_login,
    'logout': cmd_logout,
    'apps': cmd_apps,
    'schedule': cmd_schedule,
    'state': cmd_state,
    'reports': cmd_reports,
    'download': cmd_download,
    'delete': cmd_delete,
    'delete-all': cmd_delete_all,
}

# Commands that manage the session themselves
_NO_SESSION = {'login', 'logout'}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='bbstats',
        description='BlackBerry World vendor portal - report automation',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m bbstats login
  python -m bbstats apps
  python -m bbstats schedule all downloads-summary --start -30 --end -1
  python -m bbstats state all downloads-summary --start -30 --end -1
  python -m bbstats download All_Applications_DownloadSummary_01_May_2015_to_30_May_2015_by_date.zip -o out.csv
        """
    )
    parser.add_argument('--username', type=str, help='Portal username (or BBSTATS_USERNAME)')
    parser.add_argument('--password', type=str, help='Portal password (or BBSTATS_PASSWORD)')
    parser.add_argument('--tokens-file', type=str, metavar='PATH',
                        help='Saved session file (default: bbstats_tokens.json)')
    parser.add_argument('--scratch-dir', type=str, metavar='PATH',
                        help='Directory for temporary zip/csv files')
    parser.add_argument('--timeout', type=float, help='Per-request timeout in seconds')
    parser.add_argument('--insecure', action='store_true', help='Skip TLS certificate verification')
    parser.add_argument('--no-prompt', action='store_true', help='Never prompt for credentials')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('login', help='Log in and save the session')
    sub.add_parser('logout', help='End the saved session')

    apps = sub.add_parser('apps', help='List apps')
    apps.add_argument('--json', action='store_true', help='Print JSON')

    report_types = [t.name.lower().replace('_', '-') for t in ReportType]
    for name, help_text in (('schedule', 'Schedule a report'), ('state', 'Guess report state')):
        p = sub.add_parser(name, help=help_text)
        p.add_argument('app', help='App id / link name, or "all"')
        p.add_argument('type', choices=report_types, help='Report type')
        p.add_argument('--start', default='-14', help='Start: day offset or YYYY-MM-DD (default: -14)')
        p.add_argument('--end', default='0', help='End: day offset or YYYY-MM-DD (default: 0)')
        if name == 'state':
            p.add_argument('--json', action='store_true', help='Print JSON')

    reports = sub.add_parser('reports', help='List finished reports')
    reports.add_argument('--json', action='store_true', help='Print JSON')

    download = sub.add_parser('download', help='Download a report as CSV')
    download.add_argument('file_name', help='Report archive name (.zip)')
    download.add_argument('-o', '--output', help='CSV destination (default: ./<name>.csv)')
    download.add_argument('--rows', action='store_true', help='Parse and count the rows')
    download.add_argument('--delete', action='store_true', help='Delete from the portal afterwards')

    delete = sub.add_parser('delete', help='Delete one report')
    delete.add_argument('file_name', help='Report archive name (.zip)')

    sub.add_parser('delete-all', help='Delete every report')
    return parser


def _load_env() -> None:
    """Load .env from the project root, else from the working directory."""
    env_path = Path(__file__).resolve().parent.parent / '.env'
    if env_path.exists():
        load_dotenv(env_path)
    else:
        load_dotenv(Path.cwd() / '.env')


def main(argv=None) -> int:
    _load_env()

    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=_LOG_FORMAT,
        datefmt='%H:%M:%S'
    )

    cfg = PortalRunConfig.from_cli_args(args)
    if args.verbose:
        cfg.log_summary()

    store = SessionStore(cfg.tokens_file, max_age_hours=cfg.token_max_age_hours)
    client = PortalClient(cfg)

    try:
        if args.command not in _NO_SESSION:
            if not _open_session(client, store, cfg, interactive=not args.no_prompt):
                print("Not logged in.")
                return 1
        return _COMMANDS[args.command](client, store, cfg, args)
    except requests.RequestException as exc:
        logger.error(f"[HTTP] Request failed: {exc}")
        return 2
    finally:
        client.close()


if __name__ == '__main__':
    sys.exit(main())
