"""
Report Artifacts
Download a finished report archive, unpack its CSV and clean up.

Scratch layout for ``X.zip`` under the configured scratch directory::

    <scratch>/X.zip          downloaded archive (deleted after extraction)
    <scratch>/X/X.csv        extracted data (moved or deleted)

Only the caller's destination file survives a call. One download at a
time per scratch directory.
"""

import csv
import logging
import shutil
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .auth.base_auth import SessionTokens, requires_session
from .auth.login_manager import SessionAuthenticator
from .report_model import ReportDescriptor
from .run_config import PortalRunConfig

logger = logging.getLogger(__name__)


def read_csv_rows(
    path: Union[str, Path],
    delimiter: str = ',',
    quotechar: str = '"',
    encoding: str = 'utf-8-sig',
    fallback_encoding: str = 'latin-1'
) -> List[Dict[str, str]]:
    """
    Read a CSV whose first row is the header.

    Each later row becomes ``{header: cell}``. Repeated header names keep
    the right-most cell. A file that does not decode with ``encoding`` is
    re-read with ``fallback_encoding``.

    Args:
        path: CSV file
        delimiter: Field separator
        quotechar: Quote character
        encoding: Expected text encoding
        fallback_encoding: Used when ``encoding`` fails

    Returns:
        List of row mappings (empty for an empty file)
    """
    try:
        return _read_rows(path, delimiter, quotechar, encoding)
    except UnicodeDecodeError:
        logger.warning(f"[DOWNLOAD] {Path(path).name} is not {encoding}; reading it as {fallback_encoding}")
        return _read_rows(path, delimiter, quotechar, fallback_encoding)


def _read_rows(path, delimiter, quotechar, encoding) -> List[Dict[str, str]]:
    rows = []
    with open(path, newline='', encoding=encoding) as handle:
        reader = csv.reader(handle, delimiter=delimiter, quotechar=quotechar)
        header = None
        for record in reader:
            if header is None:
                header = record
                continue
            if not record:
                continue
            rows.append(dict(zip(header, record)))
    return rows


class ArtifactPipeline:
    """
    Fetches report archives for an authenticated session.
    """

    def __init__(self, config: PortalRunConfig, authenticator: SessionAuthenticator):
        """
        Args:
            config: Supplies the scratch directory
            authenticator: Holder of the session tokens and transport
        """
        self.config = config
        self.authenticator = authenticator
        self.transport = authenticator.transport

    @property
    def tokens(self) -> SessionTokens:
        return self.authenticator.tokens

    @property
    def scratch_dir(self) -> Path:
        return Path(self.config.scratch_dir)

    @requires_session
    def download_report(
        self,
        report: ReportDescriptor,
        destination: Union[str, Path] = None,
        return_rows: bool = False
    ) -> Optional[List[Dict[str, str]]]:
        """
        Download, unzip and optionally parse one report.

        Args:
            report: Descriptor from ``list_reports`` or ``get_report_state``
            destination: Where to keep the CSV (nothing is kept if omitted)
            return_rows: Parse the CSV and return its rows

        Returns:
            The parsed rows if ``return_rows`` and the archive held a CSV,
            otherwise None

        Raises:
            requests.HTTPError: If the portal refuses the download
        """
        paths = self._scratch_paths(report.file_name)
        if paths is None:
            logger.warning(f"[DOWNLOAD] Refusing unsafe report file name {report.file_name!r}")
            return None
        zip_path, unzip_dir = paths
        csv_path = unzip_dir / f"{unzip_dir.name}.csv"

        response = self.transport.get(
            report.download_link,
            referer=self.authenticator.reports_home_referer(),
        )

        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        try:
            zip_path.write_bytes(response.content)
            unzip_dir.mkdir(parents=True, exist_ok=True)
            extracted = self._extract_csv(zip_path, csv_path)
            zip_path.unlink()

            if not extracted:
                return None

            final_path = csv_path
            if destination is not None:
                final_path = Path(destination)
                final_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(csv_path), str(final_path))
                logger.info(f"[DOWNLOAD] Saved {report.file_name} to {final_path}")

            rows = None
            if return_rows:
                rows = read_csv_rows(final_path)
                logger.info(f"[DOWNLOAD] Parsed {len(rows)} row(s) from {report.file_name}")
            return rows
        finally:
            self._cleanup(zip_path, unzip_dir)

    # ── Internal ──────────────────────────────────────────────────

    def _scratch_paths(self, file_name: str) -> Optional[Tuple[Path, Path]]:
        """Archive path and unzip directory for ``file_name``, or None if unsafe.

        The name must be a bare ``<stem>.zip`` with a non-empty stem, and both
        paths must sit directly inside the scratch directory.
        """
        if not file_name or any(bad in file_name for bad in ('/', '\\', '..')):
            return None
        if not file_name.lower().endswith('.zip') or len(file_name) <= 4:
            return None

        scratch = self.scratch_dir.resolve()
        zip_path = scratch / file_name
        unzip_dir = scratch / file_name[:-4]
        if zip_path.resolve().parent != scratch or unzip_dir.resolve().parent != scratch:
            return None
        return zip_path, unzip_dir

    def _extract_csv(self, zip_path: Path, csv_path: Path) -> bool:
        """Copy the archive's CSV entry to ``csv_path``.

        An unreadable archive or one without a CSV is logged and skipped.
        """
        try:
            archive = zipfile.ZipFile(zip_path)
        except zipfile.BadZipFile:
            logger.warning(f"[DOWNLOAD] {zip_path.name} is not a readable zip archive — nothing extracted")
            return False

        with archive:
            members = [n for n in archive.namelist() if n.lower().endswith('.csv')]
            if not members:
                logger.warning(f"[DOWNLOAD] {zip_path.name} contains no CSV file")
                return False
            if len(members) > 1:
                logger.warning(f"[DOWNLOAD] {zip_path.name} has {len(members)} CSV files — using {members[0]}")
            with archive.open(members[0]) as src, open(csv_path, 'wb') as dst:
                shutil.copyfileobj(src, dst)
        return True

    def _cleanup(self, zip_path: Path, unzip_dir: Path) -> None:
        if zip_path.exists():
            zip_path.unlink()
        if unzip_dir.exists():
            shutil.rmtree(unzip_dir)
