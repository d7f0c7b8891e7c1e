"""
Tests for configuration layering and the command-line entry point.
"""

import argparse
import json
from unittest import mock

import pytest

from bbstats import PortalClient, PortalRunConfig, PortalTransport
from bbstats import __main__ as cli
from bbstats.auth import SessionStore

from conftest import TOKENS, FakeResponse, FakeSession, make_zip


# ====================================================================
# Configuration
# ====================================================================

class TestPortalRunConfig:

    def test_defaults(self):
        cfg = PortalRunConfig()
        assert cfg.portal_host == "appworld.blackberry.com"
        assert cfg.idp_host == "blackberryid.blackberry.com"
        assert cfg.verify_tls is True
        assert cfg.timeout_seconds is None
        assert cfg.portal_url("/isvportal/home.do") == "https://appworld.blackberry.com/isvportal/home.do"

    def test_from_env(self):
        cfg = PortalRunConfig.from_env({
            "BBSTATS_PORTAL_ORIGIN": "https://portal.test/",
            "BBSTATS_VERIFY_TLS": "no",
            "BBSTATS_TIMEOUT": "30",
            "BBSTATS_USERNAME": "dev@example.com",
            "BBSTATS_TEMPLATE_subscriptions": "%s_Subs_%s_%s.zip",
        })
        assert cfg.portal_host == "portal.test"
        assert cfg.portal_url("/x") == "https://portal.test/x"
        assert cfg.verify_tls is False
        assert cfg.timeout_seconds == 30.0
        assert cfg.username == "dev@example.com"
        assert cfg.password is None
        assert cfg.filename_templates == {"SUBSCRIPTIONS": "%s_Subs_%s_%s.zip"}

    def test_flags_override_env(self):
        args = argparse.Namespace(
            username="flag-user", password=None, scratch_dir="/tmp/s",
            tokens_file=None, timeout=5.0, insecure=True,
        )
        cfg = PortalRunConfig.from_cli_args(args, {"BBSTATS_USERNAME": "env-user", "BBSTATS_PASSWORD": "pw"})
        assert cfg.username == "flag-user"
        assert cfg.password == "pw"
        assert cfg.scratch_dir == "/tmp/s"
        assert cfg.timeout_seconds == 5.0
        assert cfg.verify_tls is False

    def test_template_override_reaches_naming(self, session):
        cfg = PortalRunConfig(filename_templates={"REVIEWS": "%s_R_%s_%s.zip"})
        client = PortalClient(cfg, transport=PortalTransport(session=session))
        name = client.reports.templates.file_name("all", "reviews", "2015-05-01", "2015-05-02")
        assert name == "All_Applications_R_01_May_2015_02_May_2015.zip"


# ====================================================================
# CLI
# ====================================================================

@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def run(monkeypatch, tmp_path, fake_session):
    """Invoke ``main`` against the fake session with a temp tokens file."""
    monkeypatch.chdir(tmp_path)
    for key in ("BBSTATS_USERNAME", "BBSTATS_PASSWORD", "BBSTATS_TOKENS_FILE"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("BBSTATS_SCRATCH_DIR", str(tmp_path / "scratch"))

    def _client(cfg):
        return PortalClient(cfg, transport=PortalTransport(session=fake_session))

    monkeypatch.setattr(cli, "PortalClient", _client)
    tokens_file = str(tmp_path / "tokens.json")

    def _run(*argv):
        return cli.main(["--tokens-file", tokens_file, "--no-prompt", *argv])

    _run.tokens_file = tokens_file
    return _run


class TestCli:

    def test_parser_accepts_report_type_names(self):
        args = cli.build_parser().parse_args(["schedule", "all", "downloads-summary", "--start", "-30"])
        assert args.type == "downloads-summary"
        assert args.start == "-30"
        assert args.end == "0"

    def test_command_without_credentials_or_session(self, run, fake_session, capsys):
        assert run("reports") == 1
        assert fake_session.calls == []
        assert "Not logged in" in capsys.readouterr().out

    def test_saved_session_is_reused(self, run, fake_session, capsys):
        SessionStore(run.tokens_file).save(TOKENS)
        fake_session.queue(FakeResponse(
            '<a href="/isvportal/reports/downloadData.do?csrfToken=T&amp;fileName=A.zip">A.zip</a>'
        ))

        assert run("reports", "--json") == 0
        printed = json.loads(capsys.readouterr().out)
        assert printed[0]["fileName"] == "A.zip"
        assert printed[0]["state"] == 2
        assert len(fake_session.calls) == 1

    def test_http_failure_exit_code(self, run, fake_session):
        SessionStore(run.tokens_file).save(TOKENS)
        fake_session.queue(FakeResponse("boom", status_code=500))
        assert run("delete-all") == 2

    def test_logout_clears_saved_session(self, run, fake_session):
        SessionStore(run.tokens_file).save(TOKENS)
        fake_session.queue(FakeResponse("bye"))
        assert run("logout") == 0
        assert fake_session.calls[0].url.endswith("/isvportal/logout.do")
        assert not SessionStore(run.tokens_file).has_valid_session()

    def test_schedule_resolves_app_by_link_name(self, run, fake_session):
        SessionStore(run.tokens_file).save(TOKENS)
        fake_session.queue(
            FakeResponse(json_data={"contents": [{"id": 0, "name": "All"}, {"id": 42, "name": "My App"}]}),
            FakeResponse("ok"),
        )
        assert run("schedule", "My_App", "downloads") == 0
        assert fake_session.calls[1].data["selectedContent"] == "42"
        assert fake_session.calls[1].data["selectedReportType"] == 1

    def test_missing_credentials_are_prompted(self):
        cfg = PortalRunConfig(username="dev@example.com")
        with mock.patch("bbstats.__main__.getpass.getpass", return_value="secret") as prompt, \
                mock.patch("builtins.input") as ask_user:
            creds = cli._resolve_credentials(cfg, interactive=True)
        assert creds.username == "dev@example.com"
        assert creds.password == "secret"
        prompt.assert_called_once()
        ask_user.assert_not_called()

    def test_no_prompt_when_not_interactive(self):
        with mock.patch("bbstats.__main__.getpass.getpass") as prompt:
            creds = cli._resolve_credentials(PortalRunConfig(), interactive=False)
        assert not creds.is_complete
        prompt.assert_not_called()

    def test_failed_download_keeps_report_on_portal(self, run, fake_session, tmp_path, capsys):
        SessionStore(run.tokens_file).save(TOKENS)
        fake_session.queue(
            FakeResponse('<a href="/isvportal/reports/downloadData.do?csrfToken=T&amp;fileName=A.zip">A.zip</a>'),
            FakeResponse(content=b"<html>session expired</html>"),
        )
        out = tmp_path / "out.csv"

        assert run("download", "A.zip", "-o", str(out), "--delete") == 1
        assert not out.exists()
        assert [c.method for c in fake_session.calls] == ["POST", "GET"]
        assert "deleteData.do" not in " ".join(c.url for c in fake_session.calls)
        assert "Saved" not in capsys.readouterr().out

    def test_download_and_delete(self, run, fake_session, tmp_path):
        SessionStore(run.tokens_file).save(TOKENS)
        fake_session.queue(
            FakeResponse('<a href="/isvportal/reports/downloadData.do?csrfToken=T&amp;fileName=A.zip">A.zip</a>'),
            FakeResponse(content=make_zip({"A.csv": "X,Y\n1,2\n"})),
            FakeResponse("deleted"),
        )
        out = tmp_path / "out.csv"

        assert run("download", "A.zip", "-o", str(out), "--delete") == 0
        assert out.read_text(encoding="utf-8") == "X,Y\n1,2\n"
        assert fake_session.calls[2].url.endswith("/isvportal/reports/deleteData.do?csrfToken=WNVZ-J9M0-V86A-1FLF&fileName=A.zip")
