"""
Tests for cookie handling and saved-session persistence.
"""

import json
import os
import time

from requests.cookies import RequestsCookieJar

from bbstats.auth import CookieEntry, CookieStore, SessionStore, SessionTokens

from conftest import TOKENS


class TestCookieStore:
    """Name plus path-prefix lookups over a shared jar."""

    def test_set_and_get(self):
        store = CookieStore()
        store.set(CookieEntry("ISV_SESSION_ID", "abc", path="/isvportal", domain="portal.test"))
        entry = store.get("ISV_SESSION_ID", "/isvportal")
        assert entry.value == "abc"
        assert entry.domain == "portal.test"

    def test_path_prefix_must_match(self):
        store = CookieStore()
        store.set(CookieEntry("bbidcchk", "1", path="/bbid", domain="idp.test"))
        assert store.value("bbidcchk", "/isvportal") is None
        assert store.value("bbidcchk", "/bb") == "1"
        assert store.value("bbidcchk") == "1"

    def test_attribute_lookup(self):
        store = CookieStore()
        store.set(CookieEntry("a", "1", path="/x", domain="d.test", secure=True))
        assert store.get("a", "/x", "secure") is True
        assert store.get("missing", "/", "value") is None

    def test_overwrite_same_key(self):
        store = CookieStore()
        store.set(CookieEntry("a", "1", path="/x", domain="d.test"))
        store.set(CookieEntry("a", "2", path="/x", domain="d.test"))
        assert store.value("a") == "2"
        assert len(store) == 1

    def test_shares_the_given_jar(self):
        jar = RequestsCookieJar()
        store = CookieStore(jar)
        store.set(CookieEntry("a", "1", path="/", domain="d.test"))
        assert jar.get("a") == "1"
        store.clear()
        assert len(jar) == 0

    def test_lasting_entry_expires_in_a_day(self):
        entry = CookieEntry.lasting("a", "1", path="/", domain="d.test")
        assert abs(entry.expires - (time.time() + 86400)) < 5
        assert entry.to_dict()["name"] == "a"


class TestSessionTokens:

    def test_round_trip_through_portal_keys(self):
        data = TOKENS.to_dict()
        assert set(data) == {"JSESSIONID", "ISV_COOKIE_DATA", "ISV_SESSION_ID", "csrfToken"}
        assert SessionTokens.from_dict(data) == TOKENS

    def test_partial_tokens_become_empty(self):
        partial = SessionTokens(session_cookie_id="a", csrf_token="b")
        assert not partial
        assert partial.to_dict() == {}
        assert SessionTokens.from_dict({"JSESSIONID": "a"}).is_empty
        assert SessionTokens.from_dict(None).is_empty


class TestSessionStore:
    """Saved tokens are reused only while complete and fresh."""

    def test_save_and_load(self, tmp_path):
        store = SessionStore(tmp_path / "tokens.json")
        assert store.save(TOKENS)
        assert store.has_valid_session()
        assert store.load() == TOKENS
        assert json.loads((tmp_path / "tokens.json").read_text())["ISV_SESSION_ID"] == TOKENS.server_session_id

    def test_empty_tokens_not_saved(self, tmp_path):
        store = SessionStore(tmp_path / "tokens.json")
        assert not store.save(SessionTokens())
        assert not (tmp_path / "tokens.json").exists()

    def test_missing_file(self, tmp_path):
        store = SessionStore(tmp_path / "nope.json")
        assert not store.has_valid_session()
        assert store.load().is_empty

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "tokens.json"
        path.write_text("{not json", encoding="utf-8")
        store = SessionStore(path)
        assert not store.has_valid_session()
        assert store.load().is_empty

    def test_non_object_file(self, tmp_path):
        path = tmp_path / "tokens.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert not SessionStore(path).has_valid_session()

    def test_incomplete_file(self, tmp_path):
        path = tmp_path / "tokens.json"
        path.write_text(json.dumps({"JSESSIONID": "a", "csrfToken": "b"}), encoding="utf-8")
        assert not SessionStore(path).has_valid_session()

    def test_expired_file(self, tmp_path):
        store = SessionStore(tmp_path / "tokens.json", max_age_hours=1)
        store.save(TOKENS)
        old = time.time() - 2 * 3600
        os.utime(store.state_path, (old, old))
        assert not store.has_valid_session()

    def test_force_login(self, tmp_path):
        store = SessionStore(tmp_path / "tokens.json", force_login=True)
        store.save(TOKENS)
        assert not store.has_valid_session()

    def test_clear(self, tmp_path):
        store = SessionStore(tmp_path / "tokens.json")
        store.save(TOKENS)
        store.clear()
        assert not store.state_path.exists()
        store.clear()
