"""
Tests for configuration loading, log levels and the Notion client.
"""

import pytest
import requests

from calendar_notion_sync.core import (
    ConfigError,
    LogLevel,
    Logger,
    get_google_credentials,
    load_config,
    parse_log_level,
)
from calendar_notion_sync.dates import SyncFields
from calendar_notion_sync.notion import (
    NotionAPI,
    build_page_properties,
    compute_signature,
    extract_title,
    page_to_fields,
    verify_signature,
)

ENV = {
    "GOOGLE_CLIENT_ID": "client-id",
    "GOOGLE_CLIENT_SECRET": "client-secret",
    "GOOGLE_REFRESH_TOKEN": "refresh-token",
    "GOOGLE_CALENDAR_ID": "primary",
    "NOTION_API_KEY": "secret-key",
    "NOTION_DATABASE_ID": "db-1",
    "WEBHOOK_URL": "https://bridge.example.com/google-calendar/webhook",
}


def test_load_config_defaults():
    config = load_config(dict(ENV))

    assert config.calendar_id == "primary"
    assert config.notion_verification_token is None
    assert config.title_property == "Título"
    assert config.date_property == "Fecha de entrega"
    assert config.port == 3000
    assert config.respond_first is False
    assert config.log_level is LogLevel.WARN


def test_load_config_reads_optional_values():
    env = dict(ENV, NOTION_VERIFICATION_TOKEN="tok", PORT="8080",
               RESPOND_FIRST="true", LOG_LEVEL="debug",
               NOTION_DATE_PROPERTY="Due")

    config = load_config(env)

    assert config.notion_verification_token == "tok"
    assert config.port == 8080
    assert config.respond_first is True
    assert config.log_level is LogLevel.DEBUG
    assert config.date_property == "Due"


def test_load_config_lists_every_missing_variable():
    env = dict(ENV)
    del env["NOTION_API_KEY"]
    env["WEBHOOK_URL"] = "  "

    with pytest.raises(ConfigError) as excinfo:
        load_config(env)

    assert excinfo.value.missing == ["NOTION_API_KEY", "WEBHOOK_URL"]


def test_load_config_rejects_bad_port():
    with pytest.raises(ConfigError):
        load_config(dict(ENV, PORT="http"))


def test_invalid_log_level_falls_back():
    assert parse_log_level("loud") is LogLevel.WARN
    assert parse_log_level(None, LogLevel.NORMAL) is LogLevel.NORMAL


def test_logger_filters_by_level(capsys):
    logger = Logger(LogLevel.WARN)

    logger.normal("shown")
    logger.warn("also shown")
    logger.debug("hidden")

    out = capsys.readouterr().out
    assert "shown" in out and "also shown" in out
    assert "hidden" not in out


def test_google_credentials_use_refresh_token():
    creds = get_google_credentials(load_config(dict(ENV)))

    assert creds.refresh_token == "refresh-token"
    assert creds.client_id == "client-id"
    assert creds.token is None


def test_signature_round_trip():
    body = b'{"type": "page.created"}'
    signature = compute_signature("secret", body)

    assert signature.startswith("sha256=")
    assert verify_signature("secret", body, signature)
    assert not verify_signature("secret", body + b" ", signature)
    assert not verify_signature("secret", body, None)


def test_extract_title_reads_any_title_property():
    page = {"properties": {
        "Status": {"type": "select", "select": None},
        "Name": {"type": "title", "title": [
            {"plain_text": "Quarterly"}, {"plain_text": "review"},
        ]},
    }}

    assert extract_title(page) == "Quarterly review"
    assert extract_title({"properties": {}}) == "Sin título"


def test_page_to_fields_reads_date_property():
    page = {"properties": {
        "Name": {"type": "title", "title": [{"plain_text": "Launch"}]},
        "Due": {"type": "date", "date": {"start": "2026-04-01", "end": "2026-04-03"}},
    }}

    assert page_to_fields(page, "Due") == SyncFields("Launch", "2026-04-01", "2026-04-03")


def test_build_page_properties_omits_missing_date():
    properties = build_page_properties(SyncFields("Someday", None, None), "Name", "Due")

    assert list(properties) == ["Name"]


class _Response:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error")


def test_notion_api_sends_auth_and_version(monkeypatch):
    sent = {}

    def fake_request(method, url, headers=None, json=None, timeout=None):
        sent.update(method=method, url=url, headers=headers, json=json)
        return _Response(200, {"object": "page", "id": "p1"})

    monkeypatch.setattr(requests, "request", fake_request)

    page = NotionAPI("secret-key").create_page("db-1", {"Name": {"title": []}})

    assert page["id"] == "p1"
    assert sent["method"] == "POST"
    assert sent["url"] == "https://api.notion.com/v1/pages"
    assert sent["headers"]["Authorization"] == "Bearer secret-key"
    assert sent["headers"]["Notion-Version"] == "2022-06-28"
    assert sent["json"]["parent"] == {"database_id": "db-1"}


def test_notion_api_raises_on_error_status(monkeypatch):
    monkeypatch.setattr(
        requests, "request",
        lambda *args, **kwargs: _Response(404, {"object": "error"}),
    )

    with pytest.raises(requests.exceptions.HTTPError):
        NotionAPI("secret-key").retrieve_page("missing")


def test_archive_page_skips_archived_page(monkeypatch):
    calls = []

    def fake_request(method, url, **kwargs):
        calls.append(method)
        return _Response(200, {"id": "p1", "archived": True})

    monkeypatch.setattr(requests, "request", fake_request)

    assert NotionAPI("secret-key").archive_page("p1") is False
    assert calls == ["GET"]
