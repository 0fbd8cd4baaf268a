"""Tests for settings, logging setup and the CLI argument helpers."""

import argparse
import json
import logging

import pytest

from avatar_relay.cli import build_parser, validate_hostname, validate_port
from avatar_relay.config import Settings
from avatar_relay.logging_config import JSONFormatter, configure_logging

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PORT", raising=False)
        settings = Settings(_env_file=None)
        assert settings.host == "0.0.0.0"
        assert settings.port == 5000
        assert settings.static_dir == "public"
        assert settings.max_label_length == 40
        assert not settings.is_production

    def test_prefixed_env_vars(self, monkeypatch):
        monkeypatch.setenv("AVATAR_RELAY_PORT", "8123")
        monkeypatch.setenv("AVATAR_RELAY_ENV", "production")
        settings = Settings(_env_file=None)
        assert settings.port == 8123
        assert settings.is_production

    def test_plain_port_honoured(self, monkeypatch):
        monkeypatch.delenv("AVATAR_RELAY_PORT", raising=False)
        monkeypatch.setenv("PORT", "7070")
        assert Settings(_env_file=None).port == 7070


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture()
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestLogging:
    def test_json_formatter_includes_connection_extras(self):
        record = logging.LogRecord("avatar_relay.service", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        record.identity = "user_1"
        record.remote = "10.0.0.1:5000"
        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "hello world"
        assert data["level"] == "INFO"
        assert data["identity"] == "user_1"
        assert data["remote"] == "10.0.0.1:5000"
        assert "role" not in data

    def test_production_uses_json(self, restore_root_logger):
        configure_logging("DEBUG", "production")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_development_is_human_readable(self, restore_root_logger):
        configure_logging("INFO", "development")
        assert not isinstance(logging.getLogger().handlers[0].formatter, JSONFormatter)


# ---------------------------------------------------------------------------
# CLI helpers
# ---------------------------------------------------------------------------


class TestCli:
    def test_validate_port(self):
        assert validate_port("5000") == 5000
        with pytest.raises(argparse.ArgumentTypeError):
            validate_port("0")
        with pytest.raises(argparse.ArgumentTypeError):
            validate_port("http")

    def test_validate_hostname(self):
        assert validate_hostname("relay.local") == "relay.local"
        assert validate_hostname("[::1]") == "[::1]"
        with pytest.raises(argparse.ArgumentTypeError):
            validate_hostname("bad host!")

    def test_parser_defaults_from_settings(self):
        defaults = Settings(_env_file=None, port=6001, static_dir="site")
        args = build_parser(defaults).parse_args([])
        assert args.port == 6001
        assert args.static_dir == "site"

    def test_parser_overrides(self):
        args = build_parser(Settings(_env_file=None)).parse_args(["-p", "9000", "--log-level", "debug"])
        assert args.port == 9000
        assert args.log_level == "DEBUG"
