import logging
import os

import pytest

from finance_tracker.core import settings
from finance_tracker.logger import ColourizedFormatter, get_logging_config


def test_read_config_file(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text(
        "# comment\n"
        "DEFAULT_CURRENCY: usd\n"
        "LEDGER_FILE: 'ledger.json'\n"
        "PACE_TOLERANCE: 0.1 # looser\n"
        "EMPTY:\n"
        "not a pair\n",
        encoding="utf-8",
    )

    assert settings.read_config_file(str(config)) == {
        "DEFAULT_CURRENCY": "usd",
        "LEDGER_FILE": "ledger.json",
        "PACE_TOLERANCE": "0.1",
    }
    assert settings.read_config_file(str(tmp_path / "missing.yaml")) == {}


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("25", 25),
        ("", 50),
        ("many", 50),
        ("0", 50),
    ],
)
def test_get_env_int(monkeypatch, raw, expected):
    monkeypatch.setenv("TRANSACTIONS_PAGE_SIZE", raw)
    assert settings.get_env_int("TRANSACTIONS_PAGE_SIZE", 50, min_value=1) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("0.1", 0.1),
        ("abc", 0.05),
        ("-1", 0.05),
    ],
)
def test_get_env_float(monkeypatch, raw, expected):
    monkeypatch.setenv("PACE_TOLERANCE", raw)
    assert settings.get_env_float("PACE_TOLERANCE", 0.05, min_value=0.0) == expected


def test_resolve_ledger_path(monkeypatch, tmp_path):
    monkeypatch.delenv("LEDGER_FILE", raising=False)
    assert settings.resolve_ledger_path() is None

    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("LEDGER_FILE", "ledger.json")
    assert settings.resolve_ledger_path() == os.path.join(str(tmp_path), "ledger.json")

    absolute = str(tmp_path / "elsewhere.json")
    monkeypatch.setenv("LEDGER_FILE", absolute)
    assert settings.resolve_ledger_path() == absolute


def test_logging_config_adds_file_handler(monkeypatch, tmp_path):
    monkeypatch.delenv("LOG_DIR", raising=False)
    assert "file" not in get_logging_config()["handlers"]

    log_dir = tmp_path / "logs"
    monkeypatch.setenv("LOG_DIR", str(log_dir))
    config = get_logging_config()

    assert config["handlers"]["file"]["filename"] == os.path.join(str(log_dir), "app.log")
    assert config["loggers"][""]["handlers"] == ["console", "file"]
    assert log_dir.is_dir()


def test_colourized_formatter_leaves_record_untouched():
    record = logging.LogRecord("finance_tracker", logging.WARNING, __file__, 1, "careful", None, None)

    output = ColourizedFormatter("%(levelname)s %(message)s").format(record)

    assert ColourizedFormatter.YELLOW in output
    assert record.levelname == "WARNING"
