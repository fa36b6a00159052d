"""Tests for configuration loading."""

from pathlib import Path

import pytest

from tape_recorder.config import (
    CONFIG_ERROR_MESSAGE,
    DEFAULT_LOG_FILE,
    DEFAULT_TAPES_DIR,
    FORWARD_TIMEOUT,
    ConfigError,
    load_config,
    resolve_log_file,
)


def test_load_from_environment():
    config = load_config({"TAPE_NAME": "users", "API_URL": "https://api.example.com"})
    assert config.tape_name == "users"
    assert config.api_url == "https://api.example.com"
    assert config.tapes_dir == DEFAULT_TAPES_DIR
    assert config.log_file == DEFAULT_LOG_FILE
    assert config.timeout == FORWARD_TIMEOUT == 30
    assert config.tape_path == DEFAULT_TAPES_DIR / "users.json"


def test_api_url_used_verbatim():
    config = load_config({"TAPE_NAME": "t", "API_URL": "https://api.example.com/base/"})
    assert config.api_url == "https://api.example.com/base/"


def test_optional_settings_from_environment():
    config = load_config(
        {"TAPE_NAME": "t", "API_URL": "http://x", "TAPES_DIR": "/tmp/tapes", "VCR_LOG_FILE": "/tmp/vcr.log"}
    )
    assert config.tapes_dir == Path("/tmp/tapes")
    assert config.log_file == Path("/tmp/vcr.log")


def test_explicit_values_win_over_environment():
    config = load_config(
        {"TAPE_NAME": "env-tape", "API_URL": "http://env"},
        tape_name="flag-tape",
        api_url="http://flag",
        tapes_dir="recordings",
        log_file="logs/vcr.txt",
    )
    assert config.tape_name == "flag-tape"
    assert config.api_url == "http://flag"
    assert config.tapes_dir == Path("recordings")
    assert config.log_file == Path("logs/vcr.txt")


@pytest.mark.parametrize(
    "environ",
    [
        {},
        {"TAPE_NAME": "t"},
        {"API_URL": "http://x"},
        {"TAPE_NAME": "", "API_URL": "http://x"},
    ],
)
def test_missing_required_settings(environ):
    with pytest.raises(ConfigError) as exc_info:
        load_config(environ)
    assert str(exc_info.value) == CONFIG_ERROR_MESSAGE


def test_resolve_log_file():
    assert resolve_log_file({}) == DEFAULT_LOG_FILE
    assert resolve_log_file({"VCR_LOG_FILE": "a.log"}) == Path("a.log")
    assert resolve_log_file({"VCR_LOG_FILE": "a.log"}, "b.log") == Path("b.log")
