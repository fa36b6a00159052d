"""Recorder configuration – read once from the environment and CLI flags."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

# Upper bound for a single upstream exchange (connect + headers + body).
FORWARD_TIMEOUT = 30.0

DEFAULT_TAPES_DIR = Path("tapes")
DEFAULT_LOG_FILE = Path("vcr_log.txt")

CONFIG_ERROR_MESSAGE = "TAPE_NAME and API_URL must be set as environment variables."


class ConfigError(Exception):
    """Required configuration is missing."""


@dataclass(frozen=True)
class RecorderConfig:
    tape_name: str
    api_url: str
    tapes_dir: Path = DEFAULT_TAPES_DIR
    log_file: Path = DEFAULT_LOG_FILE
    timeout: float = FORWARD_TIMEOUT

    @property
    def tape_path(self) -> Path:
        return self.tapes_dir / f"{self.tape_name}.json"


def resolve_log_file(environ: Mapping[str, str] | None = None, log_file: str | Path | None = None) -> Path:
    """Log file location, available even when the rest of the config is not."""
    if environ is None:
        environ = os.environ
    value = log_file or environ.get("VCR_LOG_FILE")
    return Path(value) if value else DEFAULT_LOG_FILE


def load_config(
    environ: Mapping[str, str] | None = None,
    *,
    tape_name: str | None = None,
    api_url: str | None = None,
    tapes_dir: str | Path | None = None,
    log_file: str | Path | None = None,
) -> RecorderConfig:
    """Build a RecorderConfig; explicit arguments win over the environment.

    Raises ConfigError when the tape name or the upstream URL is missing.
    """
    if environ is None:
        environ = os.environ

    tape_name = tape_name or environ.get("TAPE_NAME")
    api_url = api_url or environ.get("API_URL")
    if not tape_name or not api_url:
        raise ConfigError(CONFIG_ERROR_MESSAGE)

    tapes_dir = tapes_dir or environ.get("TAPES_DIR")
    return RecorderConfig(
        tape_name=tape_name,
        api_url=api_url,
        tapes_dir=Path(tapes_dir) if tapes_dir else DEFAULT_TAPES_DIR,
        log_file=resolve_log_file(environ, log_file),
    )
