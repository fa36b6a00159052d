"""TapeStore – read-modify-write JSON tape with per-session statistics."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path

log = logging.getLogger("tape-recorder")


def load_tape(path: Path) -> list[dict]:
    """Return the interactions stored at *path*.

    A missing, unreadable or corrupt tape is an empty tape.
    """
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
        log.warning(f"Tape {path} is unreadable, starting from an empty tape: {exc}")
        return []
    if not isinstance(data, list):
        log.warning(f"Tape {path} does not hold a JSON array, starting from an empty tape")
        return []
    return data


class TapeStore:
    """Appends interactions to ``<tapes_dir>/<tape_name>.json``.

    Every append rewrites the whole file. The lock only serialises requests
    handled by this process; two recorder processes sharing a tape may still
    lose updates (last writer wins).
    """

    def __init__(self, tapes_dir: Path, tape_name: str):
        self.path = Path(tapes_dir) / f"{tape_name}.json"
        self.tape_name = tape_name
        self._lock = asyncio.Lock()
        self.count = 0
        self.status_codes: dict[str, int] = {}

    def load(self) -> list[dict]:
        return load_tape(self.path)

    async def append(self, interaction: dict) -> None:
        """Append one interaction as the last element of the tape."""
        async with self._lock:
            tape = self.load()
            tape.append(interaction)
            self._save(tape)
            self.count += 1
            self._update_stats(interaction)

    def _save(self, tape: list[dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(json.dumps(tape, indent=4, ensure_ascii=False) + "\n", encoding="utf-8")
        os.replace(tmp_path, self.path)

    def _update_stats(self, interaction: dict) -> None:
        status = interaction.get("response", {}).get("status", "")
        parts = status.split(" ", 2)
        code = parts[1] if len(parts) > 1 else "unknown"
        self.status_codes[code] = self.status_codes.get(code, 0) + 1

    def get_summary(self) -> dict:
        """Return a summary of what this process recorded."""
        return {
            "tape": str(self.path),
            "interactions": self.count,
            "status_codes": dict(sorted(self.status_codes.items())),
        }
