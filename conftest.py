"""Root conftest: applies .env.test before chat_sync.config builds its settings."""
from __future__ import annotations

import os
from pathlib import Path


def _read_env_file(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        values[key.strip()] = value.strip()
    return values


_env_test = Path(__file__).resolve().parent / ".env.test"
if _env_test.exists():
    for key, value in _read_env_file(_env_test).items():
        os.environ.setdefault(key, value)

# The headless client seeds its token store from here; tests provide their own.
os.environ.pop("ACCESS_TOKEN", None)
