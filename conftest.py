"""Root conftest: fixes the client environment before chat_client.config is imported."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator

_TEST_ENV = {
    "API_BASE_URL": "http://testserver/api",
    "API_TOKEN": "",
    "USER_ID": "u-me",
}


def _env_file_pairs(path: Path) -> Iterator[tuple[str, str]]:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        yield key.strip(), value.strip()


# .env.test wins over the built-in test defaults; the real environment wins over both.
for _key, _value in [*_env_file_pairs(Path(__file__).resolve().parent / ".env.test"), *_TEST_ENV.items()]:
    os.environ.setdefault(_key, _value)
