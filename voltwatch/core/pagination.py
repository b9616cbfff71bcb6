"""Result size helpers with hard caps."""

from __future__ import annotations

import os


DEFAULT_HISTORY_LIMIT = 1000
DEFAULT_MAX_LIMIT = 5000


def get_max_limit() -> int:
    raw = os.getenv("API_MAX_LIMIT", str(DEFAULT_MAX_LIMIT))
    try:
        val = int(raw)
    except Exception:
        val = DEFAULT_MAX_LIMIT
    if val < 1:
        return DEFAULT_MAX_LIMIT
    return val


def clamp_limit(limit: int) -> int:
    max_size = get_max_limit()
    if limit < 1:
        return 1
    return min(limit, max_size)
