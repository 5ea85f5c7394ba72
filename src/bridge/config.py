from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


ENV_LOG_LEVEL = "RTCV_BRIDGE_LOG_LEVEL"
ENV_LOG_FILE = "RTCV_BRIDGE_LOG_FILE"
ENV_INPUT_LOG = "RTCV_BRIDGE_INPUT_LOG"
ENV_HTTP_TIMEOUT = "RTCV_BRIDGE_HTTP_TIMEOUT"
ENV_CACHE_MAX_ENTRIES = "RTCV_BRIDGE_CACHE_MAX_ENTRIES"

DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_CACHE_MAX_ENTRIES = 100_000


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _parse_float(name: str, raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    try:
        val = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"Invalid configuration {name}={raw!r}: expected seconds") from exc
    if val <= 0:
        raise RuntimeError(f"Invalid configuration {name}={raw!r}: must be > 0")
    return val


def _parse_max_entries(raw: Optional[str]) -> Optional[int]:
    if raw is None:
        return DEFAULT_CACHE_MAX_ENTRIES
    try:
        val = int(raw)
    except ValueError as exc:
        raise RuntimeError(
            f"Invalid configuration {ENV_CACHE_MAX_ENTRIES}={raw!r}: expected an integer"
        ) from exc
    if val < 0:
        raise RuntimeError(f"Invalid configuration {ENV_CACHE_MAX_ENTRIES}={raw!r}: must be >= 0")
    # 0 disables the cap
    return val or None


@dataclass
class BridgeConfig:
    """
    Process settings, read once at startup.

    Environment
    - RTCV_BRIDGE_LOG_LEVEL: logging level name (default WARNING)
    - RTCV_BRIDGE_LOG_FILE: write logs to this file instead of stderr
    - RTCV_BRIDGE_INPUT_LOG: append every raw stdin line to this file
    - RTCV_BRIDGE_HTTP_TIMEOUT: request timeout in seconds (default: none)
    - RTCV_BRIDGE_CACHE_MAX_ENTRIES: reference cache cap (default 100000, 0 = unbounded)
    """

    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Optional[str] = None
    input_log: Optional[str] = None
    http_timeout: Optional[float] = None
    cache_max_entries: Optional[int] = DEFAULT_CACHE_MAX_ENTRIES

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        return cls(
            log_level=(_getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL) or DEFAULT_LOG_LEVEL).upper(),
            log_file=_getenv(ENV_LOG_FILE),
            input_log=_getenv(ENV_INPUT_LOG),
            http_timeout=_parse_float(ENV_HTTP_TIMEOUT, _getenv(ENV_HTTP_TIMEOUT)),
            cache_max_entries=_parse_max_entries(_getenv(ENV_CACHE_MAX_ENTRIES)),
        )
