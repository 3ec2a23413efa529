"""
Thread-safe rate-limited logging.

Status polls can fail on every iteration while a node is flaky; this keeps
one line per distinct message per interval.
"""
import logging
import threading
from typing import Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 60

_caches = {}
_caches_lock = threading.RLock()


def _cache_for(interval: int) -> TTLCache:
    with _caches_lock:
        cache = _caches.get(interval)
        if cache is None:
            cache = TTLCache(maxsize=256, ttl=interval)
            _caches[interval] = cache
        return cache


def rate_limited_log(
    message: str,
    level: str = "warning",
    interval: int = DEFAULT_INTERVAL,
    key: Optional[str] = None,
    logger_instance: Optional[logging.Logger] = None
) -> bool:
    """
    Log a message at most once per ``interval`` seconds.

    Args:
        message: Message to log
        level: Log level name (debug, info, warning, error, critical)
        interval: Minimum seconds between two identical log lines
        key: Dedup key; defaults to the level plus the message
        logger_instance: Logger to use (defaults to module logger)

    Returns:
        True if the message was emitted, False if it was suppressed
    """
    log_instance = logger_instance or logger
    log_method = getattr(log_instance, level.lower(), log_instance.warning)
    cache_key = key or f"{level}:{message}"

    cache = _cache_for(interval)
    with _caches_lock:
        if cache_key in cache:
            return False
        cache[cache_key] = True
    log_method(message)
    return True


def reset_rate_limits() -> None:
    """Forget every suppressed message."""
    with _caches_lock:
        for cache in _caches.values():
            cache.clear()
