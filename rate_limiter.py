"""Per-source adaptive throttling with a 60-second request window and error backoff."""

import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)

WINDOW_MS = 60_000
SUCCESS_DECAY = 0.8


@dataclass
class RateLimitConfig:
    requests_per_minute: int
    min_delay_ms: int
    backoff_multiplier: float
    max_backoff_ms: int


DEFAULT_CONFIGS = {
    "topcv": RateLimitConfig(requests_per_minute=30, min_delay_ms=2000, backoff_multiplier=2, max_backoff_ms=60000),
    "linkedin": RateLimitConfig(requests_per_minute=10, min_delay_ms=5000, backoff_multiplier=3, max_backoff_ms=120000),
    "default": RateLimitConfig(requests_per_minute=20, min_delay_ms=3000, backoff_multiplier=2, max_backoff_ms=60000),
}


@dataclass
class SourceState:
    last_request_time: float
    current_delay: float
    request_count: int
    window_start: float
    consecutive_errors: int = 0


class RateLimiter:
    """Owns the throttling state of every source for the lifetime of the process.

    Times are milliseconds. ``clock`` returns the current time in milliseconds
    and ``sleep`` blocks for a number of milliseconds; both default to
    monotonic wall time and are replaceable for tests.
    """

    def __init__(self, configs: dict | None = None, clock=None, sleep=None):
        self._configs = dict(DEFAULT_CONFIGS)
        for source, cfg in (configs or {}).items():
            self._configs[source] = cfg if isinstance(cfg, RateLimitConfig) else RateLimitConfig(**cfg)
        self._states: dict[str, SourceState] = {}
        self._clock = clock or (lambda: time.monotonic() * 1000)
        self._sleep = sleep or (lambda ms: time.sleep(ms / 1000))

    def get_config(self, source: str) -> RateLimitConfig:
        return self._configs.get(source) or self._configs["default"]

    def _state(self, source: str) -> SourceState:
        state = self._states.get(source)
        if state is None:
            # last_request_time far in the past so the first request never waits
            state = SourceState(
                last_request_time=float("-inf"),
                current_delay=self.get_config(source).min_delay_ms,
                request_count=0,
                window_start=self._clock(),
            )
            self._states[source] = state
        return state

    def throttle(self, source: str) -> None:
        """Block until ``source`` may issue its next request."""
        state = self._state(source)
        cfg = self.get_config(source)
        now = self._clock()

        if now - state.window_start >= WINDOW_MS:
            state.window_start = now
            state.request_count = 0

        if state.request_count >= cfg.requests_per_minute:
            wait = WINDOW_MS - (now - state.window_start)
            if wait > 0:
                logger.warning(f"[{source}] Rate limit of {cfg.requests_per_minute}/min reached, waiting {wait:.0f}ms")
                self._sleep(wait)
            now = self._clock()
            state.window_start = now
            state.request_count = 0

        since_last = now - state.last_request_time
        if since_last < state.current_delay:
            self._sleep(state.current_delay - since_last)

        state.last_request_time = self._clock()
        state.request_count += 1

    def record_success(self, source: str) -> None:
        """Clear the error streak and ease the delay back toward the minimum."""
        state = self._state(source)
        cfg = self.get_config(source)
        state.consecutive_errors = 0
        state.current_delay = max(cfg.min_delay_ms, state.current_delay * SUCCESS_DECAY)

    def record_error(self, source: str) -> None:
        state = self._state(source)
        cfg = self.get_config(source)
        state.consecutive_errors += 1
        state.current_delay = min(cfg.max_backoff_ms, state.current_delay * cfg.backoff_multiplier)
        logger.warning(
            f"[{source}] Error recorded. Consecutive: {state.consecutive_errors}. "
            f"New delay: {state.current_delay:.0f}ms"
        )

    def get_status(self, source: str) -> dict:
        state = self._state(source)
        return {
            "current_delay": state.current_delay,
            "consecutive_errors": state.consecutive_errors,
            "requests_in_window": state.request_count,
        }
