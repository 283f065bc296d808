"""Shared numeric constants for the rate limiter.

All instants and durations inside the engine are integer milliseconds.
"""

MS_PER_SECOND = 1000

# Token bucket TTL: time-to-full multiplied by this buffer, never below MIN_TTL_MS.
TTL_BUFFER_MULTIPLIER = 1.1
MIN_TTL_MS = 60_000

DEFAULT_CLEANUP_INTERVAL_MS = 60_000
DEFAULT_KEY_PREFIX = "rl:"

# Upper bound on WATCH/MULTI/EXEC cycles for a single distributed increment.
MAX_INCREMENT_ATTEMPTS = 5
