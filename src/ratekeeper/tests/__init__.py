"""Rate limiter unit tests.

Tests use ManualClock for time and fakeredis for Redis, so the whole suite
runs without sleeping and without external services.
"""
