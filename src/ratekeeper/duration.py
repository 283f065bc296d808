"""Human-readable window durations.

Rules are written with windows like ``"15m"`` or ``"1h"``. The engine works in
integer milliseconds, so ``parse_window`` converts on the way in and
``format_duration`` converts back for log lines.

Examples:
    >>> parse_window("15m")
    900000
    >>> parse_window("1.5s")
    1500
    >>> format_duration(5_400_000)
    '1h 30m'
"""

import math
import re

_TIME_UNITS_MS: dict[str, int] = {
    "s": 1000,
    "m": 60 * 1000,
    "h": 60 * 60 * 1000,
    "d": 24 * 60 * 60 * 1000,
}

_WINDOW_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*([smhd])$")


def parse_window(window: str) -> int:
    """Parse a window string into milliseconds.

    Format is a number (integer or decimal) followed by one unit: ``s``, ``m``,
    ``h`` or ``d``. Surrounding whitespace and letter case are ignored. The
    result is floored to whole milliseconds.

    Args:
        window: Window text, e.g. ``"30s"``, ``"15m"``, ``"1h"``, ``"1d"``.

    Returns:
        Duration in milliseconds.

    Raises:
        ValueError: If the text is empty, malformed, not positive, or shorter
            than one millisecond.
    """
    if not isinstance(window, str) or not window.strip():
        raise ValueError("Window must be a non-empty string")

    match = _WINDOW_PATTERN.match(window.strip().lower())
    if match is None:
        raise ValueError(
            f"Invalid window format: {window!r}. Expected a number followed by "
            "a unit (s, m, h, d), e.g. '15m', '1h', '30s', '1d'"
        )

    value = float(match.group(1))
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"Window value must be a positive finite number, got: {value}")

    result = math.floor(value * _TIME_UNITS_MS[match.group(2)])
    if result <= 0:
        raise ValueError(f"Resulting window duration must be at least 1ms, got: {result}ms")
    return result


def format_duration(ms: int) -> str:
    """Format milliseconds as a short human-readable duration.

    Only the two most significant units are shown, and a zero second unit is
    dropped: ``"1d 6h"``, ``"2h"``, ``"1m 30s"``, ``"45s"``, ``"500ms"``.
    """
    if ms < 1000:
        return f"{ms}ms"

    seconds = ms // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        remaining_hours = hours % 24
        return f"{days}d {remaining_hours}h" if remaining_hours else f"{days}d"
    if hours > 0:
        remaining_minutes = minutes % 60
        return f"{hours}h {remaining_minutes}m" if remaining_minutes else f"{hours}h"
    if minutes > 0:
        remaining_seconds = seconds % 60
        return f"{minutes}m {remaining_seconds}s" if remaining_seconds else f"{minutes}m"
    return f"{seconds}s"
