"""Key extractors for the rate limit middleware.

A key extractor maps a Starlette ``Request`` to the string the algorithm keys
its state on. Extractors are plain callables, so applications can pass any
``Callable[[Request], str]``.

Usage:
    ```python
    from ratekeeper.keys import composite_key_extractor, header_key_extractor, ip_key_extractor

    per_tenant_ip = composite_key_extractor(
        [header_key_extractor("X-Tenant-ID", fallback="anonymous"), ip_key_extractor]
    )
    ```
"""

from collections.abc import Callable, Sequence

from starlette.requests import Request

from ratekeeper.errors import KeyExtractionError

KeyExtractor = Callable[[Request], str]


def ip_key_extractor(request: Request) -> str:
    """Client IP: first ``X-Forwarded-For`` entry, then the socket peer.

    Returns ``"unknown"`` when neither is available.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_ip = forwarded.split(",")[0].strip()
        if first_ip:
            return first_ip

    if request.client is not None and request.client.host:
        return request.client.host

    return "unknown"


def header_key_extractor(header_name: str, fallback: str | None = None) -> KeyExtractor:
    """Build an extractor that keys on a request header.

    Args:
        header_name: Header to read (case-insensitive).
        fallback: Key to use when the header is missing or empty.

    Returns:
        Extractor raising ``KeyExtractionError`` when the header is missing
        and no fallback was given.
    """

    def extract(request: Request) -> str:
        value = request.headers.get(header_name)
        if value:
            return value
        if fallback is not None:
            return fallback
        raise KeyExtractionError(f"Missing required header for rate limiting: {header_name}")

    return extract


def composite_key_extractor(
    extractors: Sequence[KeyExtractor], separator: str = ":"
) -> KeyExtractor:
    """Build an extractor joining several extractors' keys with ``separator``."""
    parts = list(extractors)

    def extract(request: Request) -> str:
        return separator.join(extractor(request) for extractor in parts)

    return extract
