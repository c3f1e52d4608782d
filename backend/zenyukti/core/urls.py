from typing import Optional
from urllib.parse import urlsplit


def origin_of(url: str) -> str:
    """Scheme and host of a URL, e.g. http://localhost:5000/api -> http://localhost:5000"""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return url.rstrip("/")
    return f"{parts.scheme}://{parts.netloc}"


def is_absolute_url(value: str) -> bool:
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def resolve_avatar_url(avatar: Optional[str], origin: str) -> Optional[str]:
    """
    Turn a stored avatar reference into an absolute URI.

    Absolute http(s) URIs come back unchanged, so applying this twice gives
    the same result as applying it once. Empty references map to None.
    """
    if not avatar:
        return None
    if is_absolute_url(avatar):
        return avatar
    return f"{origin.rstrip('/')}/{avatar.lstrip('/')}"
