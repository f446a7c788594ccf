from typing import Optional
from urllib.parse import urlsplit, urlunsplit


def mask_query(url: Optional[str]) -> str:
    """Hide query strings in logs; release asset redirects carry signed tokens."""
    if not url:
        return "<empty>"
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.query:
        return url
    return urlunsplit(parts._replace(query="****"))
