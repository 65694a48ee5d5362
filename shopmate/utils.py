# shopmate/utils.py
import re
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

email_re = re.compile(r".+@.+\..+")


def normalize_base(url: str) -> str:
    """Ensure URL starts with http(s) and strip trailing slash."""
    u = url.strip()
    if not u.startswith("http"):
        u = "https://" + u
    return u.rstrip("/")


def normalize_origin(url: Optional[str]) -> str:
    """Reduce a user-typed shop URL to its origin (scheme://host[:port]).

    Raises ValueError when nothing usable remains.
    """
    if not url or not url.strip():
        raise ValueError("shopUrl is required")
    parsed = urlparse(normalize_base(url))
    if parsed.scheme not in ("http", "https") or not parsed.netloc or " " in parsed.netloc:
        raise ValueError(f"Invalid URL format: {url}")
    return f"{parsed.scheme}://{parsed.netloc.lower()}"


def host_from_url(url: str) -> str:
    try:
        host = urlparse(normalize_base(url)).hostname
    except ValueError:
        host = None
    return host or re.sub(r"[^a-z0-9.-]", "_", url, flags=re.I)


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(email_re.fullmatch(email.strip()))


def soup_text_excerpt(html: str, length: int = 20000) -> str:
    """Extract plain text from HTML (truncate to given length)."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "lxml")
    return soup.get_text(" ", strip=True)[:length]


def product_search_text(product: Dict[str, Any]) -> str:
    """Lower-cased haystack used by the console text filter."""
    tags = product.get("tags") or []
    if isinstance(tags, str):
        tags = [tags]
    parts = [
        product.get("title") or "",
        product.get("handle") or "",
        product.get("vendor") or "",
        product.get("product_type") or "",
        " ".join(tags),
        soup_text_excerpt(product.get("body_html") or ""),
    ]
    return " ".join(parts).lower()
