"""
URL normalization shared by discovery and page storage.

Normalization rule: lowercase scheme and host, drop the default port,
drop query string and fragment, strip trailing slashes from the path
(an empty path becomes "/"). Two sitemap entries that normalize to the
same string are the same page.
"""
import re
from urllib.parse import urlsplit, urlunsplit

DEFAULT_PORTS = {"http": 80, "https": 443}

ASSET_EXTENSION_RE = re.compile(
    r"\.(jpg|jpeg|png|gif|webp|svg|pdf|mp4|mp3|zip)$", re.IGNORECASE
)


def normalize_url(url: str) -> str:
    """Return the canonical form of an http(s) URL.

    Raises ValueError for anything that is not an absolute http(s) URL.
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS or not parts.hostname:
        raise ValueError(f"Not an absolute http(s) URL: {url!r}")

    host = parts.hostname.lower()
    port = parts.port
    netloc = host if port in (None, DEFAULT_PORTS[scheme]) else f"{host}:{port}"

    path = parts.path.rstrip("/") or "/"
    return urlunsplit((scheme, netloc, path, "", ""))


def url_path(url: str) -> str:
    return urlsplit(url).path or "/"


def site_root(url: str) -> str:
    """``https://Example.com/blog/`` -> ``https://example.com``."""
    normalized = normalize_url(url)
    parts = urlsplit(normalized)
    return f"{parts.scheme}://{parts.netloc}"


def bare_host(host: str) -> str:
    host = host.lower()
    return host[4:] if host.startswith("www.") else host


def is_same_site(url: str, root_url: str) -> bool:
    """True when ``url`` lives on the audited host (www and bare host are equivalent)."""
    candidate = urlsplit(url).hostname
    root = urlsplit(root_url).hostname
    if not candidate or not root:
        return False
    return bare_host(candidate) == bare_host(root)


def is_asset_url(url: str) -> bool:
    """Sitemaps sometimes list images or documents; those are not pages."""
    return bool(ASSET_EXTENSION_RE.search(urlsplit(url).path))
