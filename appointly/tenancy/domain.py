"""Request domain extraction and normalisation for tenant routing."""

from __future__ import annotations

from typing import Mapping, Optional

# Checked in this order.
DOMAIN_HEADERS = ("origin", "host", "referer")


def normalize_domain(raw: Optional[str]) -> str:
    """Reduce a URL, origin or host header value to a bare lower-case hostname.

    >>> normalize_domain("https://www.Example.com/path?x=1")
    'example.com'
    """
    value = (raw or "").strip().lower()
    if not value or value == "null":
        return ""

    if "://" in value:
        value = value.split("://", 1)[1]
    elif value.startswith("//"):
        value = value[2:]

    for sep in ("/", "?", "#"):
        value = value.split(sep, 1)[0]

    # userinfo@host
    value = value.rsplit("@", 1)[-1]

    if value.startswith("["):
        # IPv6 literal, keep the brackets off and drop any port
        value = value[1:].split("]", 1)[0]
    else:
        value = value.split(":", 1)[0]

    if value.startswith("www."):
        value = value[4:]

    return value.strip(".")


def domain_from_headers(headers: Mapping[str, str]) -> str:
    """First non-empty normalised domain among Origin, Host and Referer."""
    for name in DOMAIN_HEADERS:
        domain = normalize_domain(headers.get(name))
        if domain:
            return domain
    return ""
