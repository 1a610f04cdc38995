"""Information disclosure heuristics: HTML comments, error pages, directory listings."""

import re
from typing import List, Optional

from secprobe.checkers.base import find_marker

_COMMENT_RX = re.compile(r"<!--([\s\S]*?)-->")
_CSP_META_RX = re.compile(r"<meta[^>]+http-equiv\s*=\s*['\"]content-security-policy['\"]", re.I)

COMMENT_MARKERS = ("password", "api_key", "secret", "todo", "fixme", "bug", "hack", "sql")

SERVER_MARKERS = ("apache", "nginx", "iis", "tomcat", "jetty")
FRAMEWORK_MARKERS = ("spring", "struts", "django", "laravel", "ruby on rails", "express")
STACK_TRACE_MARKERS = ("stack trace", "exception", "error in", "at line", "traceback")
LISTING_MARKERS = ("index of", "directory listing", "parent directory")

ERROR_PAGES = (
    "/nonexistent_page_12345",
    "/error",
    "/test.php",
    "/admin/../../../../etc/passwd",
)

LISTING_DIRS = (
    "/images/",
    "/uploads/",
    "/files/",
    "/assets/",
    "/static/",
    "/media/",
    "/backup/",
    "/temp/",
)

COMMENT_PAGES = ("/", "/login", "/register", "/dashboard", "/profile")


def sensitive_comments(content: Optional[str], limit: int = 100) -> List[str]:
    """HTML comments mentioning credentials, secrets or dev notes, truncated to *limit*."""
    hits = []
    for m in _COMMENT_RX.finditer(content or ""):
        comment = m.group(0)
        lower = comment.lower()
        if find_marker(lower, COMMENT_MARKERS) or ("admin" in lower and "credentials" in lower):
            hits.append(comment[:limit])
    return hits


def stack_trace_evidence(content: Optional[str]) -> Optional[str]:
    return find_marker(content, STACK_TRACE_MARKERS)


def server_disclosure(content: Optional[str]) -> Optional[str]:
    return find_marker(content, SERVER_MARKERS)


def framework_disclosure(content: Optional[str]) -> Optional[str]:
    return find_marker(content, FRAMEWORK_MARKERS)


def directory_listing_evidence(content: Optional[str]) -> Optional[str]:
    hit = find_marker(content, LISTING_MARKERS)
    if hit:
        return hit
    lower = (content or "").lower()
    if "<a href=" in lower and "../" in lower:
        return "../"
    return None


def has_csp_meta(content: Optional[str]) -> bool:
    return bool(_CSP_META_RX.search(content or ""))
