"""Session identifier analysis over cookie snapshots."""

from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional

from secprobe.core.models import EntropyReport, FlagsReport, SessionSnapshot

# Order matters: first name present wins on multi-cookie apps.
SESSION_COOKIE_NAMES = ("JSESSIONID", "PHPSESSID", "ASP.NET_SessionId", "session", "sessionid", "sid")

SESSION_URL_PARAMS = ("jsessionid", "sessionid", "sid", "phpsessid", "session")

SENSITIVE_STORAGE_KEYS = (
    "token", "jwt", "access_token", "auth",
    "session", "password", "secret", "key", "credential",
)

MIN_SESSION_ID_LENGTH = 20


def snapshot_cookies(cookies: Iterable[Mapping], captured_at: Optional[datetime] = None) -> List[SessionSnapshot]:
    """Driver cookie dicts (name/value/secure/httpOnly) → snapshots."""
    at = captured_at or datetime.now()
    out = []
    for c in cookies or ():
        name = c.get("name")
        if not name:
            continue
        out.append(SessionSnapshot(
            cookie_name=name,
            value=str(c.get("value") or ""),
            secure=bool(c.get("secure", False)),
            http_only=bool(c.get("httpOnly", c.get("http_only", False))),
            captured_at=at,
        ))
    return out


def session_identifier_name(snapshots: Iterable[SessionSnapshot]) -> Optional[str]:
    present = {s.cookie_name for s in snapshots or ()}
    for name in SESSION_COOKIE_NAMES:
        if name in present:
            return name
    return None


def session_snapshot(snapshots: Iterable[SessionSnapshot]) -> Optional[SessionSnapshot]:
    snaps = list(snapshots or ())
    name = session_identifier_name(snaps)
    if name is None:
        return None
    return next(s for s in snaps if s.cookie_name == name)


def is_session_cookie(name: str) -> bool:
    """Looser test used when sweeping every cookie for flag hygiene."""
    n = (name or "").lower()
    return "session" in n or "sid" in n


def entropy_check(value: Optional[str]) -> EntropyReport:
    """Length and character-class variety; a heuristic, not a real entropy estimate."""
    v = value or ""
    return EntropyReport(
        length=len(v),
        has_digits=any(ch.isdigit() for ch in v),
        has_letters=any(ch.isascii() and ch.isalpha() for ch in v),
    )


def fixation_check(before: Optional[str], after: Optional[str]) -> bool:
    """True (vulnerable) iff an identifier existed before, still exists after, and did not change."""
    if before is None or after is None:
        return False
    return before == after


def flags_check(snapshot: SessionSnapshot, encrypted_transport: bool) -> FlagsReport:
    return FlagsReport(
        missing_secure=encrypted_transport and not snapshot.secure,
        missing_http_only=not snapshot.http_only,
    )


def session_in_url(url: str, session_value: Optional[str] = None) -> Optional[str]:
    """Session parameter or literal session value exposed in *url*."""
    lower = (url or "").lower()
    for param in SESSION_URL_PARAMS:
        token = param + "="
        idx = lower.find(token)
        if idx != -1:
            return url[idx:idx + len(token)]
    if session_value and session_value in (url or ""):
        return session_value
    return None


def sensitive_storage_keys(storage: Optional[Dict]) -> List[str]:
    if not isinstance(storage, dict):
        return []
    hits = []
    for key in storage:
        lower = str(key).lower()
        if any(s in lower for s in SENSITIVE_STORAGE_KEYS):
            hits.append(str(key))
    return hits
