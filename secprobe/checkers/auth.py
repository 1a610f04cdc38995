"""Authentication and access-control heuristics over observations and field states."""

from enum import Enum
from typing import Optional

from secprobe.checkers.base import find_marker
from secprobe.core.models import FieldState, Observation


class AuthState(Enum):
    AUTHENTICATED = "authenticated"
    NOT_AUTHENTICATED = "not-authenticated"
    INCONCLUSIVE = "inconclusive"


# Location still pointing at a login surface means the attempt did not pass.
LOCATION_LOGIN_INDICATORS = ("login", "signin", "sign-in", "sign_in", "auth")
CONTENT_LOGIN_PROMPTS = ("please log in", "log in", "sign in", "login")

LOCKOUT_MARKERS = (
    "locked",
    "blocked",
    "too many attempts",
    "try again later",
    "too many",
    "temporarily disabled",
)

VERBOSE_ERROR_MARKERS = (
    "user not found",
    "invalid username",
    "password incorrect",
    "no account",
    "doesn't exist",
)

DEFAULT_CREDENTIALS = (
    ("admin", "admin"),
    ("admin", "password"),
    ("admin", "123456"),
    ("administrator", "administrator"),
    ("root", "root"),
    ("test", "test"),
    ("user", "user"),
    ("demo", "demo"),
    ("guest", "guest"),
)

PROTECTED_PATHS = (
    "/dashboard",
    "/admin",
    "/admin/users",
    "/settings",
    "/profile",
    "/account",
    "/api/users",
    "/internal",
    "/management",
)

ADMIN_PATHS = (
    "/admin",
    "/administrator",
    "/admin.php",
    "/admin.html",
    "/admin/dashboard",
    "/admin/config",
    "/admin/settings",
    "/wp-admin",
    "/phpmyadmin",
    "/manage",
    "/console",
)

_DENIED_LOCATION = ("login", "signin", "auth", "error", "403", "401")
_DENIED_CONTENT = ("access denied", "unauthorized", "please log in")
_NOT_ADMIN_CONTENT = ("login", "denied", "404", "not found", "unauthorized")


# ── authentication outcome ─────────────────────────────────────

def authentication_state(observation: Observation, capability_present: bool) -> AuthState:
    """
    Post-auth capability (e.g. a logout control) is sufficient on its own.
    A login indicator in location or content means not authenticated.
    Neither signal is the ambiguous case: a redirect somewhere that is not a
    login page but shows no post-auth control.
    """
    if capability_present:
        return AuthState.AUTHENTICATED
    if find_marker(observation.location, LOCATION_LOGIN_INDICATORS):
        return AuthState.NOT_AUTHENTICATED
    if find_marker(observation.content, CONTENT_LOGIN_PROMPTS):
        return AuthState.NOT_AUTHENTICATED
    return AuthState.INCONCLUSIVE


def is_logged_in(observation: Observation, capability_present: bool) -> bool:
    """Capability OR absence of a login indicator."""
    return authentication_state(observation, capability_present) is not AuthState.NOT_AUTHENTICATED


def lockout_evidence(content: Optional[str]) -> Optional[str]:
    return find_marker(content, LOCKOUT_MARKERS)


def verbose_error_evidence(text: Optional[str]) -> Optional[str]:
    return find_marker(text, VERBOSE_ERROR_MARKERS)


def enumeration_evidence(unknown_user_error: str, known_user_error: str) -> Optional[str]:
    """Two non-empty, differing error texts are evidence of user enumeration."""
    a = (unknown_user_error or "").strip()
    b = (known_user_error or "").strip()
    if a and b and a != b:
        return f"unknown user: {a!r} / known user: {b!r}"
    return None


# ── field hygiene ──────────────────────────────────────────────

def password_masked(field: Optional[FieldState]) -> bool:
    return field is not None and field.attr("type").lower() == "password"


def autocomplete_disabled(field: Optional[FieldState]) -> bool:
    return field is not None and field.attr("autocomplete").lower() in ("off", "new-password")


# ── access control ─────────────────────────────────────────────

def access_denied(location: str, content: str) -> Optional[str]:
    """Indicator showing a protected resource refused anonymous access."""
    return (find_marker(location, _DENIED_LOCATION)
            or find_marker(content, _DENIED_CONTENT))


def unprotected_access(location: str, expected_url: str, content: str) -> bool:
    """
    Anonymous request stayed on the protected URL, got no denial and no login
    prompt. A redirect elsewhere counts as protected.
    """
    if location != expected_url:
        return False
    if access_denied(location, content):
        return False
    return find_marker(content, ("login", "signin")) is None


def admin_page_exposed(location: str, expected_url: str, content: str) -> Optional[str]:
    if location != expected_url:
        return None
    if find_marker(content, _NOT_ADMIN_CONTENT):
        return None
    return find_marker(content, ("admin",))
