"""Shared data models for the probe engine."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict


# ── payloads & targets ─────────────────────────────────────────

class PayloadCategory(Enum):
    SQLI_BASIC = "sqli-basic"
    SQLI_UNION = "sqli-union"
    SQLI_ERROR = "sqli-error"
    SQLI_DESTRUCTIVE = "sqli-destructive"
    SQLI_TIME = "sqli-time"
    XSS_BASIC = "xss-basic"
    XSS_EVENT = "xss-event"
    XSS_PROTOCOL = "xss-protocol"
    XSS_ENCODED = "xss-encoded"
    XSS_DOM = "xss-dom"
    XSS_POLYGLOT = "xss-polyglot"
    PATH_TRAVERSAL = "path-traversal"
    LDAP = "ldap"
    COMMAND_INJECTION = "command-injection"
    HEADER_INJECTION = "header-injection"
    CUSTOM = "custom"

    @property
    def is_xss(self) -> bool:
        return self.value.startswith("xss-")

    @property
    def is_sqli(self) -> bool:
        return self.value.startswith("sqli-")

    @property
    def family(self) -> str:
        """Vulnerability class used in finding titles."""
        if self.is_sqli:
            return "SQL Injection"
        if self.is_xss:
            return "Cross-Site Scripting"
        return _FAMILIES.get(self.value, "Injection")


_FAMILIES = {
    "path-traversal": "Path Traversal",
    "ldap": "LDAP Injection",
    "command-injection": "Command Injection",
    "header-injection": "Header Injection",
}


@dataclass(frozen=True)
class Payload:
    """One attack string from the corpus or a payload file."""
    category: PayloadCategory
    value: str

    def __str__(self):
        return self.value


class TargetRole(Enum):
    USERNAME = "username"
    PASSWORD = "password"
    SEARCH = "search"
    GENERIC_PARAM = "generic-param"


class Surface(Enum):
    FORM_FIELD = "form-field"
    URL_PARAMETER = "url-parameter"
    PATH = "path"


@dataclass(frozen=True)
class ProbeTarget:
    """
    Input surface under test.

    FORM_FIELD    reference = field locator, page = path of the form
    URL_PARAMETER reference = literal prefix the payload is appended to
    PATH          reference = navigable path
    """
    surface: Surface
    reference: str
    role: TargetRole = TargetRole.GENERIC_PARAM
    page: str = ""

    def describe(self) -> str:
        if self.surface is Surface.FORM_FIELD:
            return f"{self.page} {self.reference} ({self.role.value})"
        return f"{self.reference} ({self.role.value})"


# ── observations ───────────────────────────────────────────────

@dataclass(frozen=True)
class FieldState:
    """Snapshot of one located element."""
    text: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)
    visible: bool = True

    def attr(self, name: str) -> str:
        return (self.attributes.get(name) or "").strip()


@dataclass(frozen=True)
class Observation:
    """What the browser showed after one probe submission."""
    content: str = ""
    dialog_text: Optional[str] = None
    elapsed_ms: float = 0.0
    location: str = ""

    @property
    def dialog_present(self) -> bool:
        return self.dialog_text is not None


# ── findings ───────────────────────────────────────────────────

class Severity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class FindingKind(Enum):
    POLICY_VIOLATION = "policy-violation"
    CLASSIFICATION_AMBIGUOUS = "classification-ambiguous"
    COLLABORATOR_UNAVAILABLE = "collaborator-unavailable"


@dataclass(frozen=True)
class Finding:
    """A single evidence-backed conclusion. Never mutated after creation."""
    kind: FindingKind
    title: str
    severity: Severity
    target_description: str
    evidence: str
    payload: Optional[Payload] = None
    confidence: str = "firm"       # "confirmed", "firm", "tentative"
    source: str = "probe"          # "probe", "scanner"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "title": self.title,
            "severity": self.severity.value,
            "target": self.target_description,
            "evidence": self.evidence,
            "payload": self.payload.value if self.payload else None,
            "category": self.payload.category.value if self.payload else None,
            "confidence": self.confidence,
            "source": self.source,
        }

    def __str__(self):
        pay = f" payload={self.payload.value!r}" if self.payload else ""
        return (f"[{self.severity.value.upper()}][{self.confidence}] {self.title} "
                f"@ {self.target_description}{pay}")


# ── session ────────────────────────────────────────────────────

@dataclass(frozen=True)
class SessionSnapshot:
    cookie_name: str
    value: str
    secure: bool = False
    http_only: bool = False
    captured_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class EntropyReport:
    length: int
    has_digits: bool
    has_letters: bool

    @property
    def weak(self) -> bool:
        return self.length < 20

    @property
    def low_variety(self) -> bool:
        return not (self.has_digits and self.has_letters)


@dataclass(frozen=True)
class FlagsReport:
    missing_secure: bool
    missing_http_only: bool


@dataclass(frozen=True)
class LockoutResult:
    detected: bool
    attempts: int
    evidence: str = ""


# ── external scanner ───────────────────────────────────────────

class ScanKind(Enum):
    SPIDER = "spider"
    ACTIVE_SCAN = "active-scan"


class ScanStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ScanStatus.COMPLETE, ScanStatus.FAILED)


@dataclass
class ScanJob:
    """Owned by the scanner controller; status moves Idle → Running → Complete|Failed."""
    id: Optional[str]
    kind: ScanKind
    target_url: str
    status: ScanStatus = ScanStatus.IDLE
    progress_percent: int = 0
