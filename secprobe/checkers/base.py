"""Abstract base for observation checkers, plus shared text helpers."""

from abc import ABC, abstractmethod
from typing import Iterable, Optional
import random
import string

from secprobe.core.models import (
    Finding, FindingKind, Observation, Payload, ProbeTarget, Severity,
)


class BaseChecker(ABC):
    """Every checker must implement check(); applies_to() narrows by role/payload."""

    name: str = "Unnamed Checker"

    # ── public API ──────────────────────────────────────────────

    def applies_to(self, target: ProbeTarget, payload: Payload) -> bool:
        return True

    @abstractmethod
    def check(
        self,
        observation: Observation,
        payload: Payload,
        target: ProbeTarget,
    ) -> Optional[Finding]:
        """
        Classify *observation* (post-submission) for *payload* on *target*.
        Return a Finding if the heuristic fired, else None.
        """
        ...

    # ── shared helpers ──────────────────────────────────────────

    @staticmethod
    def rand(n: int = 8) -> str:
        """Random alphanumeric canary string."""
        abc = string.ascii_letters + string.digits
        return "".join(random.choice(abc) for _ in range(n))

    def violation(self, target: ProbeTarget, payload: Optional[Payload], evidence: str,
                  severity: Severity = Severity.HIGH, confidence: str = "firm",
                  title: Optional[str] = None) -> Finding:
        return Finding(
            kind=FindingKind.POLICY_VIOLATION,
            title=title or self.name,
            severity=severity,
            target_description=target.describe(),
            evidence=evidence,
            payload=payload,
            confidence=confidence,
        )


def find_marker(text: Optional[str], markers: Iterable[str]) -> Optional[str]:
    """
    Case-insensitive search for the first marker (in *markers* order) present in
    *text*. Returns the slice of *text* that matched, as written there.
    """
    if not text:
        return None
    lower = text.lower()
    for marker in markers:
        idx = lower.find(marker.lower())
        if idx != -1:
            return text[idx:idx + len(marker)]
    return None


def snippet(text: str, needle: str, radius: int = 40) -> str:
    """*needle* with a little surrounding context from *text*, for evidence."""
    idx = text.find(needle)
    if idx == -1:
        return ""
    start = max(0, idx - radius)
    end = min(len(text), idx + len(needle) + radius)
    return text[start:end]
