"""
Cross-site scripting heuristics.

Two signals, different confidence:
  1) a blocking dialog after submission means the script ran (confirmed);
  2) the payload reappearing verbatim, without &lt;/&gt; encoding, means it
     was reflected (firm, not proven executable).
Password fields are masked and never rendered, so reflection is not checked
there. Reflection is only judged for XSS and custom payloads.
"""

from enum import Enum
from html import escape, unescape
from typing import Optional
from urllib.parse import unquote

from secprobe.checkers.base import BaseChecker, snippet
from secprobe.core.models import (
    Finding, Observation, Payload, PayloadCategory, ProbeTarget, Severity, TargetRole,
)


class Reflection(Enum):
    RAW = "raw"            # verbatim, unencoded
    ENCODED = "encoded"    # < > turned into &lt; &gt;
    DECODED = "decoded"    # raw absent but its decoded form is live in the page
    ABSENT = "absent"


def is_reflected(content: Optional[str], payload: str) -> bool:
    return bool(payload) and bool(content) and payload in content


def _encoded_forms(payload: str):
    yield payload.replace("<", "&lt;").replace(">", "&gt;")
    yield escape(payload, quote=False)
    yield escape(payload, quote=True)


def _decoded_forms(payload: str):
    for dec in (unescape(payload), unquote(payload)):
        if dec != payload:
            yield dec


def reflection_state(content: Optional[str], payload: str) -> Reflection:
    if not content or not payload:
        return Reflection.ABSENT
    if payload in content:
        return Reflection.RAW
    if "<" in payload or ">" in payload:
        if any(form in content for form in _encoded_forms(payload)):
            return Reflection.ENCODED
    if any(dec in content for dec in _decoded_forms(payload)):
        return Reflection.DECODED
    return Reflection.ABSENT


def is_properly_encoded(content: Optional[str], payload: str) -> bool:
    return reflection_state(content, payload) in (Reflection.ENCODED, Reflection.ABSENT)


def execution_evidence(observation: Observation) -> Optional[str]:
    """Dialog text captured after submission, if a dialog appeared."""
    if observation.dialog_present:
        return observation.dialog_text
    return None


class XSSExecution(BaseChecker):

    name = "Cross-Site Scripting - Script Execution"

    def check(self, observation: Observation, payload: Payload,
              target: ProbeTarget) -> Optional[Finding]:
        text = execution_evidence(observation)
        if text is None:
            return None
        return self.violation(
            target, payload,
            evidence=f"dialog: {text}",
            severity=Severity.HIGH,
            confidence="confirmed",
        )


class XSSReflection(BaseChecker):

    name = "Cross-Site Scripting - Reflected"

    def applies_to(self, target: ProbeTarget, payload: Payload) -> bool:
        if target.role is TargetRole.PASSWORD:
            return False
        return payload.category.is_xss or payload.category is PayloadCategory.CUSTOM

    def check(self, observation: Observation, payload: Payload,
              target: ProbeTarget) -> Optional[Finding]:
        state = reflection_state(observation.content, payload.value)
        if state is Reflection.RAW:
            return self.violation(
                target, payload,
                evidence=snippet(observation.content, payload.value),
                severity=Severity.MEDIUM,
            )
        if state is Reflection.DECODED:
            dec = next(d for d in _decoded_forms(payload.value) if d in observation.content)
            return self.violation(
                target, payload,
                evidence=snippet(observation.content, dec),
                severity=Severity.MEDIUM,
                title="Cross-Site Scripting - Encoding Bypass",
            )
        return None
