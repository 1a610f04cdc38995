import re
from typing import Optional

from secprobe.checkers.base import BaseChecker, find_marker, snippet
from secprobe.core.models import (
    Finding, FindingKind, Observation, Payload, ProbeTarget, Severity,
)

# Engine-specific strings; order matters, first match is reported.
SQL_ERROR_FINGERPRINTS = (
    "sql syntax",
    "mysql_fetch",
    "ORA-",
    "SQLite",
    "PostgreSQL",
    "Microsoft SQL",
    "ODBC",
    "syntax error",
    "unclosed quotation",
    "quoted string not properly terminated",
)

REQUESTED_DELAY_MS = 5000
TIMING_THRESHOLD_MS = 4000

_TIME_RX = re.compile(r"\bSLEEP\s*\(|WAITFOR\s+DELAY|pg_sleep\s*\(|BENCHMARK\s*\(", re.I)


def sql_error_evidence(content: Optional[str]) -> Optional[str]:
    """The DB-error fingerprint found in *content*, as it appears there, else None."""
    return find_marker(content, SQL_ERROR_FINGERPRINTS)


def contains_sql_error(content: Optional[str]) -> bool:
    return sql_error_evidence(content) is not None


def is_time_based(payload: str) -> bool:
    return bool(_TIME_RX.search(payload or ""))


def is_time_delayed(elapsed_ms: float, threshold_ms: float = TIMING_THRESHOLD_MS) -> bool:
    # threshold sits below REQUESTED_DELAY_MS to absorb jitter
    return elapsed_ms > threshold_ms


def results_inflated(actual: int, baseline: int) -> bool:
    """More rows than a benign query returned. Heuristic, tentative at best."""
    return actual > baseline


class SQLiError(BaseChecker):

    name = "SQL Injection - Error Disclosure"

    def check(self, observation: Observation, payload: Payload,
              target: ProbeTarget) -> Optional[Finding]:
        marker = sql_error_evidence(observation.content)
        if marker is None:
            return None
        return self.violation(
            target, payload,
            evidence=snippet(observation.content, marker) or marker,
            severity=Severity.HIGH,
            confidence="firm",
        )


class SQLiTiming(BaseChecker):

    name = "Time-based Blind SQL Injection"

    def __init__(self, threshold_ms: float = TIMING_THRESHOLD_MS):
        self.threshold_ms = threshold_ms

    def applies_to(self, target: ProbeTarget, payload: Payload) -> bool:
        return is_time_based(payload.value)

    def check(self, observation: Observation, payload: Payload,
              target: ProbeTarget) -> Optional[Finding]:
        if not is_time_delayed(observation.elapsed_ms, self.threshold_ms):
            return None
        return self.violation(
            target, payload,
            evidence=f"response took {observation.elapsed_ms:.0f} ms "
                     f"(threshold {self.threshold_ms:.0f} ms)",
            severity=Severity.HIGH,
            confidence="firm",
        )


def inflation_finding(target: ProbeTarget, payload: Payload, actual: int,
                      baseline: int) -> Finding:
    return Finding(
        kind=FindingKind.CLASSIFICATION_AMBIGUOUS,
        title="SQL Injection - Result Inflation",
        severity=Severity.MEDIUM,
        target_description=target.describe(),
        evidence=f"{actual} results vs baseline {baseline}",
        payload=payload,
        confidence="tentative",
    )
