import json
import os
import threading
import uuid
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

from secprobe.core.models import Finding, FindingKind

# one writer at a time across workers
_FLUSH_LOCK = threading.Lock()


def new_run_id() -> str:
    return datetime.now().strftime("%Y%m%d%H%M%S-") + uuid.uuid4().hex[:8]


class FindingsLog:
    """Append-only record of one worker's findings, notes and artifacts."""

    def __init__(self, worker: Optional[str] = None, run_id: Optional[str] = None):
        self.worker = worker or f"worker-{threading.get_ident()}"
        # workers of one run share the id; a report from another run is replaced
        self.run_id = run_id or new_run_id()
        self._findings: List[Finding] = []
        self.notes: List[Tuple[str, str]] = []
        self.artifacts: List[str] = []

    def append(self, finding: Finding) -> None:
        self._findings.append(finding)

    def note(self, level: str, text: str) -> None:
        self.notes.append((level, text))

    @property
    def findings(self) -> Tuple[Finding, ...]:
        return tuple(self._findings)

    def violations(self) -> List[Finding]:
        return [f for f in self._findings if f.kind is FindingKind.POLICY_VIOLATION]

    def __len__(self) -> int:
        return len(self._findings)

    def __iter__(self) -> Iterator[Finding]:
        return iter(tuple(self._findings))


class Reporter:
    """Echoes to the console log and records into a FindingsLog."""

    def __init__(self, logger=None, log: Optional[FindingsLog] = None):
        self.logger = logger
        self.log = log if log is not None else FindingsLog()

    def record_finding(self, finding: Finding) -> None:
        self.log.append(finding)
        if self.logger:
            self.logger.finding(finding)

    def record_info(self, text: str) -> None:
        self.log.note("info", text)
        if self.logger:
            self.logger.info(text)

    def record_warning(self, text: str) -> None:
        self.log.note("warning", text)
        if self.logger:
            self.logger.warn(text)

    def record_pass(self, text: str) -> None:
        self.log.note("pass", text)
        if self.logger:
            self.logger.ok(text)

    def attach_artifact(self, path: str) -> None:
        self.log.artifacts.append(path)
        if self.logger:
            self.logger.info(f"Artifact saved: {path}")


def _read_report(path: str) -> dict:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def flush_findings(log: FindingsLog, path: str, logger=None) -> int:
    """
    Merge *log* into the JSON report at *path*, keeping entries other workers
    of the same run already flushed. A report left by a different run is
    replaced. Returns the total number of findings in the report.
    """
    with _FLUSH_LOCK:
        report = _read_report(path)
        if report.get("run") != log.run_id:
            report = {}
        findings = list(report.get("findings") or [])
        artifacts = list(report.get("artifacts") or [])

        for f in log.findings:
            entry = f.to_dict()
            entry["worker"] = log.worker
            findings.append(entry)
        artifacts.extend(a for a in log.artifacts if a not in artifacts)

        report = {
            "run": log.run_id,
            "generated": datetime.now().isoformat(timespec="seconds"),
            "total": len(findings),
            "violations": sum(1 for e in findings if e.get("kind") == FindingKind.POLICY_VIOLATION.value),
            "findings": findings,
            "artifacts": artifacts,
        }

        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2)

    if logger:
        logger.info(f"{len(log)} findings from {log.worker} written to {path} ({len(findings)} total)")
    return len(findings)
