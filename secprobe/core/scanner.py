"""
OWASP ZAP orchestration.

ZapTransport speaks the ZAP JSON API over httpx; ScannerController keeps one
ScanJob per (kind, target) and drives it Idle → Running → Complete|Failed.
Polling never raises: a transport error reads as progress -1.
"""

import threading
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from secprobe.core.config import ScannerConfig
from secprobe.core.errors import CollaboratorUnavailable
from secprobe.core.models import (
    Finding, FindingKind, Payload, PayloadCategory, ScanJob, ScanKind, ScanStatus, Severity,
)

SQLI_RULES = (40018, 40019, 40020, 40021, 40022)
XSS_RULES = (40012, 40014, 40016, 40017)

RISK_SEVERITY = {
    "high": Severity.HIGH,
    "medium": Severity.MEDIUM,
    "low": Severity.LOW,
    "informational": Severity.INFO,
}

CONFIDENCE = {
    "confirmed": "confirmed",
    "high": "firm",
    "medium": "firm",
    "low": "tentative",
}

REPORT_FORMATS = ("html", "xml", "json", "md")


class ZapTransport:
    def __init__(self, config: Optional[ScannerConfig] = None,
                 client: Optional[httpx.Client] = None, logger=None):
        self.config = config or ScannerConfig()
        self.logger = logger
        self.client = client or httpx.Client(
            base_url=self.config.base_url, timeout=self.config.request_timeout)

    def _request(self, path: str, **params) -> httpx.Response:
        if self.config.api_key:
            params["apikey"] = self.config.api_key
        try:
            resp = self.client.get(path, params=params)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise CollaboratorUnavailable("scanner", f"{path}: {e}") from e
        return resp

    def _json(self, path: str, key: str, **params) -> Any:
        resp = self._request(path, **params)
        try:
            data = resp.json()
        except ValueError as e:
            raise CollaboratorUnavailable("scanner", f"{path}: invalid JSON") from e
        if not isinstance(data, dict) or key not in data:
            raise CollaboratorUnavailable("scanner", f"{path}: missing '{key}' in response")
        return data[key]

    def _int(self, path: str, key: str, **params) -> int:
        raw = self._json(path, key, **params)
        try:
            return int(raw)
        except (TypeError, ValueError) as e:
            raise CollaboratorUnavailable("scanner", f"{path}: non-numeric {key} {raw!r}") from e

    # ── views ──────────────────────────────────────────────────

    def version(self) -> str:
        return str(self._json("/JSON/core/view/version/", "version"))

    def spider_status(self, scan_id: str) -> int:
        return self._int("/JSON/spider/view/status/", "status", scanId=scan_id)

    def active_scan_status(self, scan_id: str) -> int:
        return self._int("/JSON/ascan/view/status/", "status", scanId=scan_id)

    def alerts(self, baseurl: str) -> List[Dict[str, Any]]:
        alerts = self._json("/JSON/core/view/alerts/", "alerts", baseurl=baseurl)
        if not isinstance(alerts, list):
            raise CollaboratorUnavailable("scanner", "alerts: expected a list")
        return alerts

    # ── actions ────────────────────────────────────────────────

    def spider_scan(self, url: str) -> str:
        return str(self._json("/JSON/spider/action/scan/", "scan", url=url))

    def active_scan(self, url: str) -> str:
        return str(self._json("/JSON/ascan/action/scan/", "scan", url=url, recurse="true"))

    def disable_all_scanners(self) -> None:
        self._json("/JSON/ascan/action/disableAllScanners/", "Result")

    def enable_scanners(self, ids: Iterable[int]) -> None:
        self._json("/JSON/ascan/action/enableScanners/", "Result",
                   ids=",".join(str(i) for i in ids))

    def new_session(self) -> None:
        self._json("/JSON/core/action/newSession/", "Result", overwrite="true")

    def shutdown(self) -> None:
        self._json("/JSON/core/action/shutdown/", "Result")

    def report(self, fmt: str = "html") -> str:
        if fmt not in REPORT_FORMATS:
            raise ValueError(f"Unsupported report format: {fmt}")
        return self._request(f"/OTHER/core/other/{fmt}report/").text

    def close(self) -> None:
        self.client.close()


class ScannerController:
    def __init__(self, transport: ZapTransport, config: Optional[ScannerConfig] = None,
                 sleep=time.sleep, logger=None):
        self.transport = transport
        self.config = config or ScannerConfig()
        self.sleep = sleep
        self.logger = logger
        self.jobs: Dict[str, ScanJob] = {}
        self._remote: Dict[str, str] = {}
        self._by_target: Dict[Tuple[ScanKind, str], str] = {}
        self._lock = threading.Lock()

    # ── jobs ───────────────────────────────────────────────────

    def job(self, job_id: str) -> Optional[ScanJob]:
        return self.jobs.get(job_id)

    def job_for(self, kind: ScanKind, target_url: str) -> Optional[ScanJob]:
        job_id = self._by_target.get((kind, target_url))
        return self.jobs.get(job_id) if job_id else None

    def running(self) -> bool:
        with self._lock:
            return any(j.status is ScanStatus.RUNNING for j in self.jobs.values())

    def start(self, kind: ScanKind, target_url: str) -> Optional[str]:
        with self._lock:
            current = self.job_for(kind, target_url)
            if current is not None and current.status is ScanStatus.RUNNING:
                return current.id

        try:
            if kind is ScanKind.SPIDER:
                remote = self.transport.spider_scan(target_url)
            else:
                remote = self.transport.active_scan(target_url)
        except CollaboratorUnavailable as e:
            if self.logger:
                self.logger.warn(f"Could not start {kind.value} on {target_url}: {e}")
            return None

        job_id = f"{kind.value}-{remote}"
        with self._lock:
            self.jobs[job_id] = ScanJob(id=job_id, kind=kind, target_url=target_url,
                                        status=ScanStatus.RUNNING)
            self._remote[job_id] = remote
            self._by_target[(kind, target_url)] = job_id
        if self.logger:
            self.logger.info(f"Started {kind.value} on {target_url} (scan id {remote})")
        return job_id

    def poll(self, job_id: str) -> int:
        """Progress 0-100, or -1 when it could not be read."""
        job = self.jobs.get(job_id)
        if job is None:
            return -1
        remote = self._remote[job_id]
        try:
            if job.kind is ScanKind.SPIDER:
                pct = self.transport.spider_status(remote)
            else:
                pct = self.transport.active_scan_status(remote)
        except CollaboratorUnavailable as e:
            if self.logger:
                self.logger.debug(f"Poll of {job_id} failed: {e}")
            return -1

        pct = max(0, min(100, pct))
        with self._lock:
            job.progress_percent = pct
            if pct >= 100 and job.status is ScanStatus.RUNNING:
                job.status = ScanStatus.COMPLETE
        return pct

    def await_completion(self, job_id: str) -> ScanStatus:
        job = self.jobs.get(job_id)
        if job is None:
            return ScanStatus.FAILED
        interval = (self.config.active_interval if job.kind is ScanKind.ACTIVE_SCAN
                    else self.config.spider_interval)
        misses = 0

        while True:
            if job.status.terminal:
                return job.status

            pct = self.poll(job_id)
            if job.status is ScanStatus.FAILED:
                return ScanStatus.FAILED
            if pct >= 100:
                if self.logger:
                    self.logger.ok(f"{job.kind.value} on {job.target_url} complete")
                return ScanStatus.COMPLETE

            if pct < 0:
                misses += 1
                if misses >= self.config.max_indeterminate_polls:
                    self._fail(job, f"no progress readable after {misses} polls")
                    return ScanStatus.FAILED
            else:
                misses = 0
                if self.logger:
                    self.logger.debug(f"{job.kind.value} progress: {pct}%")

            self.sleep(interval)

    def await_with_deadline(self, job_id: str, timeout_s: float) -> ScanStatus:
        """await_completion bounded by *timeout_s*; a late job is abandoned, not stopped on the scanner."""
        outcome: Dict[str, ScanStatus] = {}

        def _wait():
            outcome["status"] = self.await_completion(job_id)

        worker = threading.Thread(target=_wait, name=f"await-{job_id}", daemon=True)
        worker.start()
        worker.join(timeout_s)
        if worker.is_alive():
            self.abandon(job_id)
            return ScanStatus.FAILED
        return outcome.get("status", ScanStatus.FAILED)

    def abandon(self, job_id: str) -> None:
        job = self.jobs.get(job_id)
        if job is not None:
            self._fail(job, "abandoned")

    def _fail(self, job: ScanJob, reason: str) -> None:
        with self._lock:
            if job.status.terminal:
                return
            job.status = ScanStatus.FAILED
        if self.logger:
            self.logger.fail(f"{job.kind.value} on {job.target_url} failed: {reason}")

    # ── policy & results ───────────────────────────────────────

    def narrow_policy(self, rule_ids: Iterable[int]) -> bool:
        """Enable only *rule_ids*; refused while a scan is running."""
        if self.running():
            if self.logger:
                self.logger.warn("Scan policy cannot change while a scan is running")
            return False
        ids = list(rule_ids)
        try:
            self.transport.disable_all_scanners()
            self.transport.enable_scanners(ids)
        except CollaboratorUnavailable as e:
            if self.logger:
                self.logger.warn(f"Could not narrow scan policy: {e}")
            return False
        if self.logger:
            self.logger.info(f"Scan policy narrowed to rules {ids}")
        return True

    def fetch_findings(self, target_url: str) -> List[Finding]:
        job = self.job_for(ScanKind.ACTIVE_SCAN, target_url)
        if job is None or job.status is not ScanStatus.COMPLETE:
            if self.logger:
                self.logger.warn(f"No completed active scan for {target_url}; not fetching alerts")
            return []
        try:
            alerts = self.transport.alerts(target_url)
        except CollaboratorUnavailable as e:
            if self.logger:
                self.logger.warn(f"Could not fetch alerts: {e}")
            return []

        findings = []
        for alert in alerts:
            finding = alert_to_finding(alert)
            if finding is not None:
                findings.append(finding)
        if self.logger:
            self.logger.info(f"{len(findings)} scanner alerts for {target_url}")
        return findings

    def scan(self, target_url: str, rule_ids: Optional[Iterable[int]] = None,
             timeout_s: Optional[float] = None) -> List[Finding]:
        """Spider, optionally narrow the policy, active-scan, then fetch alerts."""
        timeout_s = self.config.scan_timeout if timeout_s is None else timeout_s

        def _await(job_id: str) -> ScanStatus:
            if timeout_s is None:
                return self.await_completion(job_id)
            return self.await_with_deadline(job_id, timeout_s)

        spider = self.start(ScanKind.SPIDER, target_url)
        if spider is None or _await(spider) is not ScanStatus.COMPLETE:
            return []
        if rule_ids is not None and not self.narrow_policy(rule_ids):
            return []
        active = self.start(ScanKind.ACTIVE_SCAN, target_url)
        if active is None or _await(active) is not ScanStatus.COMPLETE:
            return []
        return self.fetch_findings(target_url)

    # ── scanner housekeeping ───────────────────────────────────

    def is_available(self) -> bool:
        return self.version() is not None

    def version(self) -> Optional[str]:
        try:
            return self.transport.version()
        except CollaboratorUnavailable as e:
            if self.logger:
                self.logger.debug(f"Scanner not reachable: {e}")
            return None

    def clear_session(self) -> bool:
        try:
            self.transport.new_session()
        except CollaboratorUnavailable as e:
            if self.logger:
                self.logger.warn(f"Could not reset scanner session: {e}")
            return False
        with self._lock:
            self.jobs.clear()
            self._remote.clear()
            self._by_target.clear()
        return True

    def shutdown(self) -> bool:
        try:
            self.transport.shutdown()
        except CollaboratorUnavailable as e:
            if self.logger:
                self.logger.warn(f"Could not shut scanner down: {e}")
            return False
        return True

    def high_alert_count(self, target_url: str) -> int:
        try:
            alerts = self.transport.alerts(target_url)
        except CollaboratorUnavailable:
            return -1
        return sum(1 for a in alerts if str(a.get("risk", "")).lower() == "high")

    def report(self, fmt: str = "html") -> Optional[str]:
        try:
            return self.transport.report(fmt)
        except CollaboratorUnavailable as e:
            if self.logger:
                self.logger.warn(f"Could not generate {fmt} report: {e}")
            return None


def alert_to_finding(alert: Dict[str, Any]) -> Optional[Finding]:
    """One ZAP alert → Finding; false positives are dropped."""
    conf_raw = str(alert.get("confidence", "")).lower()
    if conf_raw == "false positive":
        return None
    severity = RISK_SEVERITY.get(str(alert.get("risk", "")).lower(), Severity.INFO)
    confidence = CONFIDENCE.get(conf_raw, "tentative")

    attack = alert.get("attack") or ""
    where = alert.get("url") or ""
    if alert.get("param"):
        where = f"{where} ({alert['param']})"

    ambiguous = confidence == "tentative" or severity is Severity.INFO
    return Finding(
        kind=FindingKind.CLASSIFICATION_AMBIGUOUS if ambiguous else FindingKind.POLICY_VIOLATION,
        title=alert.get("alert") or alert.get("name") or "Scanner Alert",
        severity=severity,
        target_description=where,
        evidence=alert.get("evidence") or attack,
        payload=Payload(PayloadCategory.CUSTOM, attack) if attack else None,
        confidence=confidence,
        source="scanner",
    )
