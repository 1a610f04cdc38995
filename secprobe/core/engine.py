import os
import re
import time
from dataclasses import replace
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote_plus

from colorama import Style

from secprobe.checkers.auth import (
    ADMIN_PATHS, DEFAULT_CREDENTIALS, PROTECTED_PATHS, AuthState, admin_page_exposed,
    authentication_state, autocomplete_disabled, enumeration_evidence, lockout_evidence,
    password_masked, unprotected_access, verbose_error_evidence,
)
from secprobe.checkers.base import BaseChecker, snippet
from secprobe.checkers.exposure import (
    COMMENT_PAGES, ERROR_PAGES, LISTING_DIRS, directory_listing_evidence, framework_disclosure,
    has_csp_meta, sensitive_comments, server_disclosure, stack_trace_evidence,
)
from secprobe.checkers.session import (
    SESSION_COOKIE_NAMES, entropy_check, fixation_check, flags_check, is_session_cookie,
    sensitive_storage_keys, session_in_url, session_snapshot, snapshot_cookies,
)
from secprobe.checkers.sqli import SQLiError, SQLiTiming, inflation_finding, results_inflated
from secprobe.checkers.xss import XSSExecution, XSSReflection
from secprobe.core.config import ProbeConfig
from secprobe.core.corpus import (
    SQLI_DEFAULT, XSS_DEFAULT, all_payloads, payloads_for, sql_injection_payloads,
)
from secprobe.core.errors import CollaboratorUnavailable
from secprobe.core.models import (
    Finding, FindingKind, LockoutResult, Observation, Payload, PayloadCategory, ProbeTarget,
    Severity, Surface, TargetRole,
)
from secprobe.parsers.payloads import load_payload_file

ENUM_UNKNOWN_USER = "nonexistent_user_12345"
ENUM_KNOWN_USER = "admin"
WRONG_PASSWORD = "wrongpassword"

DOM_HASH_PAYLOADS = tuple(Payload(PayloadCategory.XSS_DOM, v) for v in (
    "#<script>alert('XSS')</script>",
    "#<img src=x onerror=alert('XSS')>",
    "#javascript:alert('XSS')",
))
DOM_HASH_SETTLE = 0.5
DOM_PARAM_SETTLE = 0.3

_STORAGE_JS = "name => Object.assign({}, window[name])"
_SLUG_RX = re.compile(r"[^a-z0-9]+")

GROUPS = ("sqli", "xss", "auth", "session", "exposure")


class ProbeEngine:
    def __init__(self, driver, reporter, config: Optional[ProbeConfig] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic, logger=None):
        self.name = "secprobe"
        self.version = "1.0.0"
        self.driver = driver
        self.reporter = reporter
        self.config = config or ProbeConfig()
        self.sleep = sleep
        self.clock = clock
        self.logger = logger
        self.findings: List[Finding] = []

        self.sql_error = SQLiError()
        self.sql_timing = SQLiTiming(self.config.probes.timing_threshold_ms)
        self.xss_exec = XSSExecution()
        self.xss_reflect = XSSReflection()
        self.checkers: List[BaseChecker] = [
            self.sql_error, self.xss_exec, self.xss_reflect, self.sql_timing,
        ]

        self.custom_payloads: Tuple[Payload, ...] = ()
        for path in self.config.payload_files:
            self.custom_payloads += tuple(load_payload_file(path, logger=logger))

    # ── reporting ──────────────────────────────────────────────

    def _emit(self, finding: Finding, results: List[Finding]) -> None:
        results.append(finding)
        self.findings.append(finding)
        try:
            self.reporter.record_finding(finding)
        except Exception as e:
            if self.logger:
                self.logger.warn(f"Reporter failed to record finding: {e}")
        if finding.kind is FindingKind.POLICY_VIOLATION and self.config.probes.screenshot_dir:
            self._capture(finding)

    def _capture(self, finding: Finding) -> None:
        """Screenshot of the page a violation was seen on, attached as an artifact."""
        folder = self.config.probes.screenshot_dir
        slug = _SLUG_RX.sub("-", finding.title.lower()).strip("-")
        path = os.path.join(folder, f"{len(self.findings):03d}-{slug}.png")
        try:
            os.makedirs(folder, exist_ok=True)
            self.driver.screenshot(path)
        except (CollaboratorUnavailable, OSError) as e:
            if self.logger:
                self.logger.warn(f"Could not capture {finding.title}: {e}")
            return
        try:
            self.reporter.attach_artifact(path)
        except Exception as e:
            if self.logger:
                self.logger.warn(f"Reporter failed to attach {path}: {e}")

    def _note(self, level: str, text: str) -> None:
        try:
            getattr(self.reporter, f"record_{level}")(text)
        except Exception as e:
            if self.logger:
                self.logger.warn(f"Reporter failed to record {level}: {e}")

    def _unavailable(self, probe: str, step: str, err: CollaboratorUnavailable,
                     results: List[Finding]) -> None:
        if self.logger:
            self.logger.fail(f"{probe} stopped at '{step}': {err}")
        self._emit(Finding(
            kind=FindingKind.COLLABORATOR_UNAVAILABLE,
            title=f"{probe} - Incomplete",
            severity=Severity.INFO,
            target_description=step,
            evidence=str(err),
            confidence="tentative",
        ), results)

    def _done(self, probe: str, results: List[Finding]) -> None:
        if not results:
            self._note("pass", f"No findings for {probe}")

    # ── browser helpers ────────────────────────────────────────

    def _url(self, path: str) -> str:
        return self.config.target.url(path)

    def _observe(self, started: float) -> Observation:
        elapsed_ms = (self.clock() - started) * 1000
        dialog = self.driver.dialog_text() if self.driver.dialog_present() else None
        return Observation(
            content=self.driver.page_content() or "",
            dialog_text=dialog,
            elapsed_ms=elapsed_ms,
            location=self.driver.current_url() or "",
        )

    def _dismiss(self) -> None:
        if self.driver.dialog_present():
            self.driver.accept_dialog()

    def _visit(self, url: str) -> Observation:
        started = self.clock()
        self.driver.navigate(url)
        obs = self._observe(started)
        self._dismiss()
        return obs

    def _submit_form(self, page: str, fields: Mapping[str, str], submit: str) -> Observation:
        self.driver.navigate(self._url(page))
        for locator, text in fields.items():
            self.driver.type(locator, text)
        started = self.clock()
        self.driver.click(submit)
        obs = self._observe(started)
        self._dismiss()
        return obs

    def _submit_login(self, username: str, password: str) -> Observation:
        lf = self.config.login
        return self._submit_form(
            self.config.target.login_path,
            {lf.username: username, lf.password: password},
            lf.submit,
        )

    def _capability_present(self) -> bool:
        return self.driver.find_field(self.config.login.logout) is not None

    def _error_text(self) -> str:
        el = self.driver.find_field(self.config.login.error)
        return el.text.strip() if el else ""

    def _session(self):
        return session_snapshot(snapshot_cookies(self.driver.get_cookies()))

    def _submit_locator(self, role: TargetRole) -> str:
        if role is TargetRole.SEARCH:
            return self.config.search.submit
        return self.config.login.submit

    # ── generic field probe ────────────────────────────────────

    def probe_field(self, target: ProbeTarget, payloads: Iterable[Payload],
                    companions: Optional[Mapping[str, str]] = None,
                    submit: Optional[str] = None) -> List[Finding]:
        """
        Submit every payload through *target* and classify each observation.
        Companion values containing FUZZ get the payload substituted.
        Never stops at the first hit.
        """
        results: List[Finding] = []
        payloads = list(payloads)
        submit = submit or self._submit_locator(target.role)
        auth_role = target.role in (TargetRole.USERNAME, TargetRole.PASSWORD)

        if self.logger:
            self.logger.info(f"Probing {target.describe()} with {len(payloads)} payloads")

        for payload in payloads:
            fields = {}
            for locator, text in (companions or {}).items():
                fields[locator] = text.replace("FUZZ", payload.value)
            fields[target.reference] = payload.value

            if self.logger and self.logger.verbose >= 2:
                self.logger.debug(f"→ {target.reference} = {self.logger.PAY}{payload.value}{Style.RESET_ALL}")

            try:
                obs = self._submit_form(target.page, fields, submit)
                capable = self._capability_present() if auth_role else False
            except CollaboratorUnavailable as e:
                self._unavailable(f"Field probe {target.describe()}",
                                  f"submit {payload.value!r}", e, results)
                return results

            for chk in self.checkers:
                if not chk.applies_to(target, payload):
                    continue
                finding = chk.check(obs, payload, target)
                if finding:
                    self._emit(finding, results)

            if auth_role:
                self._check_bypass(obs, capable, target, payload, results)

        self._done(target.describe(), results)
        return results

    def _check_bypass(self, obs: Observation, capable: bool, target: ProbeTarget,
                      payload: Payload, results: List[Finding]) -> None:
        state = authentication_state(obs, capable)
        if state is AuthState.AUTHENTICATED:
            self._emit(Finding(
                kind=FindingKind.POLICY_VIOLATION,
                title=f"{payload.category.family} - Authentication Bypass",
                severity=Severity.CRITICAL,
                target_description=target.describe(),
                evidence=f"post-auth control {self.config.login.logout} present at {obs.location}",
                payload=payload,
                confidence="confirmed",
            ), results)
            try:
                self.driver.clear_cookies()
            except CollaboratorUnavailable as e:
                if self.logger:
                    self.logger.warn(f"Could not reset session after bypass: {e}")
        elif state is AuthState.INCONCLUSIVE:
            self._emit(Finding(
                kind=FindingKind.CLASSIFICATION_AMBIGUOUS,
                title=f"{payload.category.family} - Possible Authentication Bypass",
                severity=Severity.MEDIUM,
                target_description=target.describe(),
                evidence=f"left the login page for {obs.location} without a post-auth control",
                payload=payload,
                confidence="tentative",
            ), results)

    # ── injection wrappers ─────────────────────────────────────

    def login_target(self, role: TargetRole = TargetRole.USERNAME) -> ProbeTarget:
        lf = self.config.login
        ref = lf.password if role is TargetRole.PASSWORD else lf.username
        return ProbeTarget(Surface.FORM_FIELD, ref, role, page=self.config.target.login_path)

    def search_target(self) -> ProbeTarget:
        return ProbeTarget(Surface.FORM_FIELD, self.config.search.field, TargetRole.SEARCH,
                           page=self.config.target.search_path)

    def probe_login_injection(self, payloads: Optional[Iterable[Payload]] = None,
                              role: TargetRole = TargetRole.USERNAME,
                              both_fields: bool = False) -> List[Finding]:
        lf = self.config.login
        payloads = sql_injection_payloads() if payloads is None else payloads
        target = self.login_target(role)
        if both_fields:
            other = lf.password if role is TargetRole.USERNAME else lf.username
            companions = {other: "FUZZ"}
        elif role is TargetRole.PASSWORD:
            companions = {lf.username: lf.lockout_username}
        else:
            companions = {lf.password: lf.test_password}
        return self.probe_field(target, payloads, companions, submit=lf.submit)

    def probe_search(self, payloads: Optional[Iterable[Payload]] = None) -> List[Finding]:
        payloads = sql_injection_payloads() if payloads is None else payloads
        return self.probe_field(self.search_target(), payloads, submit=self.config.search.submit)

    def probe_timing(self, target: Optional[ProbeTarget] = None,
                     payloads: Optional[Iterable[Payload]] = None) -> List[Finding]:
        target = target or self.login_target(TargetRole.USERNAME)
        payloads = all_payloads(PayloadCategory.SQLI_TIME) if payloads is None else payloads
        companions = None
        if target.page == self.config.target.login_path and target.role is TargetRole.USERNAME:
            companions = {self.config.login.password: "test"}
        return self.probe_field(target, payloads, companions)

    def probe_url_parameters(self, endpoints: Optional[Sequence[str]] = None,
                             payloads: Optional[Iterable[Payload]] = None) -> List[Finding]:
        """base_url + endpoint + payload, concatenated as-is. Stops at the first SQL error."""
        results: List[Finding] = []
        endpoints = self.config.probes.url_endpoints if endpoints is None else endpoints
        payloads = list(all_payloads(PayloadCategory.SQLI_BASIC) if payloads is None else payloads)
        base = self.config.target.base_url.rstrip("/")

        for endpoint in endpoints:
            target = ProbeTarget(Surface.URL_PARAMETER, endpoint)
            if self.logger:
                self.logger.info(f"Probing URL parameter {endpoint}")
            for payload in payloads:
                url = base + endpoint + payload.value
                if self.logger and self.logger.verbose >= 2:
                    self.logger.debug(f"→ GET {url}")
                try:
                    obs = self._visit(url)
                except CollaboratorUnavailable as e:
                    self._unavailable("URL parameter probe", f"GET {url}", e, results)
                    return results
                finding = self.sql_error.check(obs, payload, target)
                if finding:
                    self._emit(replace(finding, title="SQL Injection - URL Parameter"), results)
                    return results

        self._done("URL parameters", results)
        return results

    def probe_search_inflation(self, payloads: Optional[Iterable[Payload]] = None) -> List[Finding]:
        """Result counts above a benign baseline; inconclusive on its own."""
        results: List[Finding] = []
        sf = self.config.search
        target = self.search_target()
        payloads = sql_injection_payloads() if payloads is None else payloads
        try:
            baseline = sf.expected_results
            if baseline is None:
                canary = BaseChecker.rand(12)
                baseline = self._search_count(canary)
                if self.logger:
                    self.logger.debug(f"Canary search {canary!r} returned {baseline} results")
            for payload in payloads:
                count = self._search_count(payload.value)
                if results_inflated(count, baseline):
                    self._emit(inflation_finding(target, payload, count, baseline), results)
        except CollaboratorUnavailable as e:
            self._unavailable("Search result inflation", "search submission", e, results)
            return results
        self._done("search result inflation", results)
        return results

    def _search_count(self, text: str) -> int:
        sf = self.config.search
        self._submit_form(self.config.target.search_path, {sf.field: text}, sf.submit)
        return self.driver.count(sf.result_item)

    # ── authentication ─────────────────────────────────────────

    def probe_lockout(self, username: Optional[str] = None,
                      max_attempts: Optional[int] = None) -> LockoutResult:
        """
        Up to max_attempts + 2 wrong passwords, re-loading the login page each
        time; stops at the first lockout message.
        """
        results: List[Finding] = []
        username = username or self.config.login.lockout_username
        n = self.config.probes.max_attempts if max_attempts is None else max_attempts
        delay = self.config.probes.attempt_delay
        total = n + 2

        if self.logger:
            self.logger.info(f"Testing account lockout for {username!r} ({total} attempts)")

        for i in range(1, total + 1):
            try:
                obs = self._submit_login(username, f"{WRONG_PASSWORD}{i}")
            except CollaboratorUnavailable as e:
                self._unavailable("Account Lockout", f"attempt {i}", e, results)
                return LockoutResult(detected=False, attempts=i - 1)

            hit = lockout_evidence(obs.content)
            if hit:
                self._note("pass", f"Account locked after {i} failed attempts")
                return LockoutResult(detected=True, attempts=i,
                                     evidence=snippet(obs.content, hit) or hit)
            if delay and i < total:
                self.sleep(delay)

        self._emit(Finding(
            kind=FindingKind.POLICY_VIOLATION,
            title="Missing Account Lockout",
            severity=Severity.MEDIUM,
            target_description=self.login_target(TargetRole.PASSWORD).describe(),
            evidence=f"no lockout message after {total} failed attempts for {username!r}",
        ), results)
        return LockoutResult(detected=False, attempts=total)

    def probe_enumeration(self) -> List[Finding]:
        results: List[Finding] = []
        target = self.login_target(TargetRole.USERNAME)
        texts = []
        for user in (ENUM_UNKNOWN_USER, ENUM_KNOWN_USER):
            try:
                self._submit_login(user, WRONG_PASSWORD)
                texts.append(self._error_text())
            except CollaboratorUnavailable as e:
                self._unavailable("User Enumeration", f"login as {user}", e, results)
                return results

        evidence = enumeration_evidence(*texts)
        if evidence:
            self._emit(Finding(
                kind=FindingKind.POLICY_VIOLATION,
                title="User Enumeration",
                severity=Severity.MEDIUM,
                target_description=target.describe(),
                evidence=evidence,
            ), results)

        seen = set()
        for text in texts:
            hit = verbose_error_evidence(text)
            if hit and text not in seen:
                seen.add(text)
                self._emit(Finding(
                    kind=FindingKind.POLICY_VIOLATION,
                    title="Verbose Authentication Error",
                    severity=Severity.LOW,
                    target_description=target.describe(),
                    evidence=text,
                ), results)

        self._done("user enumeration", results)
        return results

    def probe_password_field(self) -> List[Finding]:
        results: List[Finding] = []
        target = self.login_target(TargetRole.PASSWORD)
        try:
            self.driver.navigate(self._url(self.config.target.login_path))
            field = self.driver.find_field(self.config.login.password)
        except CollaboratorUnavailable as e:
            self._unavailable("Password field", "load login page", e, results)
            return results

        if field is None:
            self._note("warning", f"Password field {self.config.login.password} not found")
            return results
        if not password_masked(field):
            self._emit(Finding(
                kind=FindingKind.POLICY_VIOLATION,
                title="Password Not Masked",
                severity=Severity.HIGH,
                target_description=target.describe(),
                evidence=f"type={field.attr('type') or '(none)'}",
            ), results)
        if not autocomplete_disabled(field):
            self._emit(Finding(
                kind=FindingKind.POLICY_VIOLATION,
                title="Password Autocomplete Enabled",
                severity=Severity.LOW,
                target_description=target.describe(),
                evidence=f"autocomplete={field.attr('autocomplete') or '(none)'}",
            ), results)
        self._done("password field", results)
        return results

    def probe_default_credentials(self, credentials: Iterable[Tuple[str, str]] = DEFAULT_CREDENTIALS) -> List[Finding]:
        results: List[Finding] = []
        target = self.login_target(TargetRole.USERNAME)
        for user, pwd in credentials:
            try:
                obs = self._submit_login(user, pwd)
                state = authentication_state(obs, self._capability_present())
                self.driver.clear_cookies()
            except CollaboratorUnavailable as e:
                self._unavailable("Default credentials", f"login as {user}", e, results)
                return results

            if state is AuthState.AUTHENTICATED:
                self._emit(Finding(
                    kind=FindingKind.POLICY_VIOLATION,
                    title="Default Credentials",
                    severity=Severity.CRITICAL,
                    target_description=target.describe(),
                    evidence=f"{user}/{pwd} accepted, landed on {obs.location}",
                    confidence="confirmed",
                ), results)
            elif state is AuthState.INCONCLUSIVE:
                self._emit(Finding(
                    kind=FindingKind.CLASSIFICATION_AMBIGUOUS,
                    title="Default Credentials",
                    severity=Severity.MEDIUM,
                    target_description=target.describe(),
                    evidence=f"{user}/{pwd} left the login page for {obs.location}",
                    confidence="tentative",
                ), results)
        self._done("default credentials", results)
        return results

    def probe_https(self) -> List[Finding]:
        results: List[Finding] = []
        tc = self.config.target
        target = ProbeTarget(Surface.PATH, tc.login_path)
        if not tc.encrypted:
            self._note("warning", "Base URL is not HTTPS")
            self._emit(Finding(
                kind=FindingKind.POLICY_VIOLATION,
                title="Missing HTTPS",
                severity=Severity.MEDIUM,
                target_description=target.describe(),
                evidence=tc.base_url,
            ), results)
            return results

        http_url = "http://" + tc.base_url[len("https://"):].rstrip("/") + tc.login_path
        try:
            self.driver.navigate(http_url)
            location = self.driver.current_url() or ""
        except CollaboratorUnavailable as e:
            self._unavailable("HTTPS enforcement", f"GET {http_url}", e, results)
            return results

        if not location.startswith("https://") and tc.login_path in location:
            self._emit(Finding(
                kind=FindingKind.POLICY_VIOLATION,
                title="HTTPS Not Enforced",
                severity=Severity.MEDIUM,
                target_description=target.describe(),
                evidence=location,
            ), results)
        self._done("HTTPS enforcement", results)
        return results

    # ── access control ─────────────────────────────────────────

    def probe_protected_paths(self, paths: Iterable[str] = PROTECTED_PATHS) -> List[Finding]:
        results: List[Finding] = []
        for path in paths:
            expected = self._url(path)
            try:
                self.driver.clear_cookies()
                obs = self._visit(expected)
            except CollaboratorUnavailable as e:
                self._unavailable("Protected paths", f"GET {path}", e, results)
                return results
            if self.logger:
                self.logger.debug(f"{path} → {obs.location}")
            if unprotected_access(obs.location, expected, obs.content):
                self._emit(Finding(
                    kind=FindingKind.POLICY_VIOLATION,
                    title="Authentication Bypass",
                    severity=Severity.HIGH,
                    target_description=ProbeTarget(Surface.PATH, path).describe(),
                    evidence=f"{obs.location} served without authentication",
                ), results)
        self._done("protected paths", results)
        return results

    def probe_admin_paths(self, paths: Iterable[str] = ADMIN_PATHS) -> List[Finding]:
        results: List[Finding] = []
        try:
            self.driver.clear_cookies()
        except CollaboratorUnavailable as e:
            self._unavailable("Forced browsing", "clear cookies", e, results)
            return results
        for path in paths:
            expected = self._url(path)
            try:
                obs = self._visit(expected)
            except CollaboratorUnavailable as e:
                self._unavailable("Forced browsing", f"GET {path}", e, results)
                return results
            hit = admin_page_exposed(obs.location, expected, obs.content)
            if hit:
                self._emit(Finding(
                    kind=FindingKind.POLICY_VIOLATION,
                    title="Forced Browsing",
                    severity=Severity.HIGH,
                    target_description=ProbeTarget(Surface.PATH, path).describe(),
                    evidence=snippet(obs.content, hit) or hit,
                ), results)
        self._done("admin paths", results)
        return results

    # ── session ────────────────────────────────────────────────

    def probe_fixation(self) -> List[Finding]:
        results: List[Finding] = []
        lf = self.config.login
        try:
            self.driver.navigate(self._url(self.config.target.login_path))
            before = self._session()
            if before is None:
                # no pre-auth session: see what a failed login issues
                self._submit_login(lf.test_username, WRONG_PASSWORD)
                after_fail = self._session()
            else:
                obs = self._submit_login(lf.test_username, lf.test_password)
                state = authentication_state(obs, self._capability_present())
                after = self._session()
        except CollaboratorUnavailable as e:
            self._unavailable("Session fixation", "login with test credentials", e, results)
            return results

        if before is None:
            if after_fail:
                self._note("info", f"No session before login; a failed login issued "
                                   f"{after_fail.cookie_name}={after_fail.value}")
            else:
                self._note("info", "No session before login; a failed login issued none")
            return results
        if state is AuthState.NOT_AUTHENTICATED:
            self._note("info", "Test credentials rejected; session fixation not verifiable")
            return results

        if fixation_check(before.value, after.value if after else None):
            confirmed = state is AuthState.AUTHENTICATED
            self._emit(Finding(
                kind=FindingKind.POLICY_VIOLATION if confirmed else FindingKind.CLASSIFICATION_AMBIGUOUS,
                title="Session Fixation",
                severity=Severity.HIGH,
                target_description=f"{self.config.target.login_path} ({before.cookie_name})",
                evidence=f"{before.cookie_name}={before.value} unchanged across login",
                confidence="firm" if confirmed else "tentative",
            ), results)
        else:
            self._note("pass", "Session ID regenerated after login")
        return results

    def probe_cookie_flags(self) -> List[Finding]:
        results: List[Finding] = []
        try:
            self.driver.navigate(self._url(self.config.target.login_path))
            cookies = snapshot_cookies(self.driver.get_cookies())
        except CollaboratorUnavailable as e:
            self._unavailable("Cookie flags", "read cookies", e, results)
            return results

        encrypted = self.config.target.encrypted
        for snap in cookies:
            if not (is_session_cookie(snap.cookie_name) or snap.cookie_name in SESSION_COOKIE_NAMES):
                continue
            flags = flags_check(snap, encrypted)
            where = f"cookie {snap.cookie_name}"
            if flags.missing_secure:
                self._emit(Finding(
                    kind=FindingKind.POLICY_VIOLATION,
                    title="Session Cookie Missing Secure Flag",
                    severity=Severity.MEDIUM,
                    target_description=where,
                    evidence=f"{snap.cookie_name}: secure=false",
                ), results)
            if flags.missing_http_only:
                self._emit(Finding(
                    kind=FindingKind.POLICY_VIOLATION,
                    title="Session Cookie Missing HttpOnly Flag",
                    severity=Severity.MEDIUM,
                    target_description=where,
                    evidence=f"{snap.cookie_name}: httpOnly=false",
                ), results)
        self._done("cookie flags", results)
        return results

    def probe_session_entropy(self) -> List[Finding]:
        results: List[Finding] = []
        try:
            self.driver.navigate(self._url(self.config.target.login_path))
            snap = self._session()
        except CollaboratorUnavailable as e:
            self._unavailable("Session entropy", "read cookies", e, results)
            return results

        if snap is None:
            self._note("info", "No session ID found for entropy analysis")
            return results
        report = entropy_check(snap.value)
        if report.weak:
            self._emit(Finding(
                kind=FindingKind.POLICY_VIOLATION,
                title="Weak Session ID",
                severity=Severity.MEDIUM,
                target_description=f"cookie {snap.cookie_name}",
                evidence=f"{snap.cookie_name}={snap.value} ({report.length} chars)",
            ), results)
        if report.low_variety:
            self._note("warning", f"Session ID {snap.cookie_name} may have low entropy")
        self._done("session entropy", results)
        return results

    def probe_session_in_url(self) -> List[Finding]:
        results: List[Finding] = []
        try:
            self.driver.navigate(self._url(self.config.target.login_path))
            url = self.driver.current_url() or ""
            snap = self._session()
        except CollaboratorUnavailable as e:
            self._unavailable("Session ID in URL", "load login page", e, results)
            return results

        hit = session_in_url(url, snap.value if snap else None)
        if hit:
            self._emit(Finding(
                kind=FindingKind.POLICY_VIOLATION,
                title="Session ID in URL",
                severity=Severity.HIGH,
                target_description=url,
                evidence=hit,
            ), results)
        self._done("session ID in URL", results)
        return results

    def probe_token_storage(self) -> List[Finding]:
        results: List[Finding] = []
        try:
            self.driver.navigate(self._url("/"))
            stores = {name: self.driver.execute_script(_STORAGE_JS, name)
                      for name in ("localStorage", "sessionStorage")}
        except CollaboratorUnavailable as e:
            self._unavailable("Token storage", "read web storage", e, results)
            return results

        for name, storage in stores.items():
            for key in sensitive_storage_keys(storage):
                self._emit(Finding(
                    kind=FindingKind.POLICY_VIOLATION,
                    title="Sensitive Data in Web Storage",
                    severity=Severity.MEDIUM,
                    target_description=name,
                    evidence=key,
                ), results)
        self._done("token storage", results)
        return results

    # ── exposure ───────────────────────────────────────────────

    def probe_html_comments(self, pages: Iterable[str] = COMMENT_PAGES) -> List[Finding]:
        results: List[Finding] = []
        for page in pages:
            try:
                obs = self._visit(self._url(page))
            except CollaboratorUnavailable as e:
                self._unavailable("HTML comments", f"GET {page}", e, results)
                return results
            for comment in sensitive_comments(obs.content):
                self._emit(Finding(
                    kind=FindingKind.POLICY_VIOLATION,
                    title="Sensitive HTML Comment",
                    severity=Severity.LOW,
                    target_description=ProbeTarget(Surface.PATH, page).describe(),
                    evidence=comment,
                ), results)
        self._done("HTML comments", results)
        return results

    def probe_error_pages(self, pages: Iterable[str] = ERROR_PAGES) -> List[Finding]:
        results: List[Finding] = []
        for page in pages:
            try:
                obs = self._visit(self._url(page))
            except CollaboratorUnavailable as e:
                self._unavailable("Error pages", f"GET {page}", e, results)
                return results
            where = ProbeTarget(Surface.PATH, page).describe()
            trace = stack_trace_evidence(obs.content)
            if trace:
                self._emit(Finding(
                    kind=FindingKind.POLICY_VIOLATION,
                    title="Verbose Error Page",
                    severity=Severity.MEDIUM,
                    target_description=where,
                    evidence=snippet(obs.content, trace) or trace,
                ), results)
            banner = server_disclosure(obs.content) or framework_disclosure(obs.content)
            if banner:
                self._emit(Finding(
                    kind=FindingKind.POLICY_VIOLATION,
                    title="Server Information Disclosure",
                    severity=Severity.LOW,
                    target_description=where,
                    evidence=snippet(obs.content, banner) or banner,
                ), results)
        self._done("error pages", results)
        return results

    def probe_directory_listing(self, dirs: Iterable[str] = LISTING_DIRS) -> List[Finding]:
        results: List[Finding] = []
        for path in dirs:
            try:
                obs = self._visit(self._url(path))
            except CollaboratorUnavailable as e:
                self._unavailable("Directory listing", f"GET {path}", e, results)
                return results
            hit = directory_listing_evidence(obs.content)
            if hit:
                self._emit(Finding(
                    kind=FindingKind.POLICY_VIOLATION,
                    title="Directory Listing",
                    severity=Severity.MEDIUM,
                    target_description=ProbeTarget(Surface.PATH, path).describe(),
                    evidence=snippet(obs.content, hit) or hit,
                ), results)
        self._done("directory listing", results)
        return results

    def probe_csp_meta(self) -> List[Finding]:
        results: List[Finding] = []
        try:
            obs = self._visit(self._url("/"))
        except CollaboratorUnavailable as e:
            self._unavailable("CSP meta", "GET /", e, results)
            return results
        if has_csp_meta(obs.content):
            self._note("pass", "Content-Security-Policy meta tag present")
        else:
            self._note("info", "No CSP meta tag; check the Content-Security-Policy header")
        return results

    # ── DOM XSS ────────────────────────────────────────────────

    def probe_dom_xss(self) -> List[Finding]:
        results: List[Finding] = []
        search_path = self.config.target.search_path
        search_url = self._url(search_path)

        visits = []
        for payload in DOM_HASH_PAYLOADS:
            target = ProbeTarget(Surface.URL_PARAMETER, f"{search_path}#", TargetRole.SEARCH)
            visits.append((target, payload, search_url + payload.value, DOM_HASH_SETTLE))
        for param in self.config.probes.dom_params:
            target = ProbeTarget(Surface.URL_PARAMETER, f"{search_path}?{param}=", TargetRole.SEARCH)
            for payload in all_payloads(PayloadCategory.XSS_BASIC):
                url = f"{search_url}?{param}={quote_plus(payload.value)}"
                visits.append((target, payload, url, DOM_PARAM_SETTLE))

        for target, payload, url, settle in visits:
            try:
                self.driver.navigate(url)
                self.sleep(settle)
                obs = self._observe(self.clock())
                self._dismiss()
            except CollaboratorUnavailable as e:
                self._unavailable("DOM XSS", f"GET {url}", e, results)
                return results
            finding = self.xss_exec.check(obs, payload, target)
            if finding:
                self._emit(replace(finding, title="DOM-based XSS"), results)

        self._done("DOM XSS", results)
        return results

    # ── groups ─────────────────────────────────────────────────

    def _extra_sqli(self) -> Tuple[Payload, ...]:
        extra = self.custom_payloads
        if self.config.probes.include_destructive:
            extra = all_payloads(PayloadCategory.SQLI_DESTRUCTIVE) + extra
        return extra

    def run_sqli(self) -> None:
        payloads = payloads_for(*SQLI_DEFAULT) + self._extra_sqli()
        self.probe_login_injection(payloads, TargetRole.USERNAME)
        self.probe_login_injection(payloads, TargetRole.PASSWORD)
        self.probe_login_injection(all_payloads(PayloadCategory.SQLI_BASIC), both_fields=True)
        self.probe_search(payloads)
        self.probe_url_parameters()
        self.probe_timing()
        self.probe_search_inflation()

    def run_xss(self) -> None:
        payloads = payloads_for(*XSS_DEFAULT) + self.custom_payloads
        self.probe_login_injection(payloads, TargetRole.USERNAME)
        self.probe_search(payloads)
        self.probe_search(all_payloads(PayloadCategory.XSS_POLYGLOT))
        self.probe_dom_xss()

    def run_auth(self) -> None:
        result = self.probe_lockout()
        if self.logger:
            self.logger.info(f"Lockout: detected={result.detected} after {result.attempts} attempts")
        self.probe_enumeration()
        self.probe_protected_paths()
        self.probe_admin_paths()
        self.probe_password_field()
        self.probe_default_credentials()
        self.probe_https()

    def run_session(self) -> None:
        self.probe_fixation()
        self.probe_cookie_flags()
        self.probe_session_entropy()
        self.probe_session_in_url()
        self.probe_token_storage()

    def run_exposure(self) -> None:
        self.probe_html_comments()
        self.probe_error_pages()
        self.probe_directory_listing()
        self.probe_csp_meta()

    def run(self, groups: Iterable[str] = GROUPS) -> List[Finding]:
        """Run probe groups in order; returns the findings they produced."""
        start = len(self.findings)
        for group in groups:
            if group not in GROUPS:
                raise ValueError(f"Unknown probe group: {group}")
            if self.logger:
                self.logger.info(f"── {group} ──")
            getattr(self, f"run_{group}")()
        return self.findings[start:]
