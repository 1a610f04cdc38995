from secprobe.checkers.auth import (
    AuthState, access_denied, admin_page_exposed, authentication_state, autocomplete_disabled,
    enumeration_evidence, is_logged_in, lockout_evidence, password_masked, unprotected_access,
    verbose_error_evidence,
)
from secprobe.checkers.base import find_marker, snippet
from secprobe.checkers.exposure import (
    directory_listing_evidence, framework_disclosure, has_csp_meta, sensitive_comments,
    server_disclosure, stack_trace_evidence,
)
from secprobe.checkers.session import entropy_check, fixation_check
from secprobe.checkers.sqli import (
    SQLiError, SQLiTiming, contains_sql_error, inflation_finding, is_time_based,
    is_time_delayed, results_inflated, sql_error_evidence,
)
from secprobe.checkers.xss import (
    Reflection, XSSExecution, XSSReflection, execution_evidence, is_properly_encoded,
    is_reflected, reflection_state,
)
from secprobe.core.config import ProbeSettings
from secprobe.core.models import (
    FieldState, FindingKind, Observation, Payload, PayloadCategory, ProbeTarget, Severity,
    Surface, TargetRole,
)

SEARCH = ProbeTarget(Surface.FORM_FIELD, "#search", TargetRole.SEARCH, page="/search")
PASSWORD = ProbeTarget(Surface.FORM_FIELD, "#password", TargetRole.PASSWORD, page="/login")


def _p(value, cat=PayloadCategory.CUSTOM):
    return Payload(cat, value)


class TestMarkers:

    def test_find_marker_returns_text_as_written(self):
        assert find_marker("Fatal: You have an error in your SQL SYNTAX near", ["sql syntax"]) == "SQL SYNTAX"

    def test_find_marker_respects_marker_order(self):
        assert find_marker("syntax error from PostgreSQL", ["PostgreSQL", "syntax error"]) == "PostgreSQL"

    def test_empty_inputs(self):
        assert find_marker(None, ["x"]) is None
        assert find_marker("", ["x"]) is None
        assert snippet("abc", "zzz") == ""


class TestSqlHeuristics:

    def test_error_evidence_is_literal_page_text(self):
        page = "<p>Warning: mysql_fetch_array() expects parameter 1</p>"
        assert sql_error_evidence(page) == "mysql_fetch"
        assert sql_error_evidence("ora-00933: SQL command not properly ended") == "ora-"

    def test_first_fingerprint_in_list_order_wins(self):
        page = "ODBC driver reported: You have an error in your SQL syntax"
        assert sql_error_evidence(page) == "SQL syntax"

    def test_no_error(self):
        assert not contains_sql_error("<h1>No results</h1>")
        assert not contains_sql_error(None)

    def test_time_based_detection(self):
        assert is_time_based("'; WAITFOR DELAY '0:0:5'--")
        assert is_time_based("' OR SLEEP(5)--")
        assert is_time_based("1; SELECT pg_sleep(5)")
        assert not is_time_based("' OR '1'='1")

    def test_delay_threshold_is_strict(self):
        assert not is_time_delayed(4000)
        assert is_time_delayed(4001)
        assert is_time_delayed(2500, threshold_ms=2000)

    def test_oracle_quote_error(self):
        page = "ORA-01756: quoted string not properly terminated"
        assert sql_error_evidence(page) == "ORA-"
        f = SQLiError().check(Observation(content=page), _p("'", PayloadCategory.SQLI_ERROR), SEARCH)
        assert f.kind is FindingKind.POLICY_VIOLATION
        assert "ORA-01756" in f.evidence

    def test_delay_against_requested_five_seconds(self):
        chk = SQLiTiming(ProbeSettings(requested_delay_ms=5000).timing_threshold_ms)
        payload = _p("' OR SLEEP(5)--", PayloadCategory.SQLI_TIME)
        assert chk.check(Observation(elapsed_ms=4500), payload, SEARCH) is not None
        assert chk.check(Observation(elapsed_ms=3000), payload, SEARCH) is None
        assert is_time_delayed(4500)
        assert not is_time_delayed(3000)

    def test_inflation(self):
        assert results_inflated(10, 2)
        assert not results_inflated(2, 2)
        f = inflation_finding(SEARCH, _p("' OR 1=1--"), 10, 2)
        assert f.kind is FindingKind.CLASSIFICATION_AMBIGUOUS
        assert f.confidence == "tentative"

    def test_error_checker(self):
        obs = Observation(content="<pre>Unclosed quotation mark after the character string</pre>")
        f = SQLiError().check(obs, _p("'"), SEARCH)
        assert f.kind is FindingKind.POLICY_VIOLATION
        assert "Unclosed quotation" in f.evidence
        assert SQLiError().check(Observation(content="ok"), _p("'"), SEARCH) is None

    def test_timing_checker_only_for_time_payloads(self):
        chk = SQLiTiming(threshold_ms=4000)
        assert chk.applies_to(SEARCH, _p("' OR SLEEP(5)--"))
        assert not chk.applies_to(SEARCH, _p("' OR 1=1--"))
        assert chk.check(Observation(elapsed_ms=5200), _p("' OR SLEEP(5)--"), SEARCH).severity is Severity.HIGH
        assert chk.check(Observation(elapsed_ms=300), _p("' OR SLEEP(5)--"), SEARCH) is None


class TestXssHeuristics:

    PAYLOAD = "<script>alert('XSS')</script>"

    def test_raw_reflection(self):
        page = f"<p>Results for {self.PAYLOAD}</p>"
        assert is_reflected(page, self.PAYLOAD)
        assert reflection_state(page, self.PAYLOAD) is Reflection.RAW
        assert not is_properly_encoded(page, self.PAYLOAD)

    def test_encoded_reflection(self):
        page = "<p>Results for &lt;script&gt;alert('XSS')&lt;/script&gt;</p>"
        assert reflection_state(page, self.PAYLOAD) is Reflection.ENCODED
        assert is_properly_encoded(page, self.PAYLOAD)

    def test_decoded_reflection(self):
        payload = "&#60;script&#62;alert('XSS')&#60;/script&#62;"
        page = "<div><script>alert('XSS')</script></div>"
        assert reflection_state(page, payload) is Reflection.DECODED
        assert not is_properly_encoded(page, payload)

    def test_absent(self):
        assert reflection_state("<p>nothing</p>", self.PAYLOAD) is Reflection.ABSENT
        assert reflection_state(None, self.PAYLOAD) is Reflection.ABSENT

    def test_execution(self):
        obs = Observation(dialog_text="XSS")
        assert execution_evidence(obs) == "XSS"
        f = XSSExecution().check(obs, _p(self.PAYLOAD), SEARCH)
        assert f.confidence == "confirmed"
        assert f.evidence == "dialog: XSS"
        assert execution_evidence(Observation()) is None

    def test_reflection_skips_password_fields(self):
        chk = XSSReflection()
        assert not chk.applies_to(PASSWORD, _p(self.PAYLOAD))
        assert chk.applies_to(SEARCH, _p(self.PAYLOAD))

    def test_reflection_needs_script_payload(self):
        chk = XSSReflection()
        assert chk.applies_to(SEARCH, _p(self.PAYLOAD, PayloadCategory.XSS_POLYGLOT))
        assert not chk.applies_to(SEARCH, _p("' OR '1'='1", PayloadCategory.SQLI_BASIC))
        assert not chk.applies_to(SEARCH, _p("../../etc/passwd", PayloadCategory.PATH_TRAVERSAL))

    def test_reflection_titles(self):
        chk = XSSReflection()
        raw = chk.check(Observation(content=f"x {self.PAYLOAD} y"), _p(self.PAYLOAD), SEARCH)
        assert raw.title == "Cross-Site Scripting - Reflected"
        enc = "%3Cscript%3Ealert('XSS')%3C/script%3E"
        dec = chk.check(Observation(content=f"x {self.PAYLOAD} y"), _p(enc), SEARCH)
        assert dec.title == "Cross-Site Scripting - Encoding Bypass"
        assert self.PAYLOAD in dec.evidence


class TestAuthHeuristics:

    def test_capability_wins(self):
        obs = Observation(location="http://app.test/login", content="login")
        assert authentication_state(obs, True) is AuthState.AUTHENTICATED

    def test_login_indicator_means_not_authenticated(self):
        assert authentication_state(Observation(location="http://app.test/signin"), False) \
            is AuthState.NOT_AUTHENTICATED
        assert authentication_state(Observation(location="http://app.test/x", content="Please log in"), False) \
            is AuthState.NOT_AUTHENTICATED

    def test_neither_signal_is_inconclusive(self):
        obs = Observation(location="http://app.test/welcome", content="<h1>Hi</h1>")
        assert authentication_state(obs, False) is AuthState.INCONCLUSIVE
        assert is_logged_in(obs, False)

    def test_lockout_language(self):
        assert lockout_evidence("Your account is LOCKED for 15 minutes") == "LOCKED"
        assert lockout_evidence("Too many attempts, try again later") == "Too many attempts"
        assert lockout_evidence("Invalid credentials") is None

    def test_verbose_errors(self):
        assert verbose_error_evidence("User not found") == "User not found"
        assert verbose_error_evidence("Invalid credentials") is None

    def test_enumeration(self):
        assert enumeration_evidence("User not found", "Wrong password") is not None
        assert enumeration_evidence("Invalid credentials", "Invalid credentials") is None
        assert enumeration_evidence("", "Wrong password") is None

    def test_field_hygiene(self):
        masked = FieldState(attributes={"type": "Password", "autocomplete": "new-password"})
        assert password_masked(masked)
        assert autocomplete_disabled(masked)
        plain = FieldState(attributes={"type": "text"})
        assert not password_masked(plain)
        assert not autocomplete_disabled(plain)
        assert not password_masked(None)

    def test_access_control(self):
        url = "http://app.test/dashboard"
        assert access_denied("http://app.test/403", "") == "403"
        assert unprotected_access(url, url, "<h1>Dashboard</h1>")
        assert not unprotected_access(url, url, "Access Denied")
        assert not unprotected_access("http://app.test/home", url, "<h1>Home</h1>")

    def test_admin_exposure(self):
        url = "http://app.test/admin"
        assert admin_page_exposed(url, url, "<h1>Admin Panel</h1>") == "Admin"
        assert admin_page_exposed(url, url, "<h1>Admin</h1> 404 not found") is None
        assert admin_page_exposed("http://app.test/login", url, "admin") is None


class TestExposureHeuristics:

    def test_sensitive_comments(self):
        html = "<!-- layout --><!-- TODO: remove api_key=abc --><!-- admin credentials: a/b -->"
        hits = sensitive_comments(html)
        assert hits == ["<!-- TODO: remove api_key=abc -->", "<!-- admin credentials: a/b -->"]

    def test_comment_truncation(self):
        html = "<!-- password " + "x" * 200 + " -->"
        assert len(sensitive_comments(html)[0]) == 100

    def test_error_page_markers(self):
        page = "Traceback (most recent call last): ... Apache Tomcat/9.0 ... Spring"
        assert stack_trace_evidence(page) == "Traceback"
        assert server_disclosure(page) == "Apache"
        assert framework_disclosure(page) == "Spring"

    def test_directory_listing(self):
        assert directory_listing_evidence("<title>Index of /uploads</title>") == "Index of"
        assert directory_listing_evidence("<a href='../'>up</a>") == "../"
        assert directory_listing_evidence("<p>hi</p>") is None

    def test_csp_meta(self):
        assert has_csp_meta('<meta http-equiv="Content-Security-Policy" content="default-src \'self\'">')
        assert not has_csp_meta("<meta charset='utf-8'>")


class TestSessionHeuristics:

    def test_entropy_length_boundary(self):
        assert entropy_check("a1" * 9 + "b").weak
        assert entropy_check("a1" * 9 + "b").length == 19
        assert not entropy_check("a1" * 10).weak
        assert entropy_check(None).weak

    def test_entropy_variety(self):
        assert entropy_check("1234567890" * 3).low_variety
        assert not entropy_check("abc123" * 4).low_variety

    def test_fixation_needs_both_identifiers(self):
        assert not fixation_check(None, "abc")
        assert not fixation_check("abc", None)
        assert not fixation_check("abc", "xyz")
        assert fixation_check("abc", "abc")


class TestPayloadFamilies:

    def test_family_names(self):
        assert PayloadCategory.SQLI_TIME.family == "SQL Injection"
        assert PayloadCategory.XSS_POLYGLOT.family == "Cross-Site Scripting"
        assert PayloadCategory.LDAP.family == "LDAP Injection"
        assert PayloadCategory.CUSTOM.family == "Injection"
        assert PayloadCategory.XSS_DOM.is_xss and not PayloadCategory.XSS_DOM.is_sqli
