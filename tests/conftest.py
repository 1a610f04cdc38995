"""
Shared fixtures: an in-memory browser, a fake clock/sleep pair and an engine
wired to them. Pages are plain strings keyed by URL path (query included).
"""
import pytest

from secprobe.core.config import ProbeConfig
from secprobe.core.engine import ProbeEngine
from secprobe.core.errors import CollaboratorUnavailable
from secprobe.core.models import FieldState
from secprobe.reporters.findings import Reporter

BASE = "http://app.test"

LOGIN_HTML = "<html><h1>Please log in</h1><form id='login'></form></html>"
SEARCH_HTML = "<html><form id='searchForm'></form></html>"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.advance(seconds)


class FakeDriver:
    """
    Scripted stand-in for the browser collaborator.

    navigate() serves self.pages[path] (falling back to the path without its
    query), honoring self.redirects. click() hands the typed values to
    self.on_submit(driver, typed), which mutates content/url/cookies/dialogs.
    """

    def __init__(self, base: str = BASE):
        self.base = base
        self.pages = {}
        self.redirects = {}
        self.elements = {}
        self.counts = {}
        self.storage = {"localStorage": {}, "sessionStorage": {}}
        self.cookies = []
        self.unreachable = set()
        self.on_submit = None
        self.url = ""
        self.content = ""
        self.typed = {}
        self.visits = []
        self.clicks = []
        self.screenshots = []
        self._dialog = None

    def _path(self, url: str) -> str:
        return url[len(self.base):] if url.startswith(self.base) else url

    # ── scripting helpers ──

    def open_dialog(self, text: str) -> None:
        self._dialog = text

    def show(self, content: str, path: str = None) -> None:
        self.content = content
        if path is not None:
            self.url = self.base + path

    def set_cookie(self, name: str, value: str, secure: bool = False, http_only: bool = False) -> None:
        self.cookies = [c for c in self.cookies if c["name"] != name]
        self.cookies.append({"name": name, "value": value, "secure": secure, "httpOnly": http_only})

    # ── driver contract ──

    def navigate(self, url: str) -> None:
        self.visits.append(url)
        path = self._path(url)
        if path in self.unreachable or path.split("?")[0] in self.unreachable:
            raise CollaboratorUnavailable("browser", f"navigate {url}: connection refused")
        target = self.redirects.get(path, path)
        self.url = target if target.startswith("http") else self.base + target
        served = self.pages.get(target)
        if served is None:
            served = self.pages.get(target.split("?")[0].split("#")[0], "")
        self.content = served(self, url) if callable(served) else served
        self.typed = {}

    def current_url(self) -> str:
        return self.url

    def page_content(self) -> str:
        return self.content

    def find_field(self, locator: str):
        return self.elements.get(locator)

    def type(self, locator: str, text: str) -> None:
        self.typed[locator] = text

    def click(self, locator: str) -> None:
        self.clicks.append(locator)
        if self.on_submit:
            self.on_submit(self, dict(self.typed))

    def count(self, locator: str) -> int:
        return self.counts.get(locator, 0)

    def get_cookies(self):
        return [dict(c) for c in self.cookies]

    def clear_cookies(self) -> None:
        self.cookies = []

    def dialog_present(self) -> bool:
        return self._dialog is not None

    def dialog_text(self):
        return self._dialog

    def accept_dialog(self) -> None:
        self._dialog = None

    def execute_script(self, src: str, arg=None):
        return dict(self.storage.get(arg, {}))

    def screenshot(self, path: str) -> None:
        self.screenshots.append(path)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper(clock):
    return FakeSleep(clock)


@pytest.fixture
def driver():
    d = FakeDriver()
    d.pages["/login"] = LOGIN_HTML
    d.pages["/search"] = SEARCH_HTML
    d.elements["#password"] = FieldState(attributes={"type": "password", "autocomplete": "off"})
    return d


@pytest.fixture
def config():
    cfg = ProbeConfig()
    cfg.target.base_url = BASE
    return cfg


@pytest.fixture
def reporter():
    return Reporter()


@pytest.fixture
def engine(driver, reporter, config, sleeper, clock):
    return ProbeEngine(driver, reporter, config, sleep=sleeper, clock=clock)
