"""
Browser collaborator: the contract the engine drives, a Playwright adapter for
it, and a per-worker registry so parallel workers never share a browser.
"""

import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, Protocol

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page, sync_playwright

from secprobe.core.config import BrowserConfig
from secprobe.core.errors import CollaboratorUnavailable
from secprobe.core.models import FieldState

_ATTRS_JS = "el => Object.fromEntries(Array.from(el.attributes).map(a => [a.name, a.value]))"


class BrowserDriver(Protocol):
    def navigate(self, url: str) -> None: ...
    def current_url(self) -> str: ...
    def page_content(self) -> str: ...
    def find_field(self, locator: str) -> Optional[FieldState]: ...
    def type(self, locator: str, text: str) -> None: ...
    def click(self, locator: str) -> None: ...
    def count(self, locator: str) -> int: ...
    def get_cookies(self) -> List[Dict[str, Any]]: ...
    def clear_cookies(self) -> None: ...
    def dialog_present(self) -> bool: ...
    def dialog_text(self) -> Optional[str]: ...
    def accept_dialog(self) -> None: ...
    def execute_script(self, src: str, arg: Any = None) -> Any: ...
    def screenshot(self, path: str) -> None: ...


class PlaywrightDriver:
    """
    Adapts a Playwright sync Page.

    Dialogs are accepted the moment they open so navigation never blocks; the
    text is kept until accept_dialog() acknowledges it.
    """

    def __init__(self, page: Page, on_close: Optional[Callable[[], None]] = None, logger=None):
        self.page = page
        self.logger = logger
        self._on_close = on_close
        self._pending_dialog: Optional[str] = None
        page.on("dialog", self._on_dialog)

    def _on_dialog(self, dialog) -> None:
        self._pending_dialog = dialog.message
        if self.logger:
            self.logger.debug(f"Dialog opened: {dialog.message!r}")
        dialog.accept()

    def _guard(self, step: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except PlaywrightError as e:
            raise CollaboratorUnavailable("browser", f"{step}: {e}") from e

    # ── navigation & content ───────────────────────────────────

    def navigate(self, url: str) -> None:
        self._guard(f"navigate {url}", self.page.goto, url)

    def current_url(self) -> str:
        return self.page.url

    def page_content(self) -> str:
        return self._guard("read content", self.page.content)

    # ── elements ───────────────────────────────────────────────

    def find_field(self, locator: str) -> Optional[FieldState]:
        loc = self.page.locator(locator)
        if self._guard(f"locate {locator}", loc.count) == 0:
            return None
        el = loc.first
        return FieldState(
            text=self._guard(f"read {locator}", el.inner_text),
            attributes=self._guard(f"read {locator}", el.evaluate, _ATTRS_JS),
            visible=self._guard(f"read {locator}", el.is_visible),
        )

    def type(self, locator: str, text: str) -> None:
        self._guard(f"type into {locator}", self.page.locator(locator).first.fill, text)

    def click(self, locator: str) -> None:
        self._guard(f"click {locator}", self.page.locator(locator).first.click)

    def count(self, locator: str) -> int:
        return self._guard(f"count {locator}", self.page.locator(locator).count)

    # ── cookies & scripts ──────────────────────────────────────

    def get_cookies(self) -> List[Dict[str, Any]]:
        return self._guard("read cookies", self.page.context.cookies)

    def clear_cookies(self) -> None:
        self._guard("clear cookies", self.page.context.clear_cookies)

    def execute_script(self, src: str, arg: Any = None) -> Any:
        return self._guard("execute script", self.page.evaluate, src, arg)

    def screenshot(self, path: str) -> None:
        self._guard("screenshot", self.page.screenshot, path=path)

    # ── dialogs ────────────────────────────────────────────────

    def dialog_present(self) -> bool:
        return self._pending_dialog is not None

    def dialog_text(self) -> Optional[str]:
        return self._pending_dialog

    def accept_dialog(self) -> None:
        self._pending_dialog = None

    def close(self) -> None:
        if self._on_close:
            self._on_close()
            self._on_close = None


def launch_driver(config: BrowserConfig, logger=None) -> PlaywrightDriver:
    """Start Playwright and one browser page; driver.close() tears both down."""
    pw = sync_playwright().start()
    try:
        launcher = getattr(pw, config.browser, None)
        if launcher is None:
            if logger:
                logger.warn(f"Unknown browser {config.browser!r}, falling back to chromium")
            launcher = pw.chromium
        browser = launcher.launch(headless=config.headless)
    except PlaywrightError as e:
        pw.stop()
        raise CollaboratorUnavailable("browser", str(e)) from e

    page = browser.new_page()
    page.set_default_timeout(config.explicit_wait * 1000)
    page.set_default_navigation_timeout(config.page_load_timeout * 1000)

    def _close():
        browser.close()
        pw.stop()

    if logger:
        logger.debug(f"Launched {config.browser} (headless={config.headless})")
    return PlaywrightDriver(page, on_close=_close, logger=logger)


@contextmanager
def browser_session(config: BrowserConfig, logger=None):
    driver = launch_driver(config, logger=logger)
    try:
        yield driver
    finally:
        driver.close()


class SessionRegistry:
    """One driver per worker identity (thread id by default), created lazily."""

    def __init__(self, factory: Callable[[], Any], identity: Callable[[], Any] = threading.get_ident,
                 logger=None):
        self._factory = factory
        self._identity = identity
        self._drivers: Dict[Any, Any] = {}
        self._lock = threading.Lock()
        self.logger = logger

    def acquire(self):
        key = self._identity()
        with self._lock:
            driver = self._drivers.get(key)
            if driver is None:
                driver = self._factory()
                self._drivers[key] = driver
                if self.logger:
                    self.logger.debug(f"New browser session for worker {key}")
            return driver

    def release(self) -> None:
        key = self._identity()
        with self._lock:
            driver = self._drivers.pop(key, None)
        if driver is not None:
            self._close(driver)

    def close_all(self) -> None:
        with self._lock:
            drivers = list(self._drivers.values())
            self._drivers.clear()
        for d in drivers:
            self._close(d)

    def _close(self, driver) -> None:
        close = getattr(driver, "close", None)
        if close is None:
            return
        try:
            close()
        except Exception as e:
            if self.logger:
                self.logger.warn(f"Error closing browser session: {e}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._drivers)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close_all()
        return False
