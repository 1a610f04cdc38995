"""
Configuration for probe runs.

Each section is a pydantic model; ProbeConfig gathers them as a
pydantic-settings BaseSettings. Values come from a Java-style .properties file
and are overridden by SECPROBE_* environment variables, section and field
joined by ``__`` (``base.url`` → ``SECPROBE_TARGET__BASE_URL``). A missing file
or an invalid value falls back to the default with a warning, never an error.
"""

from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import (
    BaseModel, Field, PrivateAttr, ValidationError, field_validator, model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "SECPROBE_"
ENV_NESTED_DELIMITER = "__"

# timing threshold as a share of the requested delay (4000 of 5000 ms)
THRESHOLD_RATIO = 0.8


def _csv(value: Any) -> Any:
    if isinstance(value, str):
        return tuple(p.strip() for p in value.split(",") if p.strip())
    return value


def _blank_is_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class Section(BaseModel):
    """
    A config section. Fields that fail validation keep their default; what was
    rejected is kept in ``fallbacks`` as (section, field, raw value).
    """

    section: ClassVar[str] = ""
    _fallbacks: List[Tuple[str, str, Any]] = PrivateAttr(default_factory=list)

    @model_validator(mode="wrap")
    @classmethod
    def defaults_for_invalid(cls, data: Any, handler):
        rejected = []
        while True:
            try:
                obj = handler(data)
                break
            except ValidationError as e:
                if not isinstance(data, dict):
                    raise
                bad = {err["loc"][0] for err in e.errors() if err["loc"] and err["loc"][0] in data}
                if not bad:
                    raise
                data = dict(data)
                for name in sorted(bad):
                    rejected.append((cls.section, name, data.pop(name)))
        obj._fallbacks.extend(rejected)
        return obj

    @property
    def fallbacks(self) -> List[Tuple[str, str, Any]]:
        return list(self._fallbacks)


class TargetConfig(Section):
    section: ClassVar[str] = "target"

    base_url: str = "http://localhost:8080"
    login_path: str = "/login"
    search_path: str = "/search"

    @property
    def encrypted(self) -> bool:
        return self.base_url.lower().startswith("https://")

    def url(self, path: str) -> str:
        return path if path.startswith("http") else self.base_url.rstrip("/") + path


class BrowserConfig(Section):
    section: ClassVar[str] = "browser"

    browser: str = "chromium"  # chromium, firefox, webkit
    headless: bool = False
    page_load_timeout: int = 30
    explicit_wait: int = 15


class LoginFormConfig(Section):
    """CSS locators for the login form; adjust to the target application."""
    section: ClassVar[str] = "login"

    username: str = "#username"
    password: str = "#password"
    submit: str = "#loginBtn"
    error: str = ".error-message"
    logout: str = "#logout"
    test_username: str = "testuser"
    test_password: str = "testpassword"
    lockout_username: str = "admin"


class SearchFormConfig(Section):
    section: ClassVar[str] = "search"

    field: str = "#search"
    submit: str = "#searchBtn"
    result_item: str = ".result-item"
    # None → measure with a benign canary query first
    expected_results: Optional[int] = None

    @field_validator("expected_results", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        return _blank_is_none(v)


class ProbeSettings(Section):
    section: ClassVar[str] = "probes"

    max_attempts: int = Field(default=5, ge=1)
    requested_delay_ms: int = Field(default=5000, gt=0)
    # None → THRESHOLD_RATIO of requested_delay_ms
    timing_threshold_ms: Optional[int] = None
    attempt_delay: float = Field(default=0.0, ge=0)
    url_endpoints: Tuple[str, ...] = ("/product?id=", "/user?id=", "/order?order_id=", "/item?item_id=")
    dom_params: Tuple[str, ...] = ("q", "search", "query", "keyword", "s")
    include_destructive: bool = False
    screenshot_dir: Optional[str] = None

    @field_validator("url_endpoints", "dom_params", mode="before")
    @classmethod
    def split_csv(cls, v):
        return _csv(v)

    @field_validator("timing_threshold_ms", "screenshot_dir", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        return _blank_is_none(v)

    @model_validator(mode="after")
    def derive_threshold(self):
        if self.timing_threshold_ms is None:
            self.timing_threshold_ms = int(self.requested_delay_ms * THRESHOLD_RATIO)
        return self


class ScannerConfig(Section):
    section: ClassVar[str] = "scanner"

    enabled: bool = False
    scheme: str = "http"
    host: str = "localhost"
    port: int = Field(default=8080, gt=0, lt=65536)
    api_key: str = ""
    request_timeout: float = Field(default=10.0, gt=0)
    spider_interval: float = 2.0
    active_interval: float = 5.0
    max_indeterminate_polls: int = Field(default=3, ge=1)
    # external deadline for each await; None waits indefinitely
    scan_timeout: Optional[float] = None

    @field_validator("scan_timeout", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        return _blank_is_none(v)

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"


SECTIONS = ("target", "browser", "login", "search", "probes", "scanner")


class ProbeConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter=ENV_NESTED_DELIMITER,
        enable_decoding=False,
        extra="ignore",
    )

    target: TargetConfig = Field(default_factory=TargetConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    login: LoginFormConfig = Field(default_factory=LoginFormConfig)
    search: SearchFormConfig = Field(default_factory=SearchFormConfig)
    probes: ProbeSettings = Field(default_factory=ProbeSettings)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    payload_files: Tuple[str, ...] = ()

    @field_validator("payload_files", mode="before")
    @classmethod
    def split_files(cls, v):
        return _csv(v)

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings,
                                   dotenv_settings, file_secret_settings):
        # environment beats the .properties values handed in as init kwargs
        return env_settings, init_settings

    @property
    def fallbacks(self) -> List[Tuple[str, str, Any]]:
        out = []
        for name in SECTIONS:
            out.extend(getattr(self, name).fallbacks)
        return out

    def summary(self) -> Dict[str, Any]:
        return {
            "base_url": self.target.base_url,
            "browser": self.browser.browser,
            "headless": self.browser.headless,
            "zap_enabled": self.scanner.enabled,
            "zap": self.scanner.base_url,
            "max_attempts": self.probes.max_attempts,
            "timing_threshold_ms": self.probes.timing_threshold_ms,
        }


# property key → (section, field); section None = top level
PROPERTY_KEYS: Dict[str, Tuple[Optional[str], str]] = {
    "base.url": ("target", "base_url"),
    "login.path": ("target", "login_path"),
    "search.path": ("target", "search_path"),

    "browser": ("browser", "browser"),
    "headless": ("browser", "headless"),
    "page.load.timeout": ("browser", "page_load_timeout"),
    "explicit.wait": ("browser", "explicit_wait"),

    "login.username.locator": ("login", "username"),
    "login.password.locator": ("login", "password"),
    "login.submit.locator": ("login", "submit"),
    "login.error.locator": ("login", "error"),
    "login.logout.locator": ("login", "logout"),
    "login.test.username": ("login", "test_username"),
    "login.test.password": ("login", "test_password"),
    "login.lockout.username": ("login", "lockout_username"),

    "search.field.locator": ("search", "field"),
    "search.submit.locator": ("search", "submit"),
    "search.result.locator": ("search", "result_item"),
    "search.expected.results": ("search", "expected_results"),

    "probe.max.attempts": ("probes", "max_attempts"),
    "probe.timing.threshold.ms": ("probes", "timing_threshold_ms"),
    "probe.requested.delay.ms": ("probes", "requested_delay_ms"),
    "probe.attempt.delay": ("probes", "attempt_delay"),
    "probe.url.endpoints": ("probes", "url_endpoints"),
    "probe.dom.params": ("probes", "dom_params"),
    "probe.include.destructive": ("probes", "include_destructive"),
    "probe.screenshot.dir": ("probes", "screenshot_dir"),

    "zap.enabled": ("scanner", "enabled"),
    "zap.scheme": ("scanner", "scheme"),
    "zap.host": ("scanner", "host"),
    "zap.port": ("scanner", "port"),
    "zap.api.key": ("scanner", "api_key"),
    "zap.request.timeout": ("scanner", "request_timeout"),
    "zap.spider.interval": ("scanner", "spider_interval"),
    "zap.active.interval": ("scanner", "active_interval"),
    "zap.max.indeterminate.polls": ("scanner", "max_indeterminate_polls"),
    "zap.scan.timeout": ("scanner", "scan_timeout"),

    "payload.files": (None, "payload_files"),
}

_KEY_FOR = {where: key for key, where in PROPERTY_KEYS.items()}


def env_name(key: str) -> str:
    """Environment variable that overrides property *key*."""
    section, name = PROPERTY_KEYS[key]
    if section is None:
        return (ENV_PREFIX + name).upper()
    return (ENV_PREFIX + section + ENV_NESTED_DELIMITER + name).upper()


def parse_properties(text: str) -> Dict[str, str]:
    """
    base.url=https://app.local
    # comment
    zap.enabled: true
    """
    props: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line[0] in "#!":
            continue
        eq = [i for i in (line.find("="), line.find(":")) if i != -1]
        if not eq:
            props[line] = ""
            continue
        cut = min(eq)
        props[line[:cut].strip()] = line[cut + 1:].strip()
    return props


def nest_properties(props: Dict[str, str], logger=None) -> Dict[str, Any]:
    """Flat property keys → ProbeConfig init kwargs."""
    values: Dict[str, Any] = {}
    for key, raw in props.items():
        where = PROPERTY_KEYS.get(key)
        if where is None:
            if logger:
                logger.debug(f"Ignoring unknown property {key}")
            continue
        section, name = where
        if section is None:
            values[name] = raw
        else:
            values.setdefault(section, {})[name] = raw
    return values


def load_config(path: Optional[str] = None, logger=None) -> ProbeConfig:
    props: Dict[str, str] = {}
    if path:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                props = parse_properties(f.read())
        except OSError as e:
            if logger:
                logger.warn(f"Could not load {path} ({e}). Using defaults.")

    try:
        cfg = ProbeConfig(**nest_properties(props, logger))
    except ValidationError as e:
        if logger:
            logger.warn(f"Invalid configuration ({e.error_count()} errors). Using defaults.")
        return ProbeConfig.model_construct()

    if logger:
        for section, name, raw in cfg.fallbacks:
            key = _KEY_FOR.get((section, name), f"{section}.{name}")
            logger.warn(f"Invalid value for {key}: {raw!r}. Using default.")
    return cfg
