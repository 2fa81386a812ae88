"""
Forecast Bot Configuration

SECURITY NOTE: Credentials should be set via environment variables:
    export FORECAST_USERNAME="your_login_id"
    export FORECAST_PASSWORD="your_password"

Only Settings.from_env() reads the process environment. Every component
receives the Settings object (or the values it needs) at construction.
"""

import os
import re
from dataclasses import dataclass, field, replace
from datetime import time as dt_time
from typing import Mapping, Optional, Tuple

from forecast_bot.exceptions import ConfigurationError

# =============================================================================
# FORECAST SITE
# =============================================================================
FORECAST_LOGIN_URL = "https://nikkei225yosou.jp/login"

# The site reuses one submit control for first submission and amendment
SUBMIT_LABELS = ("予想する", "修正する")

# Tokens expected on the page after a successful submission
CONFIRMATION_TOKENS = ("予想を受け付けました", "受付完了", "修正しました")

# =============================================================================
# QUOTE PROVIDER
# =============================================================================
DEFAULT_SYMBOL = "NIY=F"          # Nikkei 225 futures (JPY)
DEFAULT_PROVIDER = "chart"        # chart | stooq | yfinance
CHART_BASE_URL = "https://query1.finance.yahoo.com"
STOOQ_BASE_URL = "https://stooq.com"
DEFAULT_RANGE = "5d"
DEFAULT_INTERVAL = "5m"
QUOTE_REQUEST_TIMEOUT = 30.0      # seconds
USER_AGENT = "forecast-bot/1.0"

PROVIDERS = ("chart", "stooq", "yfinance")

# =============================================================================
# SESSION WINDOW (fixed civil offset, no timezone database)
# =============================================================================
UTC_OFFSET_HOURS = 9              # JST
SESSION_START = "16:30"           # night session opens, prior civil day
SESSION_END = "06:00"             # night session closes

# =============================================================================
# BOT SETTINGS
# =============================================================================
HEADLESS_MODE = True
SLOW_MO = 50                      # Milliseconds delay between actions
TYPING_DELAY_MS = 80              # Per-keystroke delay for human-like input
DIAGNOSTICS_DIR = "logs"
RUN_TIME = "07:00"                # Scheduler trigger, fixed-offset civil time
LOG_LEVEL = "INFO"

# =============================================================================
# TIMEOUTS (milliseconds)
# =============================================================================
DEFAULT_TIMEOUT = 30000
PAGE_LOAD_TIMEOUT = 60000
PROBE_TIMEOUT = 3000              # per candidate in ElementResolver
ENABLE_TIMEOUT = 10000            # login control enablement polling
ENABLE_POLL_INTERVAL = 250
RESOLVE_POLL_INTERVAL = 200      # pause between ElementResolver passes


def parse_hhmm(value: str) -> dt_time:
    """Parse "HH:MM" into a datetime.time, raising ConfigurationError."""
    match = re.fullmatch(r"\s*(\d{1,2}):(\d{2})\s*", value or "")
    if not match:
        raise ConfigurationError(f"Expected HH:MM, got {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ConfigurationError(f"Time out of range: {value!r}")
    return dt_time(hour, minute)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Credentials:
    """Login identifier and secret. Never persisted, never logged."""

    identifier: str
    secret: str = field(repr=False)


@dataclass(frozen=True)
class Settings:
    """Typed configuration for one run."""

    credentials: Optional[Credentials] = None
    login_url: str = FORECAST_LOGIN_URL
    symbol: str = DEFAULT_SYMBOL
    provider: str = DEFAULT_PROVIDER
    quote_base_url: Optional[str] = None
    fetch_range: str = DEFAULT_RANGE
    fetch_interval: str = DEFAULT_INTERVAL
    utc_offset_hours: float = UTC_OFFSET_HOURS
    session_start: dt_time = parse_hhmm(SESSION_START)
    session_end: dt_time = parse_hhmm(SESSION_END)
    round_unit: Optional[float] = None
    headless: bool = HEADLESS_MODE
    slow_mo: int = SLOW_MO
    typing_delay_ms: int = TYPING_DELAY_MS
    probe_timeout_ms: int = PROBE_TIMEOUT
    enable_timeout_ms: int = ENABLE_TIMEOUT
    page_load_timeout_ms: int = PAGE_LOAD_TIMEOUT
    submit_labels: Tuple[str, ...] = SUBMIT_LABELS
    confirmation_tokens: Tuple[str, ...] = CONFIRMATION_TOKENS
    discord_webhook_url: Optional[str] = None
    diagnostics_dir: str = DIAGNOSTICS_DIR
    run_time: dt_time = parse_hhmm(RUN_TIME)

    def __post_init__(self):
        if self.provider not in PROVIDERS:
            raise ConfigurationError(
                f"Unknown provider {self.provider!r}; expected one of {', '.join(PROVIDERS)}"
            )
        if not -14 <= self.utc_offset_hours <= 14:
            raise ConfigurationError(f"UTC offset out of range: {self.utc_offset_hours}")
        if self.round_unit is not None and self.round_unit <= 0:
            raise ConfigurationError(f"Round unit must be positive: {self.round_unit}")

    @property
    def base_url(self) -> str:
        """Quote endpoint, honouring an explicit override."""
        if self.quote_base_url:
            return self.quote_base_url.rstrip("/")
        return STOOQ_BASE_URL if self.provider == "stooq" else CHART_BASE_URL

    def require_credentials(self) -> Credentials:
        """Return credentials or raise if the run cannot log in."""
        if self.credentials is None:
            raise ConfigurationError(
                "Forecast site credentials not configured. Set environment variables:\n"
                "  export FORECAST_USERNAME='your_login_id'\n"
                "  export FORECAST_PASSWORD='your_password'"
            )
        return self.credentials

    def with_overrides(self, **changes) -> "Settings":
        """Copy with non-None overrides applied (used by the CLI)."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "Settings":
        """
        Build settings from FORECAST_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ (tests)

        Returns:
            Settings with defaults for anything unset

        Raises:
            ConfigurationError: a value is present but unparseable
        """
        env = os.environ if environ is None else environ

        def get(name: str, default: Optional[str] = None) -> Optional[str]:
            value = env.get(f"FORECAST_{name}")
            return value if value not in (None, "") else default

        username, password = get("USERNAME"), get("PASSWORD")
        credentials = Credentials(username, password) if username and password else None

        try:
            offset = float(get("UTC_OFFSET_HOURS", str(UTC_OFFSET_HOURS)))
            round_unit = get("ROUND_UNIT")
            round_unit = float(round_unit) if round_unit else None
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e

        return cls(
            credentials=credentials,
            login_url=get("LOGIN_URL", FORECAST_LOGIN_URL),
            symbol=get("SYMBOL", DEFAULT_SYMBOL),
            provider=get("PROVIDER", DEFAULT_PROVIDER).lower(),
            quote_base_url=get("QUOTE_BASE_URL"),
            fetch_range=get("RANGE", DEFAULT_RANGE),
            fetch_interval=get("INTERVAL", DEFAULT_INTERVAL),
            utc_offset_hours=offset,
            session_start=parse_hhmm(get("SESSION_START", SESSION_START)),
            session_end=parse_hhmm(get("SESSION_END", SESSION_END)),
            round_unit=round_unit,
            headless=_parse_bool(get("HEADLESS", "true")),
            discord_webhook_url=get("DISCORD_WEBHOOK_URL"),
            diagnostics_dir=get("DIAGNOSTICS_DIR", DIAGNOSTICS_DIR),
            run_time=parse_hhmm(get("RUN_TIME", RUN_TIME)),
        )
