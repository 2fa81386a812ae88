"""
Price Resolution for the Forecast Bot

Pure functions, no I/O:

- build_session_window(): the inclusive time window for "the last
  session", computed in a fixed UTC offset
- select_in_window(): the one trustworthy sample out of a gapped series
- format_price(): float -> (major, minor) with half-away-from-zero
  rounding and carry
"""

import math
import logging
from dataclasses import dataclass
from datetime import datetime, time as dt_time, timedelta
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Optional

from forecast_bot.exceptions import NoValidPriceError
from forecast_bot.market_data import Series
from forecast_bot.utils import now_in_offset

logger = logging.getLogger('forecast_bot.pricing')

CENT = Decimal("0.01")


@dataclass(frozen=True)
class TimeWindow:
    """Closed-inclusive [start, end] in epoch seconds."""
    start: int
    end: int

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Window start {self.start} is after end {self.end}")

    def contains(self, timestamp: int) -> bool:
        return self.start <= timestamp <= self.end


@dataclass(frozen=True)
class ResolvedPrice:
    """The single selected sample. in_window is False when the fallback was used."""
    price: float
    timestamp: int
    in_window: bool = True


@dataclass(frozen=True)
class FormattedAmount:
    """Two-part amount as entered into the form."""
    major: int
    minor: int

    def __post_init__(self):
        if self.major < 0:
            raise ValueError(f"major must be non-negative, got {self.major}")
        if not 0 <= self.minor <= 99:
            raise ValueError(f"minor must be in [0, 99], got {self.minor}")

    @property
    def major_text(self) -> str:
        return str(self.major)

    @property
    def minor_text(self) -> str:
        """Minor part as the form wants it: always two digits."""
        return f"{self.minor:02d}"

    def as_float(self) -> float:
        return self.major + self.minor / 100

    def __str__(self):
        return f"{self.major}.{self.minor_text}"


# =============================================================================
# WINDOW CONSTRUCTION
# =============================================================================
def build_session_window(now: Optional[datetime], utc_offset_hours: float,
                         session_start: dt_time, session_end: dt_time) -> TimeWindow:
    """
    Window ending at the most recent session end, starting at the session
    start on the civil day before it.

    With the defaults (+9, start 16:30, end 06:00) a run at 07:00 on the
    18th gets [17th 16:30, 18th 06:00]; a run at 05:00 on the 18th gets
    [16th 16:30, 17th 06:00].

    Args:
        now: Timezone-aware "now" (None for the wall clock)
        utc_offset_hours: Fixed civil offset, e.g. 9 for JST
        session_start: Civil time the window opens, on the prior day
        session_end: Civil time the window closes

    Returns:
        TimeWindow in epoch seconds
    """
    local_now = now_in_offset(utc_offset_hours, now)
    tz = local_now.tzinfo

    end_date = local_now.date()
    end_dt = datetime.combine(end_date, session_end).replace(tzinfo=tz)
    if local_now < end_dt:
        end_date -= timedelta(days=1)
        end_dt = datetime.combine(end_date, session_end).replace(tzinfo=tz)

    start_dt = datetime.combine(end_date - timedelta(days=1), session_start).replace(tzinfo=tz)

    window = TimeWindow(start=int(start_dt.timestamp()), end=int(end_dt.timestamp()))
    logger.info(f"Session window: {start_dt:%Y-%m-%d %H:%M} -> {end_dt:%Y-%m-%d %H:%M} "
                f"(UTC{utc_offset_hours:+g})")
    return window


# =============================================================================
# WINDOW SELECTION
# =============================================================================
def select_in_window(series: Series, window: TimeWindow) -> ResolvedPrice:
    """
    Pick the last priced sample inside the window, else the last priced
    sample of the whole series.

    Raises:
        NoValidPriceError: every sample in the series is a gap
    """
    best = None
    for sample in series.samples:
        if sample.has_price and window.contains(sample.timestamp):
            if best is None or sample.timestamp > best.timestamp:
                best = sample

    if best is not None:
        return ResolvedPrice(price=best.price, timestamp=best.timestamp, in_window=True)

    for sample in reversed(series.samples):
        if sample.has_price:
            logger.warning(
                f"No priced sample inside window [{window.start}, {window.end}] for "
                f"{series.symbol} - falling back to last priced sample at {sample.timestamp}"
            )
            return ResolvedPrice(price=sample.price, timestamp=sample.timestamp, in_window=False)

    raise NoValidPriceError(
        f"all {len(series)} samples are gaps",
        f"symbol={series.symbol} window=[{window.start}, {window.end}]"
    )


# =============================================================================
# FORMATTING
# =============================================================================
def round_to_unit(price: float, unit: float) -> float:
    """Round to the nearest multiple of unit, halves away from zero."""
    if unit <= 0:
        raise ValueError(f"unit must be positive, got {unit}")
    step = Decimal(repr(unit))
    steps = (Decimal(repr(price)) / step).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return float(steps * step)


def format_price(price: float) -> FormattedAmount:
    """
    Split a price into (major, minor) hundredths.

    Rounds on the float's shortest decimal repr, so 1999.995 becomes
    2000.00 rather than 1999.99 from binary noise. A minor part that
    reaches 100 carries into major.

    Raises:
        ValueError: price is negative, NaN or infinite
    """
    if price is None or not math.isfinite(price):
        raise ValueError(f"price must be finite, got {price!r}")
    if price < 0:
        raise ValueError(f"price must be non-negative, got {price!r}")

    rounded = Decimal(repr(float(price))).quantize(CENT, rounding=ROUND_HALF_UP)
    major = int(rounded.to_integral_value(rounding=ROUND_FLOOR))
    minor = int(((rounded - major) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))

    if minor >= 100:
        major += 1
        minor = 0
    elif minor < 0:
        minor = 0

    return FormattedAmount(major=major, minor=minor)
