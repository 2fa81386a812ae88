"""
Exception hierarchy for the forecast bot.

Everything raised on purpose derives from ForecastBotError so the entry
point can tell an expected failure from a crash.
"""

from typing import Optional


class ForecastBotError(Exception):
    """Base class for all forecast bot errors."""


class ConfigurationError(ForecastBotError):
    """Raised when settings are missing or cannot be parsed."""


# =============================================================================
# PRICE RESOLUTION
# =============================================================================
class PriceResolutionError(ForecastBotError):
    """
    Base for failures before a price is resolved.

    Carries a context string (symbol, window) so a log line alone
    tells you which request went wrong.
    """

    def __init__(self, message: str, context: str = ""):
        self.message = message
        self.context = context
        super().__init__(f"{message} [{context}]" if context else message)


class UpstreamError(PriceResolutionError):
    """Quote provider returned a non-success status or the transport failed."""

    def __init__(self, message: str, context: str = "", status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message, context)


class MalformedResponseError(PriceResolutionError):
    """Quote provider response is missing the series fields or they are not arrays."""


class EmptySeriesError(PriceResolutionError):
    """Quote provider returned a series with zero samples."""


class NoValidPriceError(PriceResolutionError):
    """Series has samples but every price is a gap."""


# =============================================================================
# SUBMISSION
# =============================================================================
class SubmissionError(ForecastBotError):
    """Base for failures while driving the forecast form."""


class ElementNotFoundError(SubmissionError):
    """A required UI role could not be resolved within its probe budget."""

    def __init__(self, role: str, tried: int = 0):
        self.role = role
        self.tried = tried
        super().__init__(f"Element not found: {role} ({tried} candidates tried)")


class WaitTimeoutError(SubmissionError, TimeoutError):
    """A bounded wait (enablement, navigation) ran out of time."""

    def __init__(self, what: str, timeout_ms: int):
        self.what = what
        self.timeout_ms = timeout_ms
        super().__init__(f"Timed out after {timeout_ms}ms waiting for {what}")


class StageFailure(SubmissionError):
    """
    A submission error attributed to the stage it happened in.

    This is what leaves the state machine; the original error is kept
    as __cause__ and as `error`.
    """

    def __init__(self, stage, cause: str, error: Optional[BaseException] = None):
        self.stage = stage
        self.cause = cause
        self.error = error
        stage_name = getattr(stage, "value", stage)
        super().__init__(f"{stage_name} failed: {cause}")
