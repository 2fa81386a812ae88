"""
Guarded Submission State Machine for the forecast site

States run strictly in order, once each:

    START -> LOGGING_IN -> NAVIGATING -> FILLING -> SUBMITTING -> SUCCESS
    (any stage fails) -> FAILED

Every step has:
- Candidate-list element resolution (ElementResolver)
- Bounded waits (enablement polling, document-ready)
- Diagnostic capture on failure, exactly once per run

There is NO retry and NO rollback. A failed stage ends the run as
Failed(stage, cause); re-running is the caller's decision.
"""

import time
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from playwright.sync_api import Error as PlaywrightError, Locator, Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from forecast_bot.config import ENABLE_POLL_INTERVAL, Settings
from forecast_bot.element_resolver import ElementResolver, css
from forecast_bot.exceptions import (
    ElementNotFoundError, StageFailure, SubmissionError, WaitTimeoutError
)
from forecast_bot.forecast_site import DiagnosticSink, human_type
from forecast_bot.pricing import FormattedAmount
from forecast_bot import site_selectors as sel

logger = logging.getLogger('forecast_bot.submission_pipeline')


class SubmissionState(Enum):
    """Submission state machine states"""
    START = "START"
    LOGGING_IN = "LOGGING_IN"
    NAVIGATING = "NAVIGATING"
    FILLING = "FILLING"
    SUBMITTING = "SUBMITTING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class Stage(Enum):
    """Stage a failure is attributed to"""
    LOGIN = "Login"
    NAVIGATE = "Navigate"
    FILL = "Fill"
    SUBMIT = "Submit"


@dataclass(frozen=True)
class SubmissionOutcome:
    """Terminal result of one run. Never mutated after creation."""
    success: bool
    amount: FormattedAmount
    stage: Optional[Stage] = None
    cause: str = ""
    ambiguous_confirmation: bool = False
    dry_run: bool = False
    diagnostics: Tuple[str, ...] = ()
    error: Optional[StageFailure] = None

    @property
    def label(self) -> str:
        if self.success:
            return "SUCCESS (dry run)" if self.dry_run else "SUCCESS"
        return f"FAILED at {self.stage.value}"


def describe_cause(error: BaseException) -> str:
    """Short, stable cause string for a stage failure."""
    if isinstance(error, (WaitTimeoutError, PlaywrightTimeoutError)):
        return f"timeout: {error}"
    if isinstance(error, ElementNotFoundError):
        return f"element not found: {error.role}"
    return f"{type(error).__name__}: {error}"


class SubmissionPipeline:
    """
    Drives login -> TOP -> form fill -> submit on an open page.

    Usage:
        pipeline = SubmissionPipeline(page, settings, DiagnosticSink("logs"))
        outcome = pipeline.execute(FormattedAmount(50320, 50))

        if outcome.success:
            print("Submitted")
        else:
            print(f"Failed at {outcome.stage.value}: {outcome.cause}")
    """

    def __init__(self, page: Page, settings: Settings, diagnostics: DiagnosticSink = None,
                 resolver: ElementResolver = None, dry_run: bool = False,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.page = page
        self.settings = settings
        self.diagnostics = diagnostics or DiagnosticSink(settings.diagnostics_dir)
        self.resolver = resolver or ElementResolver(page, clock=clock, sleep=sleep)
        self.dry_run = dry_run
        self._sleep = sleep
        self._clock = clock

        self.state = SubmissionState.START
        self.ambiguous_confirmation = False

    def execute(self, amount: FormattedAmount) -> SubmissionOutcome:
        """
        Run every stage once.

        Returns:
            SubmissionOutcome; on failure it carries the StageFailure in `error`
        """
        if self.state is not SubmissionState.START:
            raise SubmissionError(f"Pipeline already used (state={self.state.value})")

        logger.info("=" * 60)
        logger.info(f"SUBMISSION PIPELINE START: {amount}")
        logger.info("=" * 60)

        try:
            self._run_stage(Stage.LOGIN, SubmissionState.LOGGING_IN, self._login)
            self._run_stage(Stage.NAVIGATE, SubmissionState.NAVIGATING, self._navigate_to_top)
            self._run_stage(Stage.FILL, SubmissionState.FILLING, lambda: self._fill_form(amount))

            if self.dry_run:
                logger.info("DRY RUN - stopping before submit")
                self.diagnostics.capture(self.page, "dry_run_form_filled")
            else:
                self._run_stage(Stage.SUBMIT, SubmissionState.SUBMITTING, self._submit)

        except StageFailure as failure:
            self.state = SubmissionState.FAILED
            logger.error(f"SUBMISSION PIPELINE FAILED at {failure.stage.value}: {failure.cause}")
            paths = self.diagnostics.capture(self.page, f"{failure.stage.value.lower()}_failure")
            return SubmissionOutcome(
                success=False,
                amount=amount,
                stage=failure.stage,
                cause=failure.cause,
                diagnostics=tuple(paths),
                error=failure,
            )

        self.state = SubmissionState.SUCCESS
        logger.info(f"SUBMISSION PIPELINE COMPLETED: {amount}")
        return SubmissionOutcome(
            success=True,
            amount=amount,
            ambiguous_confirmation=self.ambiguous_confirmation,
            dry_run=self.dry_run,
        )

    # =========================================================================
    # STAGE WRAPPER
    # =========================================================================
    def _run_stage(self, stage: Stage, state: SubmissionState, fn: Callable[[], None]):
        """Enter `state`, run fn once, and attribute any error to `stage`."""
        self.state = state
        logger.info(f"[{stage.value}] Entering {state.value}")
        try:
            fn()
        except Exception as e:
            cause = describe_cause(e)
            logger.warning(f"[{stage.value}] {cause}")
            raise StageFailure(stage, cause, e) from e
        logger.info(f"[{stage.value}] SUCCESS")

    # =========================================================================
    # STAGES
    # =========================================================================
    def _login(self):
        credentials = self.settings.require_credentials()
        probe = self.settings.probe_timeout_ms

        logger.info(f"Opening login page: {self.settings.login_url}")
        self.page.goto(self.settings.login_url, wait_until="domcontentloaded",
                       timeout=self.settings.page_load_timeout_ms)

        id_input = self.resolver.require("login id input", [css(sel.LOGIN_ID_INPUT)], probe)
        password_input = self.resolver.require("password input", [css(sel.LOGIN_PASSWORD_INPUT)], probe)

        human_type(id_input, credentials.identifier, self.settings.typing_delay_ms)
        human_type(password_input, credentials.secret, self.settings.typing_delay_ms, secret=True)

        button = self.resolver.require("login button", [css(sel.LOGIN_BUTTON)], probe)
        self._wait_until_enabled(button, "login button to become enabled",
                                 self.settings.enable_timeout_ms)
        button.click()
        self._wait_for_document_ready("post-login page")

    def _navigate_to_top(self):
        link = self.resolver.require("TOP link", sel.TOP_LINK_CANDIDATES,
                                     self.settings.probe_timeout_ms)
        link.click()
        self._wait_for_document_ready("TOP page")

    def _fill_form(self, amount: FormattedAmount):
        major_input, minor_input = self._resolve_amount_inputs()
        human_type(major_input, amount.major_text, self.settings.typing_delay_ms)
        human_type(minor_input, amount.minor_text, self.settings.typing_delay_ms)
        logger.info(f"Form filled: major={amount.major_text} minor={amount.minor_text}")

    def _submit(self):
        button = self.resolver.require("submit control",
                                       sel.submit_candidates(self.settings.submit_labels),
                                       self.settings.probe_timeout_ms)
        button.click()
        self._wait_for_document_ready("confirmation page")
        self._check_confirmation()

    # =========================================================================
    # HELPERS
    # =========================================================================
    def _resolve_amount_inputs(self) -> Tuple[Locator, Locator]:
        """
        Resolve the major and minor inputs.

        Class- and name-based candidates first. The generic "first two
        text inputs in the form" fallback is best-effort only, and only
        taken when the form holds exactly two such inputs.
        """
        probe = self.settings.probe_timeout_ms
        major = self.resolver.resolve("major amount input", sel.MAJOR_INPUT_CANDIDATES, probe)
        minor = self.resolver.resolve("minor amount input", sel.MINOR_INPUT_CANDIDATES, probe)
        if major is not None and minor is not None:
            return major, minor

        found = self.page.locator(sel.AMOUNT_INPUT_SCOPE).count()
        if found != 2:
            missing = "major amount input" if major is None else "minor amount input"
            logger.error(f"Specific selectors failed and form has {found} generic inputs "
                         f"(need exactly 2) - refusing to guess")
            raise ElementNotFoundError(missing, tried=len(sel.MAJOR_INPUT_CANDIDATES))

        logger.warning("Using generic amount inputs (best-effort): specific selectors failed")
        if major is None:
            major = self.resolver.require("major amount input (generic)",
                                          sel.GENERIC_MAJOR_CANDIDATES, probe)
        if minor is None:
            minor = self.resolver.require("minor amount input (generic)",
                                          sel.GENERIC_MINOR_CANDIDATES, probe)
        return major, minor

    def _wait_until_enabled(self, locator: Locator, what: str, timeout_ms: int):
        """Poll is_enabled() until true or timeout_ms elapses."""
        deadline = self._clock() + timeout_ms / 1000
        while True:
            if locator.is_enabled():
                logger.info(f"Observed {what}")
                return
            if self._clock() >= deadline:
                raise WaitTimeoutError(what, timeout_ms)
            self._sleep(ENABLE_POLL_INTERVAL / 1000)

    def _wait_for_document_ready(self, what: str):
        timeout = self.settings.page_load_timeout_ms
        try:
            self.page.wait_for_load_state("load", timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise WaitTimeoutError(what, timeout) from e
        logger.info(f"{what} ready: {self.page.url}")

    def _check_confirmation(self):
        """Look for a confirmation token. Missing tokens are logged, not fatal."""
        try:
            content = self.page.content()
        except PlaywrightError as e:
            logger.warning(f"Could not read confirmation page: {e}")
            content = ""

        matched = [t for t in self.settings.confirmation_tokens if t in content]
        if matched:
            logger.info(f"Confirmation text found: {matched}")
        else:
            self.ambiguous_confirmation = True
            logger.warning("No confirmation text found after submit - treating as success "
                           f"(expected one of {list(self.settings.confirmation_tokens)})")
