"""Tests for the guarded submission state machine."""

from dataclasses import replace

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from forecast_bot.exceptions import SubmissionError
from forecast_bot.forecast_site import DiagnosticSink
from forecast_bot.pricing import FormattedAmount
from forecast_bot.submission_pipeline import (
    Stage, SubmissionPipeline, SubmissionState, describe_cause
)

from conftest import FakeElement, build_site

AMOUNT = FormattedAmount(50320, 50)


class SteppingClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


def make_pipeline(page, settings, dry_run=False):
    clock = SteppingClock()
    return SubmissionPipeline(page, settings, DiagnosticSink(settings.diagnostics_dir),
                              dry_run=dry_run, sleep=clock.sleep, clock=clock)


class TestSubmissionPipelineHappyPath:
    """Full login -> TOP -> fill -> submit runs."""

    def test_submits_amount(self, site, settings):
        pipeline = make_pipeline(site, settings)

        outcome = pipeline.execute(AMOUNT)

        assert outcome.success
        assert outcome.label == "SUCCESS"
        assert pipeline.state is SubmissionState.SUCCESS
        assert ("major", "50320") in site.typed
        assert ("minor", "50") in site.typed
        assert site.clicked == ["login_id", "password", "login_button", "top_link",
                                "major", "minor", "submit"]
        assert site.visited == [settings.login_url]
        assert site.screenshots == []

    def test_credentials_are_typed(self, site, settings):
        make_pipeline(site, settings).execute(AMOUNT)

        assert ("login_id", "tester") in site.typed
        assert ("password", "s3cret") in site.typed

    def test_minor_is_zero_padded(self, site, settings):
        make_pipeline(site, settings).execute(FormattedAmount(38000, 7))

        assert ("minor", "07") in site.typed

    def test_existing_field_content_is_replaced(self, site, settings):
        site.css["input.yosou_int"][0].value = "49999"

        make_pipeline(site, settings).execute(AMOUNT)

        assert site.css["input.yosou_int"][0].value == "50320"

    def test_amend_label_is_accepted(self, page, settings):
        build_site(page)
        page.css.pop('input[type="submit"][value="予想する"]')
        page.add('input[type="submit"][value="修正する"]', FakeElement("submit"))

        outcome = make_pipeline(page, settings).execute(AMOUNT)

        assert outcome.success
        assert "submit" in page.clicked

    def test_missing_confirmation_is_ambiguous_success(self, page, settings):
        build_site(page, confirmation="<p>ようこそ</p>")

        outcome = make_pipeline(page, settings).execute(AMOUNT)

        assert outcome.success
        assert outcome.ambiguous_confirmation

    def test_form_label_is_not_a_confirmation(self, page, settings):
        build_site(page, confirmation="<label>予想値</label>")

        outcome = make_pipeline(page, settings).execute(AMOUNT)

        assert outcome.success
        assert outcome.ambiguous_confirmation

    def test_late_rendered_top_link_is_found(self, page, settings):
        build_site(page)
        top = page.roles.pop()
        clock = SteppingClock()

        def sleep(seconds):
            clock.sleep(seconds)
            if clock.now >= 0.3 and not page.roles:
                page.roles.append(top)

        pipeline = SubmissionPipeline(page, settings, DiagnosticSink(settings.diagnostics_dir),
                                      sleep=sleep, clock=clock)
        outcome = pipeline.execute(AMOUNT)

        assert outcome.success
        assert "top_link" in page.clicked

    def test_confirmation_found_is_not_ambiguous(self, site, settings):
        outcome = make_pipeline(site, settings).execute(AMOUNT)

        assert not outcome.ambiguous_confirmation

    def test_dry_run_stops_before_submit(self, site, settings):
        outcome = make_pipeline(site, settings, dry_run=True).execute(AMOUNT)

        assert outcome.success
        assert outcome.dry_run
        assert outcome.label == "SUCCESS (dry run)"
        assert "submit" not in site.clicked
        assert len(site.screenshots) == 1
        assert "dry_run_form_filled" in site.screenshots[0]

    def test_pipeline_is_single_use(self, site, settings):
        pipeline = make_pipeline(site, settings)
        pipeline.execute(AMOUNT)

        with pytest.raises(SubmissionError):
            pipeline.execute(AMOUNT)


class TestSubmissionPipelineFailures:
    """Each stage failure ends the run with one diagnostic capture."""

    def test_login_button_never_enabled(self, page, settings):
        build_site(page, enabled=False)

        outcome = make_pipeline(page, settings).execute(AMOUNT)

        assert not outcome.success
        assert outcome.stage is Stage.LOGIN
        assert outcome.cause.startswith("timeout")
        assert outcome.label == "FAILED at Login"
        assert len(page.screenshots) == 1
        assert "login_failure" in page.screenshots[0]
        assert "login_button" not in page.clicked

    def test_missing_login_field(self, page, settings):
        build_site(page)
        page.css.pop('input[name="password"]')

        outcome = make_pipeline(page, settings).execute(AMOUNT)

        assert outcome.stage is Stage.LOGIN
        assert outcome.cause == "element not found: password input"

    def test_missing_credentials_fail_login(self, site, settings):
        outcome = make_pipeline(site, replace(settings, credentials=None)).execute(AMOUNT)

        assert outcome.stage is Stage.LOGIN
        assert site.visited == []

    def test_missing_top_link(self, page, settings):
        build_site(page)
        page.roles.clear()

        pipeline = make_pipeline(page, settings)
        outcome = pipeline.execute(AMOUNT)

        assert outcome.stage is Stage.NAVIGATE
        assert pipeline.state is SubmissionState.FAILED
        assert len(page.screenshots) == 1
        assert outcome.diagnostics

    def test_top_link_found_by_text(self, page, settings):
        build_site(page)
        page.roles.clear()
        page.add_text("TOP", FakeElement("top_text"))

        outcome = make_pipeline(page, settings).execute(AMOUNT)

        assert outcome.success
        assert "top_text" in page.clicked

    def test_page_load_timeout_is_a_timeout_cause(self, site, settings):
        site.load_error = PlaywrightTimeoutError("Timeout 1000ms exceeded")

        outcome = make_pipeline(site, settings).execute(AMOUNT)

        assert outcome.stage is Stage.LOGIN
        assert outcome.cause.startswith("timeout")

    def test_missing_submit_control(self, page, settings):
        build_site(page)
        page.css.pop('input[type="submit"][value="予想する"]')

        outcome = make_pipeline(page, settings).execute(AMOUNT)

        assert outcome.stage is Stage.SUBMIT
        assert "major" in page.clicked


class TestAmountInputFallback:
    """The generic input fallback only applies to a two-input form."""

    def _site_without_specific_inputs(self, page, generic_count):
        build_site(page)
        page.css.pop("input.yosou_int")
        page.css.pop("input.yosou_dec")
        for i in range(generic_count):
            page.add('form input[type="text"]', FakeElement(f"generic{i}"))
        return page

    def test_two_generic_inputs_are_used(self, page, settings):
        self._site_without_specific_inputs(page, 2)

        outcome = make_pipeline(page, settings).execute(AMOUNT)

        assert outcome.success
        assert ("generic0", "50320") in page.typed
        assert ("generic1", "50") in page.typed

    @pytest.mark.parametrize("count", [0, 1, 3])
    def test_other_counts_fail_fill(self, page, settings, count):
        self._site_without_specific_inputs(page, count)

        outcome = make_pipeline(page, settings).execute(AMOUNT)

        assert outcome.stage is Stage.FILL
        assert not any(name.startswith("generic") for name, _ in page.typed)


class TestDescribeCause:
    def test_timeout_prefix(self):
        assert describe_cause(PlaywrightTimeoutError("slow")).startswith("timeout: ")

    def test_other_errors_carry_type_name(self):
        assert describe_cause(RuntimeError("boom")) == "RuntimeError: boom"
