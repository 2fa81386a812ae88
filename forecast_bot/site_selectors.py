"""
Candidate locators per logical role on the forecast site.

Order is preference: the first entry is the most specific selector,
later entries are progressively more generic fallbacks.
"""

from forecast_bot.element_resolver import css, role, text, value

# =============================================================================
# LOGIN (fixed roles - these have been stable)
# =============================================================================
LOGIN_ID_INPUT = 'input[name="login_id"]'
LOGIN_PASSWORD_INPUT = 'input[name="password"]'
LOGIN_BUTTON = 'input[type="submit"], button[type="submit"]'

# =============================================================================
# POST-LOGIN NAVIGATION
# =============================================================================
TOP_LINK_CANDIDATES = [
    role("link", "TOP", exact=True),
    role("link", "TOP"),
    text("TOP", exact=True),
    role("link", "トップ"),
    css('a[href$="/top"], a[href*="/top/"]'),
]

# =============================================================================
# FORECAST FORM
# =============================================================================
MAJOR_INPUT_CANDIDATES = [
    css("input.yosou_int"),
    css("input.forecast-major"),
    css('input[name="yosou_int"]'),
    css('input[name="forecast_major"]'),
]

MINOR_INPUT_CANDIDATES = [
    css("input.yosou_dec"),
    css("input.forecast-minor"),
    css('input[name="yosou_dec"]'),
    css('input[name="forecast_minor"]'),
]

# Only used once the form is confirmed to hold exactly two amount inputs
AMOUNT_INPUT_SCOPE = 'form input[type="text"], form input[type="number"], form input[type="tel"]'
GENERIC_MAJOR_CANDIDATES = [css(AMOUNT_INPUT_SCOPE, nth=0)]
GENERIC_MINOR_CANDIDATES = [css(AMOUNT_INPUT_SCOPE, nth=1)]


def submit_candidates(labels):
    """Submit control candidates for every accepted action label."""
    candidates = [value(label) for label in labels]
    candidates += [role("button", label, exact=True) for label in labels]
    return candidates
