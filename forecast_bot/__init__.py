"""
Forecast Bot

Resolves a session-final futures price from a quote feed and submits it
to a forecast site through a guarded browser state machine.
"""

__version__ = "1.0.0"
