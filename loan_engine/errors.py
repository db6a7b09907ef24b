"""Exceptions raised by the loan engine.

The engine performs no I/O, so the only failure it reports is invalid input
from the caller: a non-positive principal or term, an empty or malformed rate
schedule, an inverted date range. Every such failure is a
``ConfigurationError``; callers translate it into whatever their surface
needs (a CLI usage error, an HTTP 400, ...).
"""


class ConfigurationError(ValueError):
    """Invalid loan parameters, rate schedule or date range."""
