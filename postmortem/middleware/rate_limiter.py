"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in postmortem/__init__.py with no default
limits; this module applies limits per route category.  Manual automation
triggers carry their own stricter limit (``AUTOMATION_TRIGGER_RATE_LIMIT``)
on the route itself.

Usage:
    from postmortem.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

READ_LIMIT = "200/minute"
WRITE_LIMIT = "60/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Notification inbox / digests / audit: 200/minute
        - Automation admin routes:               60/minute

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("notification")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("automation")
    if bp:
        limiter.limit(WRITE_LIMIT)(bp)

    app.logger.info(
        "Rate limiter configured: read %s, automation %s, triggers %s",
        READ_LIMIT, WRITE_LIMIT, app.config.get("AUTOMATION_TRIGGER_RATE_LIMIT"),
    )
