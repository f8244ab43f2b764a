"""
Incident Postmortem Platform
Blueprint registry.
"""

from flask import request


def limit_arg(default_limit: int, max_limit: int = 100) -> int:
    """Read the ``limit`` query param, clamped to 1..max_limit.

    A missing or non-numeric value falls back to ``default_limit``.
    """
    try:
        limit = int(request.args.get("limit", default_limit))
    except (ValueError, TypeError):
        limit = default_limit
    return min(max(limit, 1), max_limit)
