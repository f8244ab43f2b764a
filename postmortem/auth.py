"""
Incident Postmortem Platform
Request identity & access decorators.

Provides:
    - Request identity from the identity header (default ``X-User-Id``)
      set by the upstream auth proxy, resolved to a Profile
    - Role-based access control decorator
    - Org membership check for org-scoped routes

Usage:
    @bp.route("/orgs/<int:org_id>/automation-runs")
    @require_profile
    @require_org_access()
    @require_role("admin")
    def list_automation_runs(org_id): ...

Decorators are applied top-down: identity first, then org membership,
then role.  A non-member gets 404 so org existence is not revealed.
"""

import functools
import logging

from flask import current_app, g, request
from sqlalchemy import select

from postmortem.models import db
from postmortem.models.org import Profile
from postmortem.services.org_directory import is_org_member
from postmortem.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def get_current_profile() -> Profile | None:
    """Resolve the request's Profile from the identity header (cached on g)."""
    header = current_app.config.get("IDENTITY_HEADER", "X-User-Id")
    user_id = request.headers.get(header, "").strip()
    # g outlives a single request when the app context is shared
    if "current_profile" in g and g.get("current_user_id") == user_id:
        return g.current_profile

    profile = None
    if user_id:
        profile = db.session.execute(
            select(Profile).where(Profile.user_id == user_id)
        ).scalar_one_or_none()
    g.current_user_id = user_id
    g.current_profile = profile
    return profile


def require_profile(f):
    """Decorator: require a known profile; sets ``g.current_profile``."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        profile = get_current_profile()
        if profile is None:
            return api_error(E.UNAUTHENTICATED, "Authentication required")
        if profile.is_system:
            logger.warning("Rejected request using the automation identity on %s", request.path)
            return api_error(E.FORBIDDEN, "Automation identity cannot call the API")
        return f(*args, **kwargs)
    return decorated


def require_role(*roles: str):
    """
    Decorator: require the current profile's role to be one of ``roles``.

    Must be applied after ``require_profile``.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            profile = get_current_profile()
            if profile is None:
                return api_error(E.UNAUTHENTICATED, "Authentication required")
            if profile.role not in roles:
                logger.warning(
                    "Access denied: role '%s' tried to access %s (requires %s)",
                    profile.role, request.path, " or ".join(roles),
                )
                return api_error(
                    E.FORBIDDEN,
                    f"Insufficient permissions. Required role: {' or '.join(roles)}",
                )
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_org_access(arg: str = "org_id"):
    """
    Decorator: require the current profile to be a member of the org named
    by the ``arg`` view argument.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            profile = get_current_profile()
            if profile is None:
                return api_error(E.UNAUTHENTICATED, "Authentication required")
            org_id = kwargs.get(arg)
            if org_id is None or not is_org_member(org_id, profile.id):
                return api_error(E.NOT_FOUND, "Org not found")
            return f(*args, **kwargs)
        return decorated
    return decorator
