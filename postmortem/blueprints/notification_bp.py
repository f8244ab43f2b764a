"""
Incident Postmortem Platform
Notification, Digest & Audit Blueprint.

Endpoints:
    GET  /api/v1/notifications                     — own inbox, newest first
    GET  /api/v1/notifications/unread-count        — own unread count
    POST /api/v1/notifications/<id>/read           — mark one read
    POST /api/v1/notifications/read-all            — mark all read
    GET  /api/v1/orgs/<org_id>/digests             — org digests, newest week first
    GET  /api/v1/digests/<id>                      — one digest
    GET  /api/v1/audit/<entity_type>/<entity_id>   — entity audit trail
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify

from postmortem.auth import get_current_profile, require_org_access, require_profile
from postmortem.blueprints import limit_arg
from postmortem.core.exceptions import NotFoundError, ValidationError
from postmortem.models import db
from postmortem.models.incident import ActionItem, Incident
from postmortem.models.refs import EntityKind, EntityRef
from postmortem.services.audit_trail import list_entity_audit
from postmortem.services.digest import get_digest, list_digests
from postmortem.services.notification import NotificationService
from postmortem.services.org_directory import is_org_member
from postmortem.utils.errors import E, api_error

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification", __name__, url_prefix="/api/v1")

_AUDITABLE = {
    EntityKind.INCIDENT: Incident,
    EntityKind.ACTION_ITEM: ActionItem,
}


# ── Error handlers ────────────────────────────────────────────────────────────


@notification_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, f"{error.resource} not found")


@notification_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_CONSTRAINT, str(error), details=error.details)


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATION INBOX
# ═══════════════════════════════════════════════════════════════════════════


@notification_bp.route("/notifications", methods=["GET"])
@require_profile
def list_notifications():
    """List the caller's notifications.

    Query params:
        limit — max rows (default 20, max 100)
    """
    profile = get_current_profile()
    limit = limit_arg(20)
    items = NotificationService.list_for_user(profile.id, limit=limit)
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": len(items),
        "unread_count": NotificationService.unread_count(profile.id),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_profile
def unread_count():
    profile = get_current_profile()
    return jsonify({"unread_count": NotificationService.unread_count(profile.id)})


@notification_bp.route("/notifications/<int:nid>/read", methods=["POST"])
@require_profile
def mark_read(nid):
    """Mark one of the caller's notifications as read."""
    notif = NotificationService.mark_read(nid, get_current_profile().id)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
@require_profile
def mark_all_read():
    """Mark all of the caller's notifications as read."""
    count = NotificationService.mark_all_read(get_current_profile().id)
    return jsonify({"marked_read": count})


# ═══════════════════════════════════════════════════════════════════════════
#  DIGESTS
# ═══════════════════════════════════════════════════════════════════════════


@notification_bp.route("/orgs/<int:org_id>/digests", methods=["GET"])
@require_profile
@require_org_access()
def list_org_digests(org_id):
    """List an org's weekly digests.

    Query params:
        limit — max rows (default 10, max 100)
    """
    limit = limit_arg(10)
    digests = list_digests(org_id, limit=limit)
    return jsonify({
        "digests": [d.to_dict() for d in digests],
        "total": len(digests),
    })


@notification_bp.route("/digests/<int:digest_id>", methods=["GET"])
@require_profile
def get_digest_detail(digest_id):
    digest = get_digest(digest_id)
    if not is_org_member(digest.org_id, get_current_profile().id):
        raise NotFoundError(resource="Digest", resource_id=digest_id)
    return jsonify(digest.to_dict())


# ═══════════════════════════════════════════════════════════════════════════
#  AUDIT TRAIL
# ═══════════════════════════════════════════════════════════════════════════


@notification_bp.route("/audit/<entity_type>/<int:entity_id>", methods=["GET"])
@require_profile
def get_entity_audit(entity_type, entity_id):
    """
    Audit trail of one entity, newest first.

    For an incident the trail also contains its action items' entries.
    """
    try:
        entity = EntityRef.parse(entity_type, entity_id)
    except ValueError:
        return api_error(E.VALIDATION_INVALID, f"Unknown entity type: {entity_type}")

    model = _AUDITABLE.get(entity.kind)
    if model is None:
        return api_error(
            E.VALIDATION_INVALID,
            f"Audit trail not available for {entity_type}",
            details={"supported": sorted(k.value for k in _AUDITABLE)},
        )

    profile = get_current_profile()
    record = db.session.get(model, entity.id)
    if record is None:
        raise NotFoundError(resource=model.__name__, resource_id=entity.id)
    # Rows without an org are visible to admins only
    if record.org_id is None:
        allowed = profile.role == "admin"
    else:
        allowed = is_org_member(record.org_id, profile.id)
    if not allowed:
        raise NotFoundError(resource=model.__name__, resource_id=entity.id)

    logs = list_entity_audit(entity)
    return jsonify({
        "audit_logs": [log.to_dict() for log in logs],
        "total": len(logs),
    })
