"""
Shared pytest fixtures for the Incident Postmortem Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org / admin / owner: a tenant with one admin and one editor member
    - make_profile / make_incident / make_action_item: row factories
    - auth_headers: identity header builder for client requests

Factories place rows relative to NOW (Wednesday 2024-01-03 12:00 UTC);
test modules use the same instant.
"""

from datetime import datetime, timedelta, timezone

import pytest

from postmortem import create_app
from postmortem.models import db as _db
from postmortem.models.incident import ActionItem, Incident
from postmortem.models.org import Org, OrgMember, Profile

NOW = datetime(2024, 1, 3, 12, 0, tzinfo=timezone.utc)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Row factories ────────────────────────────────────────────────────────


@pytest.fixture()
def org():
    o = Org(name="Acme", slug="acme")
    _db.session.add(o)
    _db.session.commit()
    return o


@pytest.fixture()
def make_profile():
    """Create a profile, optionally as a member of ``org``."""
    def _make(user_id, *, role="editor", name=None, org=None):
        p = Profile(user_id=user_id, role=role, name=name or user_id, email=f"{user_id}@example.com")
        _db.session.add(p)
        _db.session.flush()
        if org is not None:
            _db.session.add(OrgMember(org_id=org.id, profile_id=p.id))
        _db.session.commit()
        return p
    return _make


@pytest.fixture()
def admin(org, make_profile):
    return make_profile("user_admin", role="admin", name="Alice Admin", org=org)


@pytest.fixture()
def owner(org, admin, make_profile):
    return make_profile("user_owner", role="editor", name="Oscar Owner", org=org)


@pytest.fixture()
def make_incident(org, owner):
    """Create an incident in ``org`` owned by ``owner`` (OPEN SEV2, 3h old)."""
    def _make(**kwargs):
        fields = {
            "org_id": org.id,
            "title": "Checkout API errors",
            "severity": "SEV2",
            "status": "OPEN",
            "start_time": NOW - timedelta(hours=3),
            "owner_id": owner.id,
        }
        fields.update(kwargs)
        incident = Incident(**fields)
        _db.session.add(incident)
        _db.session.commit()
        return incident
    return _make


@pytest.fixture()
def make_action_item(org, owner):
    """Create an action item for an incident (OPEN, due in 10 days)."""
    def _make(incident, **kwargs):
        fields = {
            "org_id": org.id,
            "incident_id": incident.id,
            "title": "Add alerting",
            "owner_id": owner.id,
            "priority": "P1",
            "due_date": NOW + timedelta(days=10),
            "status": "OPEN",
        }
        fields.update(kwargs)
        item = ActionItem(**fields)
        _db.session.add(item)
        _db.session.commit()
        return item
    return _make


@pytest.fixture()
def auth_headers():
    """Identity header for a test client request."""
    def _headers(profile):
        return {"X-User-Id": profile.user_id}
    return _headers
