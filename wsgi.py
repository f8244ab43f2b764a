"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db upgrade
    flask automation run escalateStaleIncidents
    flask automation scheduler
"""

from postmortem import create_app

app = create_app()
