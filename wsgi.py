"""
Flask-Migrate / Alembic entry point.

Usage:
    flask db migrate -m "description"
    flask db upgrade
    flask seed-demo
"""

from bugtracker import create_app

app = create_app()
