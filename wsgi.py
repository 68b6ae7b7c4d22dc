"""
WSGI entry point (also used by Flask-Migrate / Alembic).

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-demo
    gunicorn wsgi:app
"""

from ceodesk import create_app

app = create_app()
