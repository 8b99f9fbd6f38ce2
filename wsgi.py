"""
WSGI entry point for the Elevator Workspace API.

Usage:
    flask --app wsgi run
    flask --app wsgi db upgrade          # apply migrations/versions
    flask --app wsgi seed-departments    # default support departments
"""

from app import create_app

app = create_app()
