"""
Elevator Workspace — SQLAlchemy models package.

Every model module imports the shared ``db`` handle from here so that
Flask-SQLAlchemy binds a single metadata to the application.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
