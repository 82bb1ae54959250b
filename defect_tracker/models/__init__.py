"""
Defect Tracker
Shared SQLAlchemy instance.

Every model module imports ``db`` from here so that the app factory can
bind one engine for the whole package.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
