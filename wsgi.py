"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi seed          # roles + default admin
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
"""

from defect_tracker import create_app

app = create_app()
