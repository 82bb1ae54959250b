"""
Shared pytest fixtures for the Defect Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate, built-in roles seeded (autouse)
    - client: Flask test client (function-scoped)
    - make_user / auth_headers: account + bearer token helpers
    - admin, manager, engineer, viewer: one user per built-in role
    - project: a pre-created Project
"""

import pytest

from defect_tracker import create_app
from defect_tracker.models import db as _db
from defect_tracker.models.auth import Role, User, UserRole
from defect_tracker.models.project import Project
from defect_tracker.services.jwt_service import generate_access_token
from defect_tracker.services.seed_service import seed_roles
from defect_tracker.utils.crypto import hash_password

DEFAULT_PASSWORD = "Secret123!"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db, tmp_path):
    """Per-test: open app context, seed roles, rollback + recreate tables afterwards."""
    app.config["UPLOAD_ROOT"] = str(tmp_path)
    with app.app_context():
        seed_roles()
        _db.session.commit()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users & tokens ───────────────────────────────────────────────────────


def _create_user(email, *role_names, password=DEFAULT_PASSWORD):
    user = User(email=email, username=email, password_hash=hash_password(password))
    for name in role_names:
        user.user_roles.append(UserRole(role=Role.query.filter_by(name=name).one()))
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def make_user():
    """Factory: make_user("a@defects.com", "Engineer", ...) → committed User."""
    return _create_user


def _headers(user):
    token = generate_access_token(user.id, user.role_names)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def auth_headers():
    """Factory: auth_headers(user) → Authorization header dict."""
    return _headers


@pytest.fixture()
def admin():
    return _create_user("admin.user@defects.com", "Admin")


@pytest.fixture()
def manager():
    return _create_user("manager@defects.com", "Manager")


@pytest.fixture()
def engineer():
    return _create_user("engineer@defects.com", "Engineer")


@pytest.fixture()
def viewer():
    return _create_user("viewer@defects.com", "Viewer")


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def project():
    p = Project(name="Residential Block A", description="Main contract")
    _db.session.add(p)
    _db.session.commit()
    return p
