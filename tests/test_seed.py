"""
Seed tests — built-in roles and the default administrator.
"""

from defect_tracker.models import db
from defect_tracker.models.auth import Role, User
from defect_tracker.services import seed_service, user_service


class TestSeed:
    def test_roles_already_seeded_by_fixture(self):
        assert seed_service.seed_roles() == 0
        assert sorted(r.name for r in Role.query.all()) == ["Admin", "Engineer", "Manager", "Viewer"]

    def test_seed_all_is_idempotent(self, app):
        first = seed_service.seed_all()
        second = seed_service.seed_all()
        assert first["admin_email"] == app.config["DEFAULT_ADMIN_EMAIL"]
        assert second["roles_created"] == 0
        assert User.query.count() == 1
        assert Role.query.count() == 4

    def test_default_admin_can_log_in(self, client, app):
        seed_service.seed_all()
        user = User.query.one()
        assert user.role_names == ["Admin"]

        res = client.post("/api/v1/auth/login", json={
            "email": app.config["DEFAULT_ADMIN_EMAIL"],
            "password": app.config["DEFAULT_ADMIN_PASSWORD"],
        })
        assert res.status_code == 200
        assert res.get_json()["user"]["roles"] == ["Admin"]

    def test_existing_account_roles_left_alone(self, make_user):
        user = make_user("boss@defects.com", "Viewer")
        seed_service.seed_admin("boss@defects.com", "whatever1")
        assert user.role_names == ["Viewer"]

    def test_reseed_keeps_admin_role_changes(self):
        seed_service.seed_all()
        admin = User.query.one()
        user_service.update_user(admin.id, admin.email, ["Viewer"])
        db.session.commit()

        seed_service.seed_all()
        db.session.expire_all()
        assert db.session.get(User, admin.id).role_names == ["Viewer"]

    def test_cli_seed_command(self, app):
        result = app.test_cli_runner().invoke(args=["seed"])
        assert result.exit_code == 0
        assert "admin:" in result.output
