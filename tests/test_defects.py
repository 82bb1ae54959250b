"""
Defect workflow tests — create, filter, details, edit, status, delete.
"""

import pytest
from sqlalchemy import delete
from sqlalchemy.orm.exc import StaleDataError

from defect_tracker.core.exceptions import NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.defect import Defect
from defect_tracker.models.project import Project
from defect_tracker.services import defect_service


# ── Helpers ─────────────────────────────────────────────────────────────────


def _make_project(name="Tower B"):
    p = Project(name=name)
    db.session.add(p)
    db.session.commit()
    return p


def _make_defect(project, creator=None, title="Water leak", status="New",
                 priority="Medium", description="", **kwargs):
    d = Defect(
        title=title,
        description=description,
        status=status,
        priority=priority,
        project_id=project.id,
        creator_id=creator.id if creator else None,
        **kwargs,
    )
    db.session.add(d)
    db.session.commit()
    return d


def _ids(defects):
    return {d.id for d in defects}


# ═══════════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════════

class TestCreateDefect:
    def test_create_forces_status_creator_and_timestamp(self, client, engineer, manager,
                                                        project, auth_headers):
        res = client.post("/api/v1/defects", json={
            "title": "Cracked tile",
            "project_id": project.id,
            "status": "Closed",
            "creator_id": manager.id,
            "created_at": "2000-01-01T00:00:00",
        }, headers=auth_headers(engineer))
        assert res.status_code == 201
        data = res.get_json()
        assert data["status"] == "New"
        assert data["creator_id"] == engineer.id
        assert data["priority"] == "Medium"
        assert not data["created_at"].startswith("2000")

    def test_create_with_all_fields(self, client, manager, engineer, project, auth_headers):
        res = client.post("/api/v1/defects", json={
            "title": "Door misaligned",
            "description": "Second floor",
            "project_id": project.id,
            "priority": "High",
            "assignee_id": engineer.id,
            "due_date": "2030-05-01",
        }, headers=auth_headers(manager))
        assert res.status_code == 201
        data = res.get_json()
        assert data["assignee_id"] == engineer.id
        assert data["due_date"] == "2030-05-01"
        assert data["project_name"] == project.name
        assert data["attachments"] == []

    def test_title_required(self, client, engineer, project, auth_headers):
        res = client.post("/api/v1/defects", json={"title": "  ", "project_id": project.id},
                          headers=auth_headers(engineer))
        assert res.status_code == 400
        assert "title" in res.get_json()["details"]
        assert Defect.query.count() == 0

    def test_unknown_project_rejected(self, client, engineer, auth_headers):
        res = client.post("/api/v1/defects", json={"title": "x", "project_id": 999},
                          headers=auth_headers(engineer))
        assert res.status_code == 400
        assert "project_id" in res.get_json()["details"]

    def test_invalid_priority_rejected(self, engineer, project):
        with pytest.raises(ValidationError):
            defect_service.create_defect(
                {"title": "x", "project_id": project.id, "priority": "Urgent"}, engineer.id,
            )

    def test_invalid_due_date_rejected(self, engineer, project):
        with pytest.raises(ValidationError) as exc:
            defect_service.create_defect(
                {"title": "x", "project_id": project.id, "due_date": "31/31/2024"}, engineer.id,
            )
        assert "due_date" in exc.value.details


# ═══════════════════════════════════════════════════════════════
# List / filter
# ═══════════════════════════════════════════════════════════════

class TestListDefects:
    @pytest.fixture()
    def defects(self, engineer):
        p1 = _make_project("Alpha")
        p2 = _make_project("Beta")
        d1 = _make_defect(p1, engineer, "Water leak", "New", "High")
        d2 = _make_defect(p1, engineer, "Cracked wall", "InProgress", "Low",
                          description="small leak nearby")
        d3 = _make_defect(p2, engineer, "Paint", "Closed", "High")
        return {"p1": p1, "p2": p2, "d1": d1, "d2": d2, "d3": d3}

    def test_no_filters_returns_all(self, defects):
        assert len(defect_service.list_defects()) == 3

    def test_search_matches_title_or_description(self, defects):
        found = defect_service.list_defects(search="leak")
        assert _ids(found) == {defects["d1"].id, defects["d2"].id}

    def test_search_is_case_insensitive(self, defects):
        assert _ids(defect_service.list_defects(search="LEAK")) == \
            _ids(defect_service.list_defects(search="leak"))

    def test_status_filter(self, defects):
        assert _ids(defect_service.list_defects(status="New")) == {defects["d1"].id}

    def test_unknown_status_is_ignored(self, defects):
        assert len(defect_service.list_defects(status="Bogus")) == 3

    def test_unknown_priority_is_ignored(self, defects):
        assert len(defect_service.list_defects(priority="Urgent")) == 3

    def test_filters_compose(self, defects):
        found = defect_service.list_defects(priority="High", project_id=defects["p1"].id)
        assert _ids(found) == {defects["d1"].id}
        found = defect_service.list_defects(search="leak", status="InProgress")
        assert _ids(found) == {defects["d2"].id}

    def test_filter_with_no_match(self, defects):
        assert defect_service.list_defects(search="leak", project_id=defects["p2"].id) == []

    def test_api_query_params(self, client, viewer, defects, auth_headers):
        res = client.get(
            f"/api/v1/defects?priority=High&project_id={defects['p1'].id}",
            headers=auth_headers(viewer),
        )
        assert res.status_code == 200
        assert [d["id"] for d in res.get_json()] == [defects["d1"].id]


# ═══════════════════════════════════════════════════════════════
# Details / Edit
# ═══════════════════════════════════════════════════════════════

class TestDetailsAndEdit:
    def test_details(self, client, viewer, engineer, project, auth_headers):
        d = _make_defect(project, engineer)
        res = client.get(f"/api/v1/defects/{d.id}", headers=auth_headers(viewer))
        assert res.status_code == 200
        data = res.get_json()
        assert data["creator_name"] == engineer.email
        assert data["comments"] == []

    def test_details_missing(self, client, viewer, auth_headers):
        res = client.get("/api/v1/defects/999", headers=auth_headers(viewer))
        assert res.status_code == 404

    def test_edit_replaces_fields_and_keeps_origin(self, client, engineer, manager,
                                                    project, auth_headers):
        other = _make_project("Other")
        d = _make_defect(project, engineer, description="old", priority="Low",
                         due_date=None)
        created_at = d.created_at

        res = client.put(f"/api/v1/defects/{d.id}", json={
            "title": "Renamed",
            "project_id": other.id,
            "status": "OnReview",
            "priority": "High",
            "assignee_id": manager.id,
        }, headers=auth_headers(manager))
        assert res.status_code == 200

        db.session.expire_all()
        d = db.session.get(Defect, d.id)
        assert d.title == "Renamed"
        assert d.project_id == other.id
        assert d.status == "OnReview"
        assert d.priority == "High"
        assert d.assignee_id == manager.id
        assert d.description == ""
        assert d.creator_id == engineer.id
        assert d.created_at == created_at

    def test_edit_keeps_status_when_omitted(self, engineer, project):
        d = _make_defect(project, engineer, status="InProgress")
        defect_service.update_defect(d.id, {"title": "t", "project_id": project.id})
        assert d.status == "InProgress"

    def test_edit_missing_defect(self, client, engineer, project, auth_headers):
        res = client.put("/api/v1/defects/999", json={"title": "t", "project_id": project.id},
                         headers=auth_headers(engineer))
        assert res.status_code == 404

    def test_created_at_is_immutable(self, engineer, project):
        d = _make_defect(project, engineer)
        with pytest.raises(ValueError):
            d.created_at = d.created_at.replace(year=2000)

    def test_concurrent_delete_becomes_not_found(self, engineer, project, monkeypatch):
        d = _make_defect(project, engineer)
        defect_id = d.id
        real_commit = db.session.commit

        def _deleted_elsewhere():
            db.session.execute(delete(Defect).where(Defect.id == defect_id))
            real_commit()
            raise StaleDataError("row vanished")

        monkeypatch.setattr(db.session, "commit", _deleted_elsewhere)
        with pytest.raises(NotFoundError):
            defect_service.update_defect(defect_id, {"title": "t", "project_id": project.id})

    def test_other_concurrency_error_propagates(self, engineer, project, monkeypatch):
        d = _make_defect(project, engineer)

        def _stale():
            raise StaleDataError("version mismatch")

        monkeypatch.setattr(db.session, "commit", _stale)
        with pytest.raises(StaleDataError):
            defect_service.update_defect(d.id, {"title": "t", "project_id": project.id})


# ═══════════════════════════════════════════════════════════════
# Status / delete
# ═══════════════════════════════════════════════════════════════

class TestStatusAndDelete:
    def test_change_status_any_to_any(self, client, engineer, project, auth_headers):
        d = _make_defect(project, engineer, status="Closed")
        res = client.post(f"/api/v1/defects/{d.id}/status", json={"status": "New"},
                          headers=auth_headers(engineer))
        assert res.status_code == 200
        assert res.get_json()["status"] == "New"

    def test_change_status_missing_defect_mutates_nothing(self, client, engineer, project,
                                                          auth_headers):
        d = _make_defect(project, engineer, status="InProgress")
        res = client.post("/api/v1/defects/999/status", json={"status": "Closed"},
                          headers=auth_headers(engineer))
        assert res.status_code == 404
        db.session.expire_all()
        assert [x.status for x in Defect.query.all()] == ["InProgress"]

    def test_change_status_invalid_value(self, client, engineer, project, auth_headers):
        d = _make_defect(project, engineer)
        res = client.post(f"/api/v1/defects/{d.id}/status", json={"status": "Reopened"},
                          headers=auth_headers(engineer))
        assert res.status_code == 400
        db.session.expire_all()
        assert db.session.get(Defect, d.id).status == "New"

    def test_viewer_cannot_change_status(self, client, viewer, engineer, project, auth_headers):
        d = _make_defect(project, engineer)
        res = client.post(f"/api/v1/defects/{d.id}/status", json={"status": "Closed"},
                          headers=auth_headers(viewer))
        assert res.status_code == 403

    def test_delete_defect(self, client, manager, engineer, project, auth_headers):
        d = _make_defect(project, engineer)
        res = client.delete(f"/api/v1/defects/{d.id}", headers=auth_headers(manager))
        assert res.status_code == 200
        assert Defect.query.count() == 0

    def test_engineer_cannot_delete(self, client, engineer, project, auth_headers):
        d = _make_defect(project, engineer)
        res = client.delete(f"/api/v1/defects/{d.id}", headers=auth_headers(engineer))
        assert res.status_code == 403
        assert Defect.query.count() == 1
