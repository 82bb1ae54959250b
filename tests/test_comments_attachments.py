"""
Comments and attachments.

Covers:
  - AddComment: blank text is a no-op, length cap, author stamping
  - EditComment: author or Admin only, updated_at set
  - Multipart defect creation stores files under uploads/defects
  - Zero-byte uploads are skipped
  - Download endpoints and missing files
  - Deleting a defect removes its stored files
  - formatted_size rendering
"""

import io
import os

import pytest

from defect_tracker.core.exceptions import ValidationError
from defect_tracker.models import db
from defect_tracker.models.defect import (
    CommentAttachment,
    Defect,
    DefectAttachment,
    DefectComment,
    format_file_size,
)
from defect_tracker.services import defect_service, file_service


# ── Helpers ─────────────────────────────────────────────────────────────────


def _make_defect(project, creator):
    d = Defect(title="Loose railing", project_id=project.id, creator_id=creator.id)
    db.session.add(d)
    db.session.commit()
    return d


def _multipart_defect(client, headers, project, files):
    return client.post(
        "/api/v1/defects",
        data={"title": "With photos", "project_id": str(project.id), "attachments": files},
        content_type="multipart/form-data",
        headers=headers,
    )


# ═══════════════════════════════════════════════════════════════
# Comments
# ═══════════════════════════════════════════════════════════════

class TestAddComment:
    def test_viewer_can_comment(self, client, viewer, engineer, project, auth_headers):
        d = _make_defect(project, engineer)
        res = client.post(f"/api/v1/defects/{d.id}/comments", json={"text": "Seen it too"},
                          headers=auth_headers(viewer))
        assert res.status_code == 201
        data = res.get_json()
        assert data["author_id"] == viewer.id
        assert data["updated_at"] is None

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_blank_comment_is_noop(self, client, engineer, project, auth_headers, text):
        d = _make_defect(project, engineer)
        res = client.post(f"/api/v1/defects/{d.id}/comments", json={"text": text},
                          headers=auth_headers(engineer))
        assert res.status_code == 200
        assert res.get_json()["comment"] is None
        assert DefectComment.query.count() == 0

    def test_blank_comment_on_missing_defect_is_noop(self, engineer):
        assert defect_service.add_comment(999, "", engineer.id) is None

    def test_comment_length_cap(self, engineer, project):
        d = _make_defect(project, engineer)
        defect_service.add_comment(d.id, "x" * 1000, engineer.id)
        with pytest.raises(ValidationError):
            defect_service.add_comment(d.id, "x" * 1001, engineer.id)
        assert DefectComment.query.count() == 1

    def test_non_string_text_is_coerced(self, client, engineer, project, auth_headers):
        d = _make_defect(project, engineer)
        res = client.post(f"/api/v1/defects/{d.id}/comments", json={"text": 5},
                          headers=auth_headers(engineer))
        assert res.status_code == 201
        assert res.get_json()["text"] == "5"

    def test_comment_on_missing_defect(self, client, engineer, auth_headers):
        res = client.post("/api/v1/defects/999/comments", json={"text": "hello"},
                          headers=auth_headers(engineer))
        assert res.status_code == 404

    def test_comment_with_attachment(self, client, engineer, project, auth_headers):
        d = _make_defect(project, engineer)
        res = client.post(
            f"/api/v1/defects/{d.id}/comments",
            data={"text": "photo attached",
                  "attachments": [(io.BytesIO(b"jpegdata"), "photo.jpg")]},
            content_type="multipart/form-data",
            headers=auth_headers(engineer),
        )
        assert res.status_code == 201
        att = res.get_json()["attachments"][0]
        assert att["file_path"].startswith("uploads/comments/")
        assert att["original_file_name"] == "photo.jpg"
        assert CommentAttachment.query.count() == 1


class TestEditComment:
    @pytest.fixture()
    def comment(self, engineer, project):
        d = _make_defect(project, engineer)
        return defect_service.add_comment(d.id, "first take", engineer.id)

    def test_author_can_edit(self, client, engineer, comment, auth_headers):
        res = client.put(f"/api/v1/comments/{comment.id}", json={"text": "second take"},
                         headers=auth_headers(engineer))
        assert res.status_code == 200
        data = res.get_json()
        assert data["text"] == "second take"
        assert data["updated_at"] is not None

    def test_admin_can_edit(self, client, admin, comment, auth_headers):
        res = client.put(f"/api/v1/comments/{comment.id}", json={"text": "moderated"},
                         headers=auth_headers(admin))
        assert res.status_code == 200

    def test_other_user_cannot_edit(self, client, manager, comment, auth_headers):
        res = client.put(f"/api/v1/comments/{comment.id}", json={"text": "hijack"},
                         headers=auth_headers(manager))
        assert res.status_code == 403
        db.session.expire_all()
        assert db.session.get(DefectComment, comment.id).text == "first take"

    def test_edit_with_number_text(self, client, engineer, comment, auth_headers):
        res = client.put(f"/api/v1/comments/{comment.id}", json={"text": 42},
                         headers=auth_headers(engineer))
        assert res.status_code == 200
        assert res.get_json()["text"] == "42"

    def test_edit_to_blank_rejected(self, client, engineer, comment, auth_headers):
        res = client.put(f"/api/v1/comments/{comment.id}", json={"text": " "},
                         headers=auth_headers(engineer))
        assert res.status_code == 400


# ═══════════════════════════════════════════════════════════════
# Defect attachments
# ═══════════════════════════════════════════════════════════════

class TestDefectAttachments:
    def test_multipart_create_stores_files(self, client, app, engineer, project, auth_headers):
        res = _multipart_defect(client, auth_headers(engineer), project, [
            (io.BytesIO(b"abc"), "notes.txt"),
            (io.BytesIO(b"\x89PNG...."), "crack.png"),
        ])
        assert res.status_code == 201
        data = res.get_json()
        assert data["status"] == "New"
        assert len(data["attachments"]) == 2

        by_name = {a["original_file_name"]: a for a in data["attachments"]}
        notes = by_name["notes.txt"]
        assert notes["file_size"] == 3
        assert notes["formatted_size"] == "3 B"
        assert notes["content_type"] == "text/plain"
        assert notes["file_name"].endswith("_notes.txt")
        assert notes["file_path"] == f"uploads/defects/{notes['file_name']}"
        assert os.path.isfile(os.path.join(app.config["UPLOAD_ROOT"], "uploads", "defects",
                                           notes["file_name"]))

    def test_generated_names_are_unique(self, client, engineer, project, auth_headers):
        res = _multipart_defect(client, auth_headers(engineer), project, [
            (io.BytesIO(b"one"), "same.txt"),
            (io.BytesIO(b"two"), "same.txt"),
        ])
        names = {a["file_name"] for a in res.get_json()["attachments"]}
        assert len(names) == 2

    def test_empty_upload_skipped(self, client, engineer, project, auth_headers):
        res = _multipart_defect(client, auth_headers(engineer), project, [
            (io.BytesIO(b""), "empty.txt"),
            (io.BytesIO(b"data"), "real.txt"),
        ])
        assert res.status_code == 201
        names = [a["original_file_name"] for a in res.get_json()["attachments"]]
        assert names == ["real.txt"]

    def test_download(self, client, viewer, engineer, project, auth_headers):
        res = _multipart_defect(client, auth_headers(engineer), project,
                                [(io.BytesIO(b"hello file"), "report.txt")])
        att_id = res.get_json()["attachments"][0]["id"]

        dl = client.get(f"/api/v1/attachments/{att_id}/download", headers=auth_headers(viewer))
        assert dl.status_code == 200
        assert dl.data == b"hello file"
        assert "report.txt" in dl.headers["Content-Disposition"]

    def test_download_missing_file_is_404(self, client, engineer, project, auth_headers):
        res = _multipart_defect(client, auth_headers(engineer), project,
                                [(io.BytesIO(b"bytes"), "gone.txt")])
        att = res.get_json()["attachments"][0]
        file_service.delete_file(att["file_path"])

        dl = client.get(f"/api/v1/attachments/{att['id']}/download",
                        headers=auth_headers(engineer))
        assert dl.status_code == 404

    def test_storage_failure_keeps_defect(self, engineer, project, monkeypatch):
        from werkzeug.datastructures import FileStorage

        def _boom(upload, subdirectory):
            raise OSError("disk full")

        monkeypatch.setattr(file_service, "save_file", _boom)
        upload = FileStorage(stream=io.BytesIO(b"data"), filename="a.txt")
        with pytest.raises(OSError):
            defect_service.create_defect(
                {"title": "Partial", "project_id": project.id}, engineer.id, [upload],
            )
        assert Defect.query.filter_by(title="Partial").count() == 1
        assert DefectAttachment.query.count() == 0

    def test_storage_failure_keeps_earlier_attachments(self, engineer, project, monkeypatch):
        from werkzeug.datastructures import FileStorage

        real_save = file_service.save_file
        calls = []

        def _fail_second(upload, subdirectory):
            calls.append(upload.filename)
            if len(calls) == 2:
                raise OSError("disk full")
            return real_save(upload, subdirectory)

        monkeypatch.setattr(file_service, "save_file", _fail_second)
        uploads = [
            FileStorage(stream=io.BytesIO(b"first"), filename="first.txt"),
            FileStorage(stream=io.BytesIO(b"second"), filename="second.txt"),
        ]
        with pytest.raises(OSError):
            defect_service.create_defect(
                {"title": "Half stored", "project_id": project.id}, engineer.id, uploads,
            )

        db.session.expire_all()
        defect = Defect.query.filter_by(title="Half stored").one()
        attachments = DefectAttachment.query.all()
        assert [a.original_file_name for a in attachments] == ["first.txt"]
        assert attachments[0].defect_id == defect.id
        assert file_service.file_exists(attachments[0].file_path)

    def test_delete_defect_removes_files(self, client, manager, engineer, project, auth_headers):
        res = _multipart_defect(client, auth_headers(engineer), project,
                                [(io.BytesIO(b"bytes"), "evidence.txt")])
        data = res.get_json()
        path = data["attachments"][0]["file_path"]
        defect_service.add_comment(data["id"], "see attached", engineer.id)
        assert file_service.file_exists(path)

        res = client.delete(f"/api/v1/defects/{data['id']}", headers=auth_headers(manager))
        assert res.status_code == 200
        assert not file_service.file_exists(path)
        assert DefectAttachment.query.count() == 0
        assert DefectComment.query.count() == 0


class TestFormattedSize:
    @pytest.mark.parametrize("size,expected", [
        (0, "0 B"),
        (1023, "1023 B"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (1024 * 1024, "1 MB"),
        (int(2.25 * 1024 ** 3), "2.25 GB"),
        (5 * 1024 ** 4, "5120 GB"),
    ])
    def test_units(self, size, expected):
        assert format_file_size(size) == expected
