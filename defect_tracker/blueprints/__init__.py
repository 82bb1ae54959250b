"""
Defect Tracker
Blueprint registry and shared request helpers.
"""

from flask import request


def request_data() -> dict:
    """Body fields from a JSON payload or a multipart/urlencoded form."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def request_files(field: str = "attachments") -> list:
    """Uploaded files for ``field`` (empty list for JSON requests)."""
    return request.files.getlist(field)
