"""
Project model — the container every defect is filed against.
"""

from datetime import date, datetime, timezone

from defect_tracker.models import db


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    start_date = db.Column(db.Date, nullable=False, default=date.today)
    end_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    defects = db.relationship("Defect", back_populates="project", lazy="select")

    def to_dict(self, include_defects=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }
        if include_defects:
            d["defects"] = [df.to_dict() for df in self.defects]
        return d

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"
