# models.py

from outreach_agent.extensions import db
from datetime import datetime, timezone


def _utcnow():
    return datetime.now(timezone.utc)


class UserResume(db.Model):
    """Latest parsed resume profile per user; overwritten on every upload."""

    __tablename__ = "user_resumes"

    user_id = db.Column(db.String, primary_key=True)  # external auth subject
    doc_id = db.Column(db.String, index=True)
    profile_json = db.Column(db.JSON, nullable=False)
    parsed_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self):
        return f"<UserResume {self.user_id}>"
