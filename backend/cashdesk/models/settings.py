from __future__ import annotations

from ..extensions import db
from cashdesk.time_utils import to_utc_z


class SystemSetting(db.Model):
    """
    Keyed system configuration. Values are JSON-encoded text.
    """
    __tablename__ = "system_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), nullable=False, unique=True, index=True)
    value_json = db.Column(db.Text, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "value_json": self.value_json,
            "description": self.description,
            "updated_by_user_id": self.updated_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
        }
