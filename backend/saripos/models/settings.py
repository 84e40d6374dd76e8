from __future__ import annotations

from ..extensions import db
from saripos.time_utils import to_utc_z, utcnow

SETTING_VALUE_TYPES = ("string", "number", "boolean", "json")


class Setting(db.Model):
    """
    Application-wide key/value setting.

    `value` is always stored as text; `value_type` says how to decode it.
    """
    __tablename__ = "settings"
    __table_args__ = (
        db.CheckConstraint(
            "value_type IN ('string', 'number', 'boolean', 'json')",
            name="ck_settings_value_type",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    key = db.Column(db.String(128), nullable=False, unique=True)
    value = db.Column(db.Text, nullable=True)
    value_type = db.Column(db.String(16), nullable=False)
    description = db.Column(db.Text, nullable=True)

    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "value": self.value,
            "value_type": self.value_type,
            "description": self.description,
            "updated_at": to_utc_z(self.updated_at),
        }
