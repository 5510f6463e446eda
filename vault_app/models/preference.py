# vault_app/models/preference.py

import json

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .base import BaseModel, db

LAST_PRIMARY_MANAGER_LOGIC = "last_primary_manager_logic"


class UserPreference(BaseModel):
    """Persisted application preference (e.g. last detected manager rule)"""

    __tablename__ = "user_preferences"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False, index=True)
    value = db.Column(db.Text, nullable=False)  # JSON string for complex values, or simple string/bool
    value_type = db.Column(db.String(20), default="string", nullable=False)  # boolean, string, integer, json

    def __repr__(self):
        return f"<UserPreference {self.key}>"

    def get_value(self):
        """Get the typed value from value"""
        if self.value_type == "boolean":
            return self.value.lower() in ("true", "1", "yes", "on")
        elif self.value_type == "integer":
            try:
                return int(self.value)
            except ValueError:
                return 0
        elif self.value_type == "json":
            try:
                return json.loads(self.value)
            except json.JSONDecodeError:
                return {}
        return self.value

    def set_value(self, value):
        if self.value_type == "boolean":
            self.value = "true" if bool(value) else "false"
        elif self.value_type == "integer":
            self.value = str(int(value))
        elif self.value_type == "json":
            self.value = json.dumps(value) if not isinstance(value, str) else value
        else:
            self.value = str(value)

    @staticmethod
    def get(key, default=None):
        """Get a stored preference value"""
        try:
            preference = UserPreference.query.filter_by(key=key).first()
            return preference.get_value() if preference else default
        except SQLAlchemyError as e:
            current_app.logger.error(f"Database error getting preference {key}: {str(e)}")
            return default

    @staticmethod
    def set(key, value, value_type="string"):
        """Create or update a preference; returns False when the write failed"""
        try:
            preference = UserPreference.query.filter_by(key=key).first()
            if preference:
                preference.value_type = value_type
                preference.set_value(value)
            else:
                preference = UserPreference(key=key, value_type=value_type)
                preference.set_value(value)
                db.session.add(preference)

            db.session.commit()
            return True
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"Database error setting preference {key}: {str(e)}")
            return False
