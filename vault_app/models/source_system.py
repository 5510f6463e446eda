# vault_app/models/source_system.py

from .base import BaseModel, db


class SourceSystem(BaseModel):
    """An HR system that contributed records to the vault export"""

    __tablename__ = "source_systems"

    system_id = db.Column(db.String(255), primary_key=True)
    display_name = db.Column(db.String(255), nullable=False, default="Unknown")
    identification_key = db.Column(db.String(255), nullable=False)

    def __repr__(self):
        return f"<SourceSystem {self.system_id} ({self.display_name})>"
