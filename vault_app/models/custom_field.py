# vault_app/models/custom_field.py

from .base import BaseModel, db


class CustomFieldSchema(BaseModel):
    """Display metadata for a custom field discovered in the vault export"""

    __tablename__ = "custom_field_schemas"

    id = db.Column(db.Integer, primary_key=True)
    table_name = db.Column(db.String(50), nullable=False, index=True)  # persons or contracts
    field_key = db.Column(db.String(255), nullable=False)
    display_name = db.Column(db.String(255), nullable=False)
    data_type = db.Column(db.String(20), nullable=False, default="text")
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    __table_args__ = (db.UniqueConstraint("table_name", "field_key", name="_custom_field_table_key_uc"),)

    def __repr__(self):
        return f"<CustomFieldSchema {self.table_name}.{self.field_key}>"
