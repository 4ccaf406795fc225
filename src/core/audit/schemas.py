from datetime import datetime

from pydantic import BaseModel


class AuditEntryResponse(BaseModel):
    """One audit row."""

    id: int
    performed_by: str | None = None
    action: str
    entity_type: str
    entity_id: int
    entity_identifier: str | None = None
    old_values: dict | None = None
    new_values: dict | None = None
    comment: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
