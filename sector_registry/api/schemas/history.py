from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class HistoryEntryRead(BaseModel):
    id: int
    action: str
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    changed_at: Optional[datetime] = None
    username: str
    full_name: Optional[str] = None

    model_config = {"from_attributes": True}
