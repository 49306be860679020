# sector_registry/api/schemas/sector.py

from pydantic import BaseModel
from typing import Any, Dict, List, Optional


# -----------------------------------------------------
# CREATE SCHEMA (Feature-shaped or flat payload)
# -----------------------------------------------------
class SectorCreate(BaseModel):
    type: Optional[str] = None
    geometry: Optional[Dict[str, Any]] = None
    properties: Optional[Dict[str, Any]] = None

    # flat payloads carry the properties as top-level keys
    model_config = {"extra": "allow"}


# -----------------------------------------------------
# BATCH UPDATE SCHEMA
# -----------------------------------------------------
class BatchUpdateItem(BaseModel):
    id: int
    fields: Dict[str, Any] = {}


class BatchUpdateRequest(BaseModel):
    updates: List[BatchUpdateItem]
