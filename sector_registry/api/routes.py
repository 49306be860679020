from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict, Optional

from sector_registry.api.deps import can_edit, get_actor, is_admin
from sector_registry.api.schemas.history import HistoryEntryRead
from sector_registry.api.schemas.sector import BatchUpdateRequest, SectorCreate
from sector_registry.core.actor import Actor
from sector_registry.core.db import get_db
from sector_registry.services.sector_service import SectorService

router = APIRouter()

# every sector route needs an authenticated caller
sectors_router = APIRouter(prefix="/sectors", dependencies=[Depends(get_actor)])


# ----------------------------------------------------
# Health Check
# ----------------------------------------------------
@router.get("/health")
async def health():
    return {"status": "ok", "message": "API running successfully"}


# ----------------------------------------------------
# Read Endpoints
# ----------------------------------------------------
@sectors_router.get("")
async def list_sectors(
    division: Optional[str] = None,
    office: Optional[str] = None,
    search: Optional[str] = None,
    minArea: Optional[str] = None,
    maxArea: Optional[str] = None,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    params = {
        "division": division,
        "office": office,
        "search": search,
        "minArea": minArea,
        "maxArea": maxArea,
        "limit": limit,
        "offset": offset,
    }
    return {"success": True, "data": await SectorService.list_sectors(db, params)}


@sectors_router.get("/stats")
async def division_stats(db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": {"divisions": await SectorService.division_stats(db)}}


@sectors_router.get("/division/{division}")
async def sectors_by_division(
    division: str,
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    data = await SectorService.list_by_division(db, division, limit, offset)
    return {"success": True, "data": data}


@sectors_router.get("/{sector_id}")
async def get_sector(sector_id: int, db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await SectorService.get_sector(db, sector_id)}


@sectors_router.get("/{sector_id}/history")
async def sector_history(sector_id: int, db: AsyncSession = Depends(get_db)):
    rows = await SectorService.get_history(db, sector_id)
    history = [HistoryEntryRead.model_validate(r).model_dump() for r in rows]
    return {"success": True, "data": {"history": history}}


# ----------------------------------------------------
# Editor Endpoints
# ----------------------------------------------------
@sectors_router.post("", status_code=201)
async def create_sector(
    payload: SectorCreate,
    actor: Actor = Depends(can_edit),
    db: AsyncSession = Depends(get_db),
):
    new_id = await SectorService.create_sector(db, payload.model_dump(exclude_unset=True), actor)
    return {"success": True, "message": "Sector created successfully", "data": {"id": new_id}}


@sectors_router.post("/batch-update")
async def batch_update(
    payload: BatchUpdateRequest,
    actor: Actor = Depends(can_edit),
    db: AsyncSession = Depends(get_db),
):
    items = [item.model_dump() for item in payload.updates]
    updated_count = await SectorService.batch_update(db, items, actor)
    return {
        "success": True,
        "message": f"Successfully updated {updated_count} sectors",
        "data": {"updatedCount": updated_count},
    }


@sectors_router.put("/{sector_id}")
async def update_sector(
    sector_id: int,
    fields: Dict[str, Any] = Body(...),
    actor: Actor = Depends(can_edit),
    db: AsyncSession = Depends(get_db),
):
    await SectorService.update_sector(db, sector_id, fields, actor)
    return {"success": True, "message": "Sector updated successfully"}


# ----------------------------------------------------
# Admin Endpoints
# ----------------------------------------------------
@sectors_router.delete("/{sector_id}")
async def delete_sector(
    sector_id: int,
    actor: Actor = Depends(is_admin),
    db: AsyncSession = Depends(get_db),
):
    await SectorService.delete_sector(db, sector_id, actor)
    return {"success": True, "message": "Sector deleted successfully"}


router.include_router(sectors_router)
