from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from sector_registry.models.change_history import ChangeHistoryEntry
from sector_registry.models.user import User


# -------------------------------------------------------------
# APPEND
# -------------------------------------------------------------
async def record_change(
    db: AsyncSession,
    *,
    sector_id: int,
    user_id: int,
    action: str,
    field_name: str,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
) -> ChangeHistoryEntry:
    """
    Insert one audit entry inside the caller's transaction.

    Flushed immediately so a failing insert aborts the mutation it
    describes at the point of the write.
    """
    entry = ChangeHistoryEntry(
        sector_id=sector_id,
        user_id=user_id,
        action=action,
        field_name=field_name,
        old_value=old_value,
        new_value=new_value,
    )
    db.add(entry)
    await db.flush()
    return entry


# -------------------------------------------------------------
# READ
# -------------------------------------------------------------
async def history_for_sector(db: AsyncSession, sector_id: int) -> List[Dict[str, Any]]:
    """Entries for one sector, most recent first, with the acting user's identity."""
    q = (
        select(
            ChangeHistoryEntry.id,
            ChangeHistoryEntry.action,
            ChangeHistoryEntry.field_name,
            ChangeHistoryEntry.old_value,
            ChangeHistoryEntry.new_value,
            ChangeHistoryEntry.changed_at,
            User.username,
            User.full_name,
        )
        .join(User, User.id == ChangeHistoryEntry.user_id)
        .where(ChangeHistoryEntry.sector_id == sector_id)
        .order_by(ChangeHistoryEntry.changed_at.desc(), ChangeHistoryEntry.id.desc())
    )
    rows = (await db.execute(q)).all()
    return [dict(r._mapping) for r in rows]
