import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from sector_registry.core.actor import Actor
from sector_registry.core.exceptions import NotFound, SectorError, TransactionFailure, ValidationError
from sector_registry.models.sector import Sector
from sector_registry.services import audit_service
from sector_registry.services.diff_engine import SectorDiff, compute_diff, sector_state
from sector_registry.services.feature_mapper import (
    prepare_create,
    prepare_update,
    to_feature,
    to_feature_collection,
)
from sector_registry.services.filters import compile_division_query, compile_filters

logger = logging.getLogger(__name__)

SECTOR_CREATED = "New sector created"
SECTOR_DELETED = "Sector deleted"


@asynccontextmanager
async def atomic(db: AsyncSession, operation: str):
    """
    Commit the enclosed unit of work, or roll all of it back.

    Domain errors propagate unchanged; store errors are logged with their
    diagnostics and surfaced as a TransactionFailure without them.
    """
    try:
        yield
        await db.commit()
    except SectorError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("%s failed, transaction rolled back", operation)
        raise TransactionFailure(f"Error {operation}") from exc
    except Exception:
        await db.rollback()
        logger.exception("%s failed, transaction rolled back", operation)
        raise


class SectorService:

    # -------------------------------------------------------------
    # READS
    # -------------------------------------------------------------
    @staticmethod
    async def list_sectors(db: AsyncSession, params: Mapping[str, Any]) -> Dict[str, Any]:
        compiled = compile_filters(params)
        sectors = (await db.execute(compiled.rows)).scalars().all()
        total = (await db.execute(compiled.count)).scalar_one()
        return to_feature_collection(sectors, total, compiled.limit, compiled.offset)

    @staticmethod
    async def list_by_division(
        db: AsyncSession, division: str, limit: Any = None, offset: Any = None
    ) -> Dict[str, Any]:
        compiled = compile_division_query(division, limit, offset)
        sectors = (await db.execute(compiled.rows)).scalars().all()
        total = (await db.execute(compiled.count)).scalar_one()
        return to_feature_collection(sectors, total, compiled.limit, compiled.offset)

    @staticmethod
    async def get_sector(db: AsyncSession, sector_id: int) -> Dict[str, Any]:
        sector = (
            await db.execute(select(Sector).where(Sector.id == sector_id))
        ).scalars().first()
        if sector is None:
            raise NotFound("Sector not found")
        return to_feature(sector)

    @staticmethod
    async def get_history(db: AsyncSession, sector_id: int) -> List[Dict[str, Any]]:
        return await audit_service.history_for_sector(db, sector_id)

    @staticmethod
    async def division_stats(db: AsyncSession) -> List[Dict[str, Any]]:
        """Per-division count and design-area range over sectors that have one."""
        q = (
            select(
                Sector.division,
                func.count(Sector.id).label("count"),
                func.min(Sector.design_a_f).label("min_area"),
                func.max(Sector.design_a_f).label("max_area"),
                func.avg(Sector.design_a_f).label("avg_area"),
            )
            .where(Sector.design_a_f.isnot(None))
            .group_by(Sector.division)
            .order_by(Sector.division)
        )
        rows = (await db.execute(q)).all()
        return [
            {
                "division": r.division,
                "count": int(r.count),
                "min_area": r.min_area,
                "max_area": r.max_area,
                "avg_area": (
                    Decimal(str(r.avg_area)).quantize(Decimal("0.01"))
                    if r.avg_area is not None else None
                ),
            }
            for r in rows
        ]

    # -------------------------------------------------------------
    # BUILDING BLOCKS (no commit; run inside atomic())
    # -------------------------------------------------------------
    @staticmethod
    async def load_for_update(db: AsyncSession, sector_id: int) -> Optional[Sector]:
        q = select(Sector).where(Sector.id == sector_id).with_for_update()
        return (await db.execute(q)).scalars().first()

    @staticmethod
    async def insert_sector(db: AsyncSession, values: Mapping[str, Any], actor: Actor) -> Sector:
        sector = Sector(**values, created_by=actor.id)
        db.add(sector)
        await db.flush()

        await audit_service.record_change(
            db,
            sector_id=sector.id,
            user_id=actor.id,
            action="INSERT",
            field_name="all",
            new_value=SECTOR_CREATED,
        )
        return sector

    @staticmethod
    async def apply_update(
        db: AsyncSession, sector: Sector, proposed: Mapping[str, Any], actor: Actor
    ) -> SectorDiff:
        """Assign the changed columns and audit each one. Empty diffs touch nothing."""
        diff = compute_diff(sector_state(sector), proposed)
        if diff.is_empty:
            return diff

        for column, value in diff.assignments.items():
            setattr(sector, column, value)
        sector.updated_by = actor.id

        for change in diff.changes:
            await audit_service.record_change(
                db,
                sector_id=sector.id,
                user_id=actor.id,
                action="UPDATE",
                field_name=change.field,
                old_value=change.old_value,
                new_value=change.new_value,
            )
        return diff

    # -------------------------------------------------------------
    # MUTATIONS
    # -------------------------------------------------------------
    @staticmethod
    async def create_sector(db: AsyncSession, payload: Mapping[str, Any], actor: Actor) -> int:
        values = prepare_create(payload)

        async with atomic(db, "creating sector"):
            sector = await SectorService.insert_sector(db, values, actor)
            sector_id = sector.id

        logger.info("Sector %s created by user %s", sector_id, actor.id)
        return sector_id

    @staticmethod
    async def update_sector(
        db: AsyncSession, sector_id: int, fields: Mapping[str, Any], actor: Actor
    ) -> int:
        """Apply a partial update; returns the number of audit entries written."""
        proposed = prepare_update(fields)

        async with atomic(db, "updating sector"):
            sector = await SectorService.load_for_update(db, sector_id)
            if sector is None:
                raise NotFound("Sector not found")

            diff = await SectorService.apply_update(db, sector, proposed, actor)
            if diff.is_empty:
                raise ValidationError("No updates provided")

        logger.info(
            "Sector %s updated by user %s (%d changes)", sector_id, actor.id, len(diff.changes)
        )
        return len(diff.changes)

    @staticmethod
    async def delete_sector(db: AsyncSession, sector_id: int, actor: Actor) -> None:
        async with atomic(db, "deleting sector"):
            exists = (
                await db.execute(select(Sector.id).where(Sector.id == sector_id).with_for_update())
            ).scalar_one_or_none()
            if exists is None:
                raise NotFound("Sector not found")

            # the entry must reference a live row; the cascade below removes it
            await audit_service.record_change(
                db,
                sector_id=sector_id,
                user_id=actor.id,
                action="DELETE",
                field_name="all",
                old_value=SECTOR_DELETED,
            )
            await db.execute(delete(Sector).where(Sector.id == sector_id))

        logger.info("Sector %s deleted by user %s", sector_id, actor.id)

    @staticmethod
    async def batch_update(
        db: AsyncSession, items: Sequence[Mapping[str, Any]], actor: Actor
    ) -> int:
        """
        Update many sectors in one transaction; returns how many changed.

        Missing ids and no-op items are skipped. Any store failure rolls
        back every item, including those already applied.
        """
        if not isinstance(items, (list, tuple)) or not items:
            raise ValidationError("Invalid updates array")

        # validate every item before the transaction starts
        prepared = []
        for item in items:
            if not isinstance(item, Mapping):
                raise ValidationError("Invalid updates array")
            try:
                sector_id = int(item.get("id"))
            except (TypeError, ValueError):
                raise ValidationError("Each update needs a numeric id")
            prepared.append((sector_id, prepare_update(item.get("fields") or {})))

        updated_count = 0
        async with atomic(db, "performing batch update"):
            for sector_id, proposed in prepared:
                sector = await SectorService.load_for_update(db, sector_id)
                if sector is None:
                    continue

                diff = await SectorService.apply_update(db, sector, proposed, actor)
                if not diff.is_empty:
                    updated_count += 1

        logger.info("Batch update by user %s changed %d sectors", actor.id, updated_count)
        return updated_count
