import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from sector_registry.core.actor import Actor
from sector_registry.core.config import settings
from sector_registry.core.exceptions import ValidationError
from sector_registry.models.sector import DIVISIONS, Sector
from sector_registry.services.feature_mapper import normalize_division, prepare_create, same_geometry
from sector_registry.services.sector_service import SectorService, atomic

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    division: str
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0


class GeoJSONImporter:
    """
    Loads per-division FeatureCollections into the sectors table.

    Features are matched on (OBJECTID_1, division): new ones go through the
    audited create path, known ones through the audited diff/update path.
    """

    def __init__(self, data_dir: str = settings.SEED_DATA_DIR):
        self.data_dir = data_dir

    # ----------- FILE LOADING -------------
    def collection_path(self, division: str) -> str:
        return os.path.join(self.data_dir, f"{division}.geojson")

    def load_collection(self, division: str) -> Optional[Dict[str, Any]]:
        path = self.collection_path(division)
        if not os.path.exists(path):
            logger.warning("File not found: %s, skipping %s division", path, division)
            return None
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    # ----------- NORMALIZATION -------------
    @staticmethod
    def normalize_feature(feature: Mapping[str, Any], division: str) -> Dict[str, Any]:
        if not isinstance(feature, Mapping):
            raise ValidationError("Feature is not an object")
        properties = dict(feature.get("properties") or {})
        properties["Division"] = division
        return {
            "type": "Feature",
            "geometry": feature.get("geometry"),
            "properties": properties,
        }

    @staticmethod
    async def _find_existing(
        db: AsyncSession, objectid_1: Optional[int], division: str
    ) -> Optional[Sector]:
        if objectid_1 is None:
            return None
        q = (
            select(Sector)
            .where(Sector.objectid_1 == objectid_1, Sector.division == division)
            .order_by(Sector.id)
            .limit(1)
            .with_for_update()
        )
        return (await db.execute(q)).scalars().first()

    # ----------- IMPORT -------------
    async def import_collection(
        self,
        db: AsyncSession,
        collection: Mapping[str, Any],
        division: str,
        actor: Actor,
    ) -> ImportReport:
        division = normalize_division(division)
        if division is None:
            raise ValidationError("Division is required")
        if not isinstance(collection, Mapping) or not isinstance(collection.get("features"), list):
            raise ValidationError("Expected a GeoJSON FeatureCollection")

        report = ImportReport(division=division)
        features = collection["features"]
        logger.info("Importing %s division: %d features", division, len(features))

        async with atomic(db, f"importing {division} division"):
            for index, feature in enumerate(features):
                try:
                    values = prepare_create(self.normalize_feature(feature, division))
                except ValidationError as exc:
                    logger.warning("Skipping %s feature #%d: %s", division, index, exc.message)
                    report.skipped += 1
                    continue

                existing = await self._find_existing(db, values.get("objectid_1"), division)
                if existing is None:
                    await SectorService.insert_sector(db, values, actor)
                    report.created += 1
                    continue

                proposed = {k: v for k, v in values.items() if k != "division"}
                if same_geometry(proposed["geometry"], existing.geometry):
                    del proposed["geometry"]

                diff = await SectorService.apply_update(db, existing, proposed, actor)
                if diff.is_empty:
                    report.unchanged += 1
                else:
                    report.updated += 1

        logger.info(
            "%s: %d new, %d updated, %d unchanged, %d skipped",
            division, report.created, report.updated, report.unchanged, report.skipped,
        )
        return report

    async def import_all(self, db: AsyncSession, actor: Actor) -> List[ImportReport]:
        reports = []
        for division in DIVISIONS:
            collection = self.load_collection(division)
            if collection is None:
                continue
            reports.append(await self.import_collection(db, collection, division, actor))
        return reports
