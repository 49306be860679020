import argparse
import asyncio

from sector_registry.core.actor import Actor
from sector_registry.core.config import settings
from sector_registry.core.db import Database
from sector_registry.ingestion.geojson_importer import GeoJSONImporter
from sector_registry.main import configure_logging


async def main(user_id: int, data_dir: str):
    configure_logging()
    database = Database.from_settings()
    try:
        await database.create_all()
        importer = GeoJSONImporter(data_dir)
        async with database.session() as db:
            reports = await importer.import_all(db, Actor(id=user_id, role="admin"))
    finally:
        await database.dispose()

    for r in reports:
        print(f"{r.division:<6} new={r.created} updated={r.updated} unchanged={r.unchanged} skipped={r.skipped}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Import <Division>.geojson files into the sectors table.")
    parser.add_argument("--user-id", type=int, required=True, help="id of the admin user recorded in the audit trail")
    parser.add_argument("--data-dir", default=settings.SEED_DATA_DIR)
    args = parser.parse_args()
    asyncio.run(main(args.user_id, args.data_dir))
