import asyncio

from sector_registry.core.db import Base, Database


async def create():
    database = Database.from_settings()
    try:
        await database.create_all()
        print("Loaded tables:", list(Base.metadata.tables.keys()))
        print("Tables created successfully!")
    finally:
        await database.dispose()


asyncio.run(create())
