import pytest
from sqlalchemy import func
from sqlalchemy.future import select

from sector_registry.core.actor import Actor
from sector_registry.core.db import Database
from sector_registry.models.change_history import ChangeHistoryEntry
from sector_registry.models.user import User
from sector_registry.services.sector_service import SectorService


def square(lon=33.0, lat=14.0, size=0.01):
    ring = [[lon, lat], [lon + size, lat], [lon + size, lat + size], [lon, lat + size], [lon, lat]]
    return {"type": "Polygon", "coordinates": [ring]}


def sector_feature(division="East", geometry=None, **properties):
    return {
        "type": "Feature",
        "geometry": geometry or square(),
        "properties": {"Division": division, **properties},
    }


async def history_rows(database, sector_id):
    async with database.session() as check:
        q = (
            select(ChangeHistoryEntry)
            .where(ChangeHistoryEntry.sector_id == sector_id)
            .order_by(ChangeHistoryEntry.id)
        )
        return list((await check.execute(q)).scalars().all())


async def history_count(database):
    async with database.session() as check:
        return (await check.execute(select(func.count(ChangeHistoryEntry.id)))).scalar_one()


@pytest.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'sectors.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
async def users(database):
    async with database.session() as s:
        s.add_all(
            [
                User(id=1, username="admin", email="admin@example.org",
                     full_name="System Administrator", role="admin"),
                User(id=2, username="editor", email="editor@example.org",
                     full_name="Data Editor", role="editor"),
                User(id=3, username="viewer", email="viewer@example.org",
                     full_name="Data Viewer", role="viewer"),
            ]
        )
        await s.commit()


@pytest.fixture
def admin(users):
    return Actor(id=1, role="admin")


@pytest.fixture
def editor(users):
    return Actor(id=2, role="editor")


@pytest.fixture
async def session(database):
    async with database.session() as s:
        yield s


@pytest.fixture
def make_sector(session, editor):
    async def _make(division="East", geometry=None, **properties):
        payload = sector_feature(division, geometry, **properties)
        return await SectorService.create_sector(session, payload, editor)

    return _make
