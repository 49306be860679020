from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.future import select

from conftest import history_count, history_rows, sector_feature, square
from sector_registry.core.actor import Actor
from sector_registry.core.exceptions import NotFound, TransactionFailure, ValidationError
from sector_registry.models.sector import Sector
from sector_registry.services import audit_service
from sector_registry.services.sector_service import SectorService


async def load(database, sector_id):
    async with database.session() as check:
        return (await check.execute(select(Sector).where(Sector.id == sector_id))).scalars().first()


async def sector_count(database):
    async with database.session() as check:
        return (await check.execute(select(func.count(Sector.id)))).scalar_one()


# ----------------------------------------------------
# Create
# ----------------------------------------------------
async def test_create_inserts_sector_and_one_audit_entry(database, make_sector):
    sector_id = await make_sector(Canal_Name="Canal 7", Office="Medani")

    sector = await load(database, sector_id)
    assert sector.division == "East"
    assert sector.created_by == 2
    assert sector.geometry["type"] == "MultiPolygon"

    entries = await history_rows(database, sector_id)
    assert [(e.action, e.field_name, e.new_value, e.user_id) for e in entries] == [
        ("INSERT", "all", "New sector created", 2)
    ]


async def test_create_without_geometry_writes_nothing(database, session, editor):
    payload = sector_feature()
    del payload["geometry"]

    with pytest.raises(ValidationError):
        await SectorService.create_sector(session, payload, editor)

    assert await sector_count(database) == 0
    assert await history_count(database) == 0


async def test_create_with_invalid_geometry_writes_nothing(database, session, editor):
    payload = sector_feature(geometry={"type": "Polygon", "coordinates": [[[33, 14], [34, 14]]]})

    with pytest.raises(ValidationError):
        await SectorService.create_sector(session, payload, editor)

    assert await sector_count(database) == 0


async def test_failed_audit_insert_rolls_back_create(database, session, users):
    ghost = Actor(id=999, role="editor")

    with pytest.raises(TransactionFailure):
        await SectorService.create_sector(session, sector_feature(), ghost)

    assert await sector_count(database) == 0
    assert await history_count(database) == 0


# ----------------------------------------------------
# Update
# ----------------------------------------------------
async def test_redundant_update_is_rejected_without_audit(database, session, editor, make_sector):
    sector_id = await make_sector(Office="Medani", Design_A_F="12.5")

    with pytest.raises(ValidationError, match="No updates provided"):
        await SectorService.update_sector(
            session, sector_id, {"Office": "Medani", "design_a_f": "12.50"}, editor
        )

    assert len(await history_rows(database, sector_id)) == 1


async def test_empty_update_is_rejected(session, editor, make_sector):
    sector_id = await make_sector()

    with pytest.raises(ValidationError, match="No updates provided"):
        await SectorService.update_sector(session, sector_id, {}, editor)


async def test_update_naming_a_column_twice_changes_nothing(database, session, editor, make_sector):
    sector_id = await make_sector(Office="Old")

    with pytest.raises(ValidationError):
        await SectorService.update_sector(session, sector_id, {"Office": "A", "office": "B"}, editor)

    assert (await load(database, sector_id)).office == "Old"
    assert len(await history_rows(database, sector_id)) == 1


async def test_update_writes_one_entry_per_changed_field(database, session, admin, make_sector):
    sector_id = await make_sector(Office="Medani", Canal_Name="Canal 7", Design_A_F="12.5")

    changes = await SectorService.update_sector(
        session,
        sector_id,
        {"Office": "Hasaheisa", "canal_name": "Canal 7", "Design_A_F": 20, "geometry": square(33.5)},
        admin,
    )
    assert changes == 3

    sector = await load(database, sector_id)
    assert sector.office == "Hasaheisa"
    assert sector.design_a_f == Decimal("20.00")
    assert sector.updated_by == 1
    assert sector.geometry["coordinates"][0][0][0] == [33.5, 14.0]

    updates = [
        (e.field_name, e.old_value, e.new_value)
        for e in await history_rows(database, sector_id)
        if e.action == "UPDATE"
    ]
    assert updates == [
        ("office", "Medani", "Hasaheisa"),
        ("design_a_f", "12.50", "20.00"),
        ("geometry", None, "Geometry updated"),
    ]


async def test_update_missing_sector_raises_not_found(session, editor):
    with pytest.raises(NotFound):
        await SectorService.update_sector(session, 4242, {"Office": "x"}, editor)


async def test_update_rejects_division_change(database, session, editor, make_sector):
    sector_id = await make_sector()

    with pytest.raises(ValidationError):
        await SectorService.update_sector(session, sector_id, {"Division": "West"}, editor)

    assert (await load(database, sector_id)).division == "East"


async def test_failed_audit_insert_leaves_record_untouched(database, session, make_sector):
    sector_id = await make_sector(Office="Medani")
    ghost = Actor(id=999, role="admin")

    with pytest.raises(TransactionFailure):
        await SectorService.update_sector(session, sector_id, {"Office": "Hasaheisa"}, ghost)

    assert (await load(database, sector_id)).office == "Medani"
    assert len(await history_rows(database, sector_id)) == 1

    # the session is usable again after the rollback
    feature = await SectorService.get_sector(session, sector_id)
    assert feature["properties"]["Office"] == "Medani"


# ----------------------------------------------------
# Delete
# ----------------------------------------------------
async def test_delete_removes_sector_and_history(database, session, editor, admin, make_sector):
    sector_id = await make_sector(Office="Medani")
    await SectorService.update_sector(session, sector_id, {"Office": "Hasaheisa"}, editor)
    assert len(await history_rows(database, sector_id)) == 2

    await SectorService.delete_sector(session, sector_id, admin)

    assert await load(database, sector_id) is None
    assert await history_rows(database, sector_id) == []
    with pytest.raises(NotFound):
        await SectorService.get_sector(session, sector_id)


async def test_delete_records_audit_entry_before_removing_row(session, admin, make_sector):
    sector_id = await make_sector()
    calls = []
    original = audit_service.record_change

    async def spy(db, **kwargs):
        remaining = (
            await db.execute(select(func.count(Sector.id)).where(Sector.id == kwargs["sector_id"]))
        ).scalar_one()
        calls.append((kwargs["action"], remaining))
        return await original(db, **kwargs)

    with patch.object(audit_service, "record_change", new=spy):
        await SectorService.delete_sector(session, sector_id, admin)

    assert calls == [("DELETE", 1)]


async def test_delete_missing_sector_raises_not_found(database, session, admin):
    with pytest.raises(NotFound):
        await SectorService.delete_sector(session, 4242, admin)

    assert await history_count(database) == 0


# ----------------------------------------------------
# Batch update
# ----------------------------------------------------
async def test_batch_skips_missing_ids(database, session, editor, make_sector):
    x = await make_sector(Office="Old X")
    y = await make_sector(Office="Old Y")

    updated = await SectorService.batch_update(
        session,
        [
            {"id": x, "fields": {"office": "A"}},
            {"id": 4242, "fields": {"office": "B"}},
            {"id": y, "fields": {"office": "C"}},
        ],
        editor,
    )

    assert updated == 2
    assert (await load(database, x)).office == "A"
    assert (await load(database, y)).office == "C"
    assert await history_rows(database, 4242) == []
    assert await history_count(database) == 4


async def test_batch_does_not_count_no_op_items(database, session, editor, make_sector):
    x = await make_sector(Office="Same")
    y = await make_sector(Office="Old")

    updated = await SectorService.batch_update(
        session,
        [
            {"id": x, "fields": {"office": "Same"}},
            {"id": y, "fields": {"Office": "New", "Design_A_F": "not a number"}},
        ],
        editor,
    )

    assert updated == 1
    assert len(await history_rows(database, x)) == 1


async def test_batch_failure_rolls_back_every_item(database, session, editor, make_sector):
    x = await make_sector(Office="Old X")
    y = await make_sector(Office="Old Y")
    original = audit_service.record_change

    async def failing(db, **kwargs):
        if kwargs["sector_id"] == y:
            raise IntegrityError("INSERT INTO change_history", {}, Exception("constraint failed"))
        return await original(db, **kwargs)

    with patch.object(audit_service, "record_change", new=failing):
        with pytest.raises(TransactionFailure):
            await SectorService.batch_update(
                session,
                [
                    {"id": x, "fields": {"office": "A"}},
                    {"id": 4242, "fields": {"office": "B"}},
                    {"id": y, "fields": {"office": "C"}},
                ],
                editor,
            )

    assert (await load(database, x)).office == "Old X"
    assert (await load(database, y)).office == "Old Y"
    assert await history_count(database) == 2


async def test_batch_rejects_fields_outside_allow_list(database, session, editor, make_sector):
    x = await make_sector(Office="Old X")

    with pytest.raises(ValidationError):
        await SectorService.batch_update(
            session,
            [
                {"id": x, "fields": {"office": "A"}},
                {"id": x, "fields": {"created_by": 1}},
            ],
            editor,
        )

    assert (await load(database, x)).office == "Old X"


@pytest.mark.parametrize("items", [[], None, [{"fields": {"office": "A"}}]])
async def test_batch_rejects_malformed_requests(session, editor, items):
    with pytest.raises(ValidationError):
        await SectorService.batch_update(session, items, editor)


# ----------------------------------------------------
# Stats
# ----------------------------------------------------
async def test_division_stats(session, make_sector):
    await make_sector("East", Design_A_F=100)
    await make_sector("East", Design_A_F=200)
    await make_sector("West", Design_A_F=50)
    await make_sector("West")

    stats = await SectorService.division_stats(session)

    assert stats == [
        {"division": "East", "count": 2, "min_area": Decimal("100.00"),
         "max_area": Decimal("200.00"), "avg_area": Decimal("150.00")},
        {"division": "West", "count": 1, "min_area": Decimal("50.00"),
         "max_area": Decimal("50.00"), "avg_area": Decimal("50.00")},
    ]
