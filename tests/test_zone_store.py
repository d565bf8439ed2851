import pytest

from helpers import seed_page
from impress.domain.errors import DuplicateAssignment, GeometryError, InvalidZoneType, NotFound
from impress.domain.zone_store import ZoneStore
from impress.domain.zones import ImageZone, Rect, TextZone


def test_zones_get_increasing_z_index_and_type_variant(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, _ = await seed_page(store)
        first = await store.create_zone(template.id, "image", "Photo")
        second = await store.create_zone(template.id, "text", "Caption")
        return first, second, await store.list_zones(template.id)

    first, second, listed = db_run(scenario)
    assert isinstance(first, ImageZone) and isinstance(second, TextZone)
    assert (first.z_index, second.z_index) == (0, 1)
    assert [z.id for z in listed] == [first.id, second.id]


def test_unknown_zone_type_is_rejected(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, _ = await seed_page(store)
        with pytest.raises(InvalidZoneType):
            await store.create_zone(template.id, "video", "Clip")
        return await store.list_zones(template.id)

    assert db_run(scenario) == []


def test_assignments_listed_by_z_index(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, page = await seed_page(store)
        a = await store.create_zone(template.id, "image", "A")
        b = await store.create_zone(template.id, "text", "B")
        await store.assign_zone_to_page(b.id, page.id, Rect(x=10, y=10, width=100, height=50))
        await store.assign_zone_to_page(a.id, page.id, Rect(x=20, y=20, width=100, height=50))
        before = [x.zone_id for x in await store.list_assignments_for_page(page.id)]
        await store.set_zone_z_index(a.id, 5)
        after = await store.list_assignments_for_page(page.id)
        return a, b, before, after

    a, b, before, after = db_run(scenario)
    assert before == [a.id, b.id]
    assert [x.zone_id for x in after] == [b.id, a.id]
    assert [x.z_index for x in after] == [1, 5]


def test_rectangles_must_lie_inside_the_page(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, page = await seed_page(store, width=600, height=800)
        zone = await store.create_zone(template.id, "image", "Photo")
        with pytest.raises(GeometryError):
            await store.assign_zone_to_page(zone.id, page.id, Rect(x=550, y=10, width=100, height=50))
        with pytest.raises(GeometryError):
            await store.assign_zone_to_page(zone.id, page.id, Rect(x=10, y=10, width=0, height=50))
        edge = await store.assign_zone_to_page(zone.id, page.id, Rect(x=500, y=750, width=100, height=50))
        with pytest.raises(GeometryError):
            await store.update_assignment(edge.id, x=510)
        return edge, await store.get_assignment(edge.id)

    edge, stored = db_run(scenario)
    assert stored == edge
    assert (stored.x, stored.y) == (500, 750)


def test_zone_placed_once_per_page(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, page = await seed_page(store)
        zone = await store.create_zone(template.id, "text", "Title")
        await store.assign_zone_to_page(zone.id, page.id, Rect(x=0, y=0, width=10, height=10))
        with pytest.raises(DuplicateAssignment):
            await store.assign_zone_to_page(zone.id, page.id, Rect(x=50, y=50, width=10, height=10))

    db_run(scenario)


def test_update_assignment_merges_partial_geometry(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, page = await seed_page(store)
        zone = await store.create_zone(template.id, "image", "Photo")
        a = await store.assign_zone_to_page(zone.id, page.id, Rect(x=10, y=20, width=100, height=50))
        moved = await store.update_assignment(a.id, x=40, is_repeating=True)
        with pytest.raises(TypeError):
            await store.update_assignment(a.id, rotation=90)
        return moved

    moved = db_run(scenario)
    assert (moved.x, moved.y, moved.width, moved.height) == (40, 20, 100, 50)
    assert moved.is_repeating


def test_deleting_a_zone_removes_its_assignments(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, page = await seed_page(store)
        second_page = await store.add_page(template.id, 2, 600, 800, "point")
        zone = await store.create_zone(template.id, "image", "Photo")
        keep = await store.create_zone(template.id, "text", "Caption")
        for p in (page, second_page):
            await store.assign_zone_to_page(zone.id, p.id, Rect(x=0, y=0, width=50, height=50))
        await store.assign_zone_to_page(keep.id, page.id, Rect(x=100, y=0, width=50, height=50))
        await store.delete_zone(zone.id)
        with pytest.raises(NotFound):
            await store.get_zone(zone.id)
        return (
            keep,
            await store.list_assignments_for_page(page.id),
            await store.list_assignments_for_page(second_page.id),
        )

    keep, first, second = db_run(scenario)
    assert [a.zone_id for a in first] == [keep.id]
    assert second == []


def test_replacing_pages_drops_their_assignments(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, page = await seed_page(store)
        zone = await store.create_zone(template.id, "image", "Photo")
        await store.assign_zone_to_page(zone.id, page.id, Rect(x=0, y=0, width=50, height=50))
        pages = await store.replace_pages(template.id, [
            {"page_number": 2, "physical_width": 300, "physical_height": 300},
            {"page_number": 1, "physical_width": 210, "physical_height": 297, "physical_unit": "mm"},
        ])
        return page, pages, await store.list_pages(template.id), await store.list_assignments_for_page(page.id)

    old, created, listed, orphaned = db_run(scenario)
    assert len(created) == 2
    assert [p.page_number for p in listed] == [1, 2]
    assert old.id not in {p.id for p in listed}
    assert listed[0].physical_unit.value == "millimeter"
    assert orphaned == []


def test_missing_records_raise_not_found(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        for call in (store.get_template("nope"), store.get_page("nope"), store.get_assignment("nope")):
            with pytest.raises(NotFound):
                await call

    db_run(scenario)


def test_template_print_size_and_preview_url(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, page = await seed_page(store)
        updated = await store.set_preview_url(page.id, "https://cdn.example/p1.png")
        return await store.template_print_size(template.id), updated

    size, page = db_run(scenario)
    assert (size.width, size.height, size.unit.value) == (210, 297, "millimeter")
    assert page.preview_image_url == "https://cdn.example/p1.png"


def test_zone_cannot_be_placed_on_another_templates_page(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, _ = await seed_page(store)
        _, foreign_page = await seed_page(store)
        zone = await store.create_zone(template.id, "image", "Photo")
        with pytest.raises(GeometryError, match="belongs to template"):
            await store.assign_zone_to_page(zone.id, foreign_page.id, Rect(x=0, y=0, width=50, height=50))
        return await store.list_assignments_for_page(foreign_page.id)

    assert db_run(scenario) == []


def test_recorded_ingestion_is_visible_in_the_same_session(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, _ = await seed_page(store)
        await store.get_template(template.id)
        await store.record_ingestion(template.id, "https://cdn.example/a4.pdf", {"pageCount": 1})
        return await store.get_template(template.id)

    template = db_run(scenario)
    assert template.original_pdf_url == "https://cdn.example/a4.pdf"
    assert template.pdf_metadata == {"pageCount": 1}
