import pytest
from sqlalchemy.exc import OperationalError

from helpers import FakeLoader, seed_page, solid_image
from impress.domain.authoring import AuthoringSession, Mode
from impress.domain.rendering import DrawingSurface
from impress.domain.zone_store import ZoneStore
from impress.domain.zones import Rect

# 600x800pt page shown on a 300x400 canvas: one canvas pixel is two points.
CANVAS = (300, 400)


async def _open(session, store_cls=ZoneStore, **kwargs):
    store = store_cls(session)
    _, page = await seed_page(store, width=600, height=800)
    notices = []
    authoring = await AuthoringSession.open(
        store, page.id, *CANVAS, notify=lambda level, msg: notices.append((level, msg)), **kwargs
    )
    return store, page, authoring, notices


async def _draw(authoring, start, end):
    authoring.pointer_down(*start)
    return await authoring.pointer_up(*end)


def test_small_rectangles_are_discarded(db_run):
    async def scenario(session):
        store, page, authoring, _ = await _open(session)
        result = await _draw(authoring, (40, 40), (35, 36))
        return result, authoring, await store.list_zones(page.template_id)

    result, authoring, zones = db_run(scenario)
    assert result is None
    assert zones == []
    assert authoring.mode is Mode.IDLE


def test_drawn_zone_is_stored_in_page_units(db_run):
    async def scenario(session):
        store, page, authoring, notices = await _open(session)
        result = await _draw(authoring, (40, 40), (140, 90))
        stored = await store.list_assignments_for_page(page.id)
        return result, authoring, stored, notices

    result, authoring, stored, notices = db_run(scenario)
    assert result.ok
    assert len(stored) == 1
    a = stored[0]
    assert (a.x, a.y, a.width, a.height) == (80, 80, 200, 100)
    assert authoring.canvas_rect(a) == Rect(x=40, y=40, width=100, height=50)
    assert authoring.zones[a.zone_id].name == "Zone 1"
    assert authoring.selected_zone_id == a.zone_id
    assert notices == [("info", 'Zone "Zone 1" saved')]


def test_drawing_past_the_edge_is_clamped_to_the_canvas(db_run):
    async def scenario(session):
        store, page, authoring, _ = await _open(session)
        authoring.pointer_down(250, 350)
        authoring.pointer_move(900, 900)
        assert authoring.drawing_rect() == Rect(x=250, y=350, width=50, height=50)
        result = await authoring.pointer_up(-20, 1200)
        return result, authoring

    result, authoring = db_run(scenario)
    rect = authoring.canvas_rect(result.value)
    assert rect.x >= 0 and rect.y >= 0
    assert rect.right <= CANVAS[0] and rect.bottom <= CANVAS[1]
    assert rect == Rect(x=0, y=350, width=250, height=50)


def test_topmost_zone_wins_the_hit_test(db_run):
    async def scenario(session):
        store, page, authoring, _ = await _open(session)
        low = await _draw(authoring, (10, 10), (110, 110))
        high = await _draw(authoring, (160, 160), (60, 60))
        hit = authoring.hit_test(80, 80)
        only_low = authoring.hit_test(20, 20)
        miss = authoring.hit_test(250, 300)
        return low.value, high.value, hit, only_low, miss

    low, high, hit, only_low, miss = db_run(scenario)
    assert hit.zone_id == high.zone_id
    assert only_low.zone_id == low.zone_id
    assert miss is None


def test_pointer_down_inside_a_zone_starts_a_drag(db_run):
    async def scenario(session):
        store, page, authoring, _ = await _open(session)
        created = (await _draw(authoring, (40, 40), (140, 90))).value
        authoring.select(None)
        mode = authoring.pointer_down(50, 50)
        result = await authoring.pointer_up(1000, 1000)
        return mode, result, await store.get_assignment(created.id)

    mode, result, stored = db_run(scenario)
    assert mode is Mode.DRAGGING
    assert result.ok
    # dragged to the bottom-right corner, size kept
    assert (stored.x, stored.y, stored.width, stored.height) == (400, 700, 200, 100)


def test_click_without_movement_does_not_write(db_run):
    async def scenario(session):
        store, page, authoring, _ = await _open(session)
        await _draw(authoring, (40, 40), (140, 90))
        authoring.pointer_down(50, 50)
        return await authoring.pointer_up(50, 50)

    assert db_run(scenario) is None


def test_properties_panel_converts_display_units(db_run):
    async def scenario(session):
        store, page, authoring, _ = await _open(session)
        created = (await _draw(authoring, (40, 40), (140, 90))).value
        updated = await authoring.update_properties(created.zone_id, "mm", name="Photo", width=50)
        outside = await authoring.update_properties(created.zone_id, "mm", x=300)
        return created, updated, outside, authoring.properties(created.zone_id, "mm"), \
            await store.get_assignment(created.id)

    created, updated, outside, props, stored = db_run(scenario)
    assert updated.ok
    assert stored.width == pytest.approx(50 * 2.834645669)
    assert not outside.ok
    assert props["name"] == "Photo"
    assert props["width"] == 50.0
    assert props["x"] == pytest.approx(28.22, abs=0.01)
    assert props["warnings"] == []


def test_store_rejections_are_reported_not_raised(db_run):
    async def scenario(session):
        store, page, authoring, notices = await _open(session)
        result = await authoring.set_z_index("missing-zone", 3)
        return result, notices

    result, notices = db_run(scenario)
    assert not result.ok
    assert notices[0][0] == "warning"


def test_unknown_zone_type_is_reported_not_raised(db_run):
    async def scenario(session):
        store, page, authoring, notices = await _open(session)
        created = (await _draw(authoring, (40, 40), (140, 90))).value
        changed = await authoring.update_properties(created.zone_id, "mm", type="video")
        authoring.new_zone_type = "video"
        drawn = await _draw(authoring, (160, 160), (260, 260))
        return changed, drawn, notices, await store.list_zones(page.template_id)

    changed, drawn, notices, zones = db_run(scenario)
    assert not changed.ok and "video" in changed.error
    assert not drawn.ok
    assert [level for level, _ in notices[1:]] == ["warning", "warning"]
    assert [z.type for z in zones] == ["image"]


def test_rejected_geometry_leaves_name_and_type_unchanged(db_run):
    async def scenario(session):
        store, page, authoring, _ = await _open(session)
        created = (await _draw(authoring, (40, 40), (140, 90))).value
        result = await authoring.update_properties(created.zone_id, "mm", name="Photo", type="text", x=300)
        return created, result, authoring.zones[created.zone_id], await store.get_zone(created.zone_id)

    created, result, in_memory, stored = db_run(scenario)
    assert not result.ok
    assert (stored.name, stored.type) == ("Zone 1", "image")
    assert in_memory == stored


class BrokenStore(ZoneStore):
    async def create_zone(self, template_id, type, name):
        raise OperationalError("INSERT INTO customization_zones", {}, Exception("database is locked"))


def test_persistence_failure_marks_session_stale(db_run):
    async def scenario(session):
        store, page, authoring, notices = await _open(session, store_cls=BrokenStore)
        result = await _draw(authoring, (40, 40), (140, 90))
        return result, authoring, notices

    result, authoring, notices = db_run(scenario)
    assert not result.ok
    assert authoring.stale
    assert authoring.zones == {} and authoring.assignments == []
    assert notices[-1][0] == "error"


def test_bring_to_front_and_delete(db_run):
    async def scenario(session):
        store, page, authoring, _ = await _open(session)
        first = (await _draw(authoring, (10, 10), (110, 110))).value
        await _draw(authoring, (160, 160), (60, 60))
        await authoring.bring_to_front(first.zone_id)
        top = authoring.hit_test(80, 80)
        authoring.select(first.zone_id)
        deleted = await authoring.delete_selected()
        return first, top, deleted, authoring, await store.list_zones(page.template_id)

    first, top, deleted, authoring, zones = db_run(scenario)
    assert top.zone_id == first.zone_id
    assert deleted.ok
    assert authoring.selected_zone_id is None
    assert first.zone_id not in {z.id for z in zones}
    assert len(zones) == 1


def test_render_draws_outlines_and_guides(db_run):
    async def scenario(session):
        store, page, authoring, _ = await _open(session)
        await _draw(authoring, (40, 40), (140, 90))
        surface = DrawingSurface(*CANVAS)
        assert authoring.render(surface)
        return surface, page

    surface, page = db_run(scenario)
    assert surface.page_id == page.id
    assert surface.redraws == 1
    # inside the image zone the blue fill tints the white page
    r, g, b, _ = surface.frame.getpixel((120, 80))
    assert b > r


def test_late_preview_for_another_page_is_dropped(db_run):
    async def scenario(session):
        store, page, authoring, _ = await _open(session)
        await store.set_preview_url(page.id, "https://cdn.example/p1.png")
        authoring.page = await store.get_page(page.id)
        surface = DrawingSurface(*CANVAS, page_id=page.id)
        loader = FakeLoader(
            {"https://cdn.example/p1.png": solid_image()},
            before_return=lambda: surface.show_page("another-page"),
        )
        applied = await authoring.load_preview(loader, surface)
        return applied, surface, authoring

    applied, surface, authoring = db_run(scenario)
    assert not applied
    assert surface.redraws == 0
    assert authoring.background is None
