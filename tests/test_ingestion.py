from helpers import seed_page
from impress.domain.zone_store import ZoneStore
from impress.domain.zones import Rect
from impress.infrastructure.ingestion import (
    IngestedPage, IngestionError, SplitResult, ingest_template_pdf, parse_split_response,
)


class FakeSplitter:
    def __init__(self, pages=None, error=None):
        self.pages = pages or []
        self.error = error
        self.calls = []

    async def split(self, template_id, pdf_bytes, file_name):
        self.calls.append((template_id, file_name))
        if self.error:
            raise IngestionError(self.error)
        return SplitResult(pages=self.pages, pdf_url="https://cdn.example/a4.pdf", metadata={"producer": "test"})


A4_PAGES = [
    IngestedPage(1, 595.28, 841.89, preview_image_url="https://cdn.example/p1.png"),
    IngestedPage(2, 600, 850),
]


def test_parse_split_response():
    split = parse_split_response({
        "pdfUrl": "https://cdn.example/x.pdf",
        "pages": [
            {"pageNumber": 2, "physicalWidth": "600", "physicalHeight": 850},
            {"pageNumber": 1, "physicalWidth": 210, "physicalHeight": 297, "unit": "mm", "previewImageUrl": "p1"},
        ],
    })
    assert [p.page_number for p in split.pages] == [1, 2]
    assert split.pages[0].physical_unit.value == "millimeter"
    assert split.pages[1].physical_width == 600.0
    assert split.metadata == {}


def test_mismatched_page_warns_but_upload_succeeds(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, _ = await seed_page(store)
        report = await ingest_template_pdf(store, FakeSplitter(A4_PAGES), template.id, b"%PDF", "a4.pdf", 0.1)
        return report, await store.list_pages(template.id), await store.get_template(template.id)

    report, pages, template = db_run(scenario)
    assert report.success
    assert (report.pages_created, report.pages_failed) == (2, 0)
    assert len(report.warnings) == 1 and "Page 2" in report.warnings[0]
    assert [p.page_number for p in pages] == [1, 2]
    assert pages[0].preview_image_url == "https://cdn.example/p1.png"
    assert template.original_pdf_url == "https://cdn.example/a4.pdf"
    assert template.pdf_metadata == {
        "pageCount": 2, "fileSize": 4, "originalFileName": "a4.pdf", "producer": "test",
    }


def test_reupload_replaces_pages_and_their_placements(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, old_page = await seed_page(store)
        zone = await store.create_zone(template.id, "image", "Photo")
        await store.assign_zone_to_page(zone.id, old_page.id, Rect(x=0, y=0, width=50, height=50))
        await ingest_template_pdf(store, FakeSplitter(A4_PAGES[:1]), template.id, b"%PDF", "a4.pdf")
        return old_page, await store.list_pages(template.id), await store.list_assignments_for_page(old_page.id)

    old_page, pages, orphaned = db_run(scenario)
    assert len(pages) == 1 and pages[0].id != old_page.id
    assert orphaned == []


def test_splitter_failure_keeps_existing_pages(db_run):
    async def scenario(session):
        store = ZoneStore(session)
        template, page = await seed_page(store)
        report = await ingest_template_pdf(store, FakeSplitter(error="502 from splitter"), template.id, b"x", "x.pdf")
        return report, page, await store.list_pages(template.id)

    report, page, pages = db_run(scenario)
    assert not report.success
    assert "502" in report.error
    assert [p.id for p in pages] == [page.id]
