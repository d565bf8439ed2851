# impress/infrastructure/ingestion.py
"""Client and orchestration for the external PDF splitting service."""
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import aiohttp
from sqlalchemy.exc import SQLAlchemyError

from impress.domain.coordinates import check_page_dimensions
from impress.domain.units import Unit, parse_unit
from impress.domain.zone_store import ZoneStore

logger = logging.getLogger(__name__)


class IngestionError(Exception):
    pass


@dataclass
class IngestedPage:
    page_number: int
    physical_width: float
    physical_height: float
    physical_unit: Unit = Unit.POINT
    preview_image_url: Optional[str] = None


@dataclass
class SplitResult:
    pages: List[IngestedPage]
    pdf_url: Optional[str]
    metadata: Dict


@dataclass
class IngestionReport:
    success: bool
    pages_created: int = 0
    pages_failed: int = 0
    pdf_url: Optional[str] = None
    metadata: Dict = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None


def parse_split_response(data: Dict) -> SplitResult:
    pages = []
    for p in data.get("pages", []):
        pages.append(IngestedPage(
            page_number=int(p["pageNumber"]),
            physical_width=float(p["physicalWidth"]),
            physical_height=float(p["physicalHeight"]),
            physical_unit=parse_unit(p.get("unit", "point")),
            preview_image_url=p.get("previewImageUrl"),
        ))
    pages.sort(key=lambda p: p.page_number)
    return SplitResult(pages=pages, pdf_url=data.get("pdfUrl"), metadata=data.get("metadata") or {})


class PdfIngestionClient:
    """Sends a PDF to the splitting service and parses its page list."""

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 30):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    async def split(self, template_id: str, pdf_bytes: bytes, file_name: str) -> SplitResult:
        form = aiohttp.FormData()
        form.add_field("templateId", template_id)
        form.add_field("file", pdf_bytes, filename=file_name, content_type="application/pdf")
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(f"{self.base_url}/split-pdf", data=form, headers=headers) as response:
                    response.raise_for_status()
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise IngestionError(f"PDF splitting service failed: {type(e).__name__}: {e}") from e
        return parse_split_response(data)


async def ingest_template_pdf(store: ZoneStore, client: PdfIngestionClient, template_id: str,
                              pdf_bytes: bytes, file_name: str, tolerance_pct: float = 0.1) -> IngestionReport:
    """Replace a template's pages with those of a newly uploaded PDF.

    Pages are deleted and re-inserted one by one without a transaction: a
    failed insert is counted, not rolled back. Size mismatches against the
    template's declared print size come back as warnings.
    """
    start_time = time.perf_counter()
    target = await store.template_print_size(template_id)
    try:
        split = await client.split(template_id, pdf_bytes, file_name)
    except IngestionError as e:
        logger.error(f"Ingestion of '{file_name}' for template {template_id} failed: {e}")
        return IngestionReport(False, error=str(e))

    await store.delete_pages(template_id)
    report = IngestionReport(True, pdf_url=split.pdf_url)
    for p in split.pages:
        try:
            page = await store.add_page(template_id, p.page_number, p.physical_width, p.physical_height,
                                        p.physical_unit, p.preview_image_url)
        except SQLAlchemyError as e:
            logger.error(f"Error creating page {p.page_number}: {e}")
            report.pages_failed += 1
            continue
        report.pages_created += 1
        check = check_page_dimensions(page, target, tolerance_pct)
        if not check.matches:
            report.warnings.append(check.warning)

    report.metadata = {
        "pageCount": len(split.pages),
        "fileSize": len(pdf_bytes),
        "originalFileName": file_name,
        **split.metadata,
    }
    await store.record_ingestion(template_id, split.pdf_url, report.metadata)
    logger.info(
        f"Template {template_id}: {report.pages_created} pages created, {report.pages_failed} failed "
        f"in {time.perf_counter() - start_time:.2f}s."
    )
    return report
