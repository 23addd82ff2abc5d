"""High-level orchestration: fetch a project page, extract it and localize its images."""

from __future__ import annotations

import enum
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import httpx

from .config import IngestConfig
from .content import PageExtraction, extract_content
from .errors import ExtractionError, FetchError, InvalidRequestError
from .images import check_image_urls, download_all, download_candidates
from .models import GALLERY_CATEGORIES, ExtractedDocument, ExtractionRequest

logger = logging.getLogger("listing_ingest")

EXTRACTION_FAILED_MESSAGE = "Failed to extract content from website"
PREVIEW_FAILED_MESSAGE = "Extraction failed"


class ExtractionPhase(str, enum.Enum):
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    DOWNLOADING = "downloading"
    ASSEMBLING = "assembling"
    DONE = "done"
    FAILED = "failed"


def _enter_phase(project_id: str, phase: ExtractionPhase) -> ExtractionPhase:
    logger.info("[Extract] %s: %s", project_id, phase.value)
    return phase


def build_client(config: IngestConfig) -> httpx.AsyncClient:
    """HTTP client shared by every request of one extraction run."""
    return httpx.AsyncClient(
        headers={"User-Agent": config.user_agent},
        verify=config.verify_tls,
        follow_redirects=True,
    )


@asynccontextmanager
async def _client_scope(
    client: Optional[httpx.AsyncClient], config: IngestConfig
) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    async with build_client(config) as owned:
        yield owned


async def fetch_page(
    client: httpx.AsyncClient,
    url: str,
    config: IngestConfig,
) -> Tuple[str, str]:
    """Fetch a page and return its HTML together with the final URL."""
    logger.info("Loading %s", url)
    try:
        resp = await client.get(url, timeout=config.page_timeout)
        resp.raise_for_status()
    except httpx.TimeoutException as exc:
        raise FetchError(
            f"Timeout while loading {url}",
            details=f"Timed out after {config.page_timeout:.0f}s ({exc.__class__.__name__})",
        ) from exc
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
        raise FetchError(
            f"Failed to load {url}", details=str(exc) or exc.__class__.__name__
        ) from exc
    return resp.text, str(resp.url)


async def localize_assets(
    client: httpx.AsyncClient,
    extraction: PageExtraction,
    project_id: str,
    config: IngestConfig,
) -> ExtractedDocument:
    """Download every image collection and splice local paths into the document.

    Collections are processed one after another; within each collection the
    downloader keeps at most ``config.batch_size`` requests in flight. Assets
    that fail are simply absent from the rewritten collections.
    """
    document = extraction.document

    document.project_images = await download_all(
        client, extraction.project_image_urls, project_id, "project", config
    )

    results = await download_candidates(
        client, extraction.floor_plan_urls, project_id, "floorplan", config
    )
    local_paths = {r.candidate.remote_url: r.local_path for r in results if r.ok}
    floor_plans = []
    for plan in document.floor_plans:
        local_path = local_paths.get(plan.image_path)
        if local_path:
            plan.image_path = local_path
            floor_plans.append(plan)
    document.floor_plans = floor_plans

    for category in GALLERY_CATEGORIES:
        document.gallery[category] = await download_all(
            client, extraction.gallery_urls.get(category, []), project_id, category, config
        )

    for index, update in enumerate(document.construction_updates):
        update.images = await download_all(
            client, list(update.images), project_id, f"update{index}", config
        )
    return document


def _log_summary(document: ExtractedDocument) -> None:
    logger.info(
        "[Extract] Found: overview=%s amenities=%d floorPlans=%d galleryImages=%d "
        "projectImages=%d documents=%d constructionUpdates=%d",
        bool(document.overview),
        len(document.amenities),
        len(document.floor_plans),
        sum(len(urls) for urls in document.gallery.values()),
        len(document.project_images),
        len(document.documents),
        len(document.construction_updates),
    )


async def extract_project(
    request: ExtractionRequest,
    config: IngestConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> ExtractedDocument:
    """Run the full pipeline for one project page.

    Raises ``ExtractionError`` when the page cannot be fetched or parsed.
    Once the page has been parsed the run always completes; files already
    written by a failed run are left in place.
    """
    request = request.validate()
    project_id = request.project_id
    logger.info("[Extract] Starting extraction for %s from %s", project_id, request.source_url)

    async with _client_scope(client, config) as http:
        phase = _enter_phase(project_id, ExtractionPhase.FETCHING)
        try:
            html, final_url = await fetch_page(http, request.source_url, config)
            phase = _enter_phase(project_id, ExtractionPhase.EXTRACTING)
            extraction = extract_content(html, final_url)
        except ExtractionError as exc:
            logger.error(
                "[Extract] %s failed while %s: %s", project_id, phase.value, exc.details
            )
            _enter_phase(project_id, ExtractionPhase.FAILED)
            raise

        _enter_phase(project_id, ExtractionPhase.DOWNLOADING)
        document = await localize_assets(http, extraction, project_id, config)

    _enter_phase(project_id, ExtractionPhase.ASSEMBLING)
    _log_summary(document)
    _enter_phase(project_id, ExtractionPhase.DONE)
    return document


def _failure(error: str, details: str) -> Dict[str, Any]:
    return {"success": False, "error": error, "details": details}


async def run_extraction(
    source_url: str,
    project_id: str,
    config: Optional[IngestConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """Extract a project and wrap the outcome in the client response envelope."""
    config = config or IngestConfig.from_env()
    try:
        document = await extract_project(
            ExtractionRequest(source_url=source_url, project_id=project_id), config, client
        )
    except InvalidRequestError as exc:
        return _failure(str(exc), exc.details)
    except ExtractionError as exc:
        return _failure(EXTRACTION_FAILED_MESSAGE, exc.details)
    return {"success": True, "data": document.to_dict()}


async def preview_project(
    source_url: str,
    config: Optional[IngestConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """Single-shot extraction that keeps remote image URLs and writes nothing to disk."""
    config = config or IngestConfig.from_env()
    parsed = urlparse(source_url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return _failure("Website URL is required", f"Invalid source URL: {source_url!r}")

    try:
        async with _client_scope(client, config) as http:
            html, final_url = await fetch_page(http, source_url, config)
        extraction = extract_content(html, final_url, preview=True)
    except ExtractionError as exc:
        logger.error("[Preview] Error: %s", exc.details)
        return _failure(PREVIEW_FAILED_MESSAGE, exc.details)

    _log_summary(extraction.document)
    return {"success": True, "data": extraction.document.to_dict()}


async def check_images(
    urls: Sequence[str],
    config: Optional[IngestConfig] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> List[Dict[str, object]]:
    """HEAD-probe image URLs and report which ones look reachable."""
    config = config or IngestConfig.from_env()
    async with _client_scope(client, config) as http:
        return await check_image_urls(http, list(urls), config)
