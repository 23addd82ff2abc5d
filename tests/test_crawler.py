"""End-to-end runs of the orchestrator against a mocked website."""

import asyncio
import hashlib
import re

import httpx
import pytest

from listing_ingest.crawler import (
    build_client,
    check_images,
    extract_project,
    preview_project,
    run_extraction,
)
from listing_ingest.errors import FetchError, InvalidRequestError, ParseError
from listing_ingest.models import GALLERY_CATEGORIES, ExtractionRequest

PAGE_URL = "https://x.test/p"

GALLERY_PAGE = """
<html><body>
  <img class="gallery" alt="exterior view" src="/a.jpg" width="400" height="400">
  <a href="brochure.pdf">Download Brochure</a>
</body></html>
"""

FULL_PAGE = """
<html><body>
  <div class="project-overview">Skyline Towers is a landmark residential project with
    sweeping views, two clubhouses and thoughtfully planned homes.</div>
  <div class="amenities"><ul><li>Swimming Pool</li><li>24/7 CCTV Security</li></ul></div>
  <div class="floor-plans">
    <div><img src="/plans/2bhk.png" alt="2 BHK"><p>1100 sq ft</p></div>
    <div><img src="/plans/3bhk.png" alt="3 BHK"><p>1500 sq ft</p></div>
  </div>
  <div class="interior-gallery"><img src="/g/living.jpg"></div>
  <div class="construction-update">
    <h4>Tower B</h4><span class="date">May 2024</span><p>Facade work underway.</p>
    <img src="/c/b1.jpg">
  </div>
</body></html>
"""


def _hash8(url):
    return hashlib.md5(url.encode("utf-8")).hexdigest()[:8]


def _site(pages, images, broken=()):
    """Serve HTML ``pages`` and PNG ``images`` by path; ``broken`` paths time out."""

    def handler(request):
        path = request.url.path
        if path in broken:
            raise httpx.ReadTimeout("timed out", request=request)
        if path in pages:
            return httpx.Response(
                200, text=pages[path], headers={"Content-Type": "text/html; charset=utf-8"}
            )
        if path in images:
            return httpx.Response(200, content=images[path], headers={"Content-Type": "image/png"})
        return httpx.Response(404)

    return handler


def _files(root):
    return sorted(p for p in root.rglob("*") if p.is_file()) if root.exists() else []


# ----------------------------------------------------------------------
# End-to-end scenarios
# ----------------------------------------------------------------------
def test_gallery_image_is_stored_with_content_type_extension(config, run_with_client, png_bytes):
    handler = _site({"/p": GALLERY_PAGE}, {"/a.jpg": png_bytes})

    result = run_with_client(
        handler, lambda client: run_extraction(PAGE_URL, "p1", config, client)
    )

    assert result["success"] is True
    exterior = result["data"]["gallery"]["exterior"]
    assert len(exterior) == 1
    assert exterior[0] == f"/images/projects/p1/exterior/0_{_hash8('https://x.test/a.jpg')}.png"
    assert re.search(r"/exterior/0_[0-9a-f]{8}\.png$", exterior[0])
    assert (config.asset_root / "p1" / "exterior" / exterior[0].rsplit("/", 1)[1]).exists()
    assert set(result["data"]["gallery"]) == set(GALLERY_CATEGORIES)


def test_timed_out_image_is_dropped_but_extraction_succeeds(config, run_with_client, png_bytes):
    handler = _site({"/p": GALLERY_PAGE}, {"/a.jpg": png_bytes}, broken={"/a.jpg"})

    result = run_with_client(
        handler, lambda client: run_extraction(PAGE_URL, "p1", config, client)
    )

    assert result["success"] is True
    assert result["data"]["gallery"]["exterior"] == []
    assert result["data"]["projectImages"] == []


def test_page_server_error_fails_without_writing_files(config, run_with_client):
    def handler(request):
        return httpx.Response(500, text="boom")

    result = run_with_client(
        handler, lambda client: run_extraction(PAGE_URL, "p1", config, client)
    )

    assert result["success"] is False
    assert result["error"] == "Failed to extract content from website"
    assert "500" in result["details"]
    assert _files(config.asset_root) == []


def test_brochure_link_becomes_document(config, run_with_client, png_bytes):
    handler = _site({"/p": GALLERY_PAGE}, {"/a.jpg": png_bytes})

    result = run_with_client(
        handler, lambda client: run_extraction(PAGE_URL, "p1", config, client)
    )

    documents = result["data"]["documents"]
    assert len(documents) == 1
    assert documents[0]["type"] == "brochure"
    assert documents[0]["url"] == "https://x.test/brochure.pdf"
    assert documents[0]["title"] == "Download Brochure"


# ----------------------------------------------------------------------
# Document rewrite
# ----------------------------------------------------------------------
def test_all_image_collections_are_localized(config, run_with_client, png_bytes):
    images = {
        "/plans/2bhk.png": png_bytes,
        "/g/living.jpg": png_bytes,
        "/c/b1.jpg": png_bytes,
    }
    # 3bhk is missing (404), so its floor plan record is dropped.
    handler = _site({"/p": FULL_PAGE}, images)

    document = run_with_client(
        handler,
        lambda client: extract_project(ExtractionRequest(PAGE_URL, "skyline"), config, client),
    )
    data = document.to_dict()

    assert data["overview"].startswith("Skyline Towers is a landmark")
    assert [a["category"] for a in data["amenities"]] == ["Fitness & Wellness", "Security"]

    assert len(data["floorPlans"]) == 1
    plan = data["floorPlans"][0]
    assert plan["title"] == "2 BHK"
    assert plan["description"] == "1100 sq ft"
    assert plan["imagePath"] == (
        f"/images/projects/skyline/floorplan/0_{_hash8('https://x.test/plans/2bhk.png')}.png"
    )

    assert data["gallery"]["interior"] == [
        f"/images/projects/skyline/interior/0_{_hash8('https://x.test/g/living.jpg')}.png"
    ]
    update = data["constructionUpdates"][0]
    assert update["title"] == "Tower B"
    assert update["images"] == [
        f"/images/projects/skyline/update0/0_{_hash8('https://x.test/c/b1.jpg')}.png"
    ]

    for paths in data["gallery"].values():
        assert all(path.startswith("/images/projects/skyline/") for path in paths)
    for path in _files(config.asset_root):
        assert path.relative_to(config.asset_root).parts[0] == "skyline"


def test_rerun_is_idempotent_at_filename_level(config, run_with_client, png_bytes):
    handler = _site({"/p": GALLERY_PAGE}, {"/a.jpg": png_bytes})

    first = run_with_client(handler, lambda client: run_extraction(PAGE_URL, "p1", config, client))
    second = run_with_client(handler, lambda client: run_extraction(PAGE_URL, "p1", config, client))

    assert first["data"]["gallery"] == second["data"]["gallery"]
    assert first["data"]["projectImages"] == second["data"]["projectImages"]


# ----------------------------------------------------------------------
# Failure modes
# ----------------------------------------------------------------------
@pytest.mark.parametrize(
    "source_url,project_id",
    [("", "p1"), (PAGE_URL, ""), ("ftp://x.test/p", "p1"), (PAGE_URL, "../..")],
)
def test_invalid_requests_are_rejected_before_any_request(config, source_url, project_id):
    def handler(request):  # pragma: no cover - must not be reached
        raise AssertionError("network used for an invalid request")

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await run_extraction(source_url, project_id, config, client)

    result = asyncio.run(run())
    assert result["success"] is False
    assert result["error"]
    assert result["details"]


def test_project_id_is_sanitized(config, run_with_client, png_bytes):
    handler = _site({"/p": GALLERY_PAGE}, {"/a.jpg": png_bytes})

    result = run_with_client(
        handler, lambda client: run_extraction(PAGE_URL, "../evil", config, client)
    )

    assert result["success"] is True
    assert result["data"]["gallery"]["exterior"][0].startswith("/images/projects/evil/")
    assert (config.asset_root / "evil" / "exterior").is_dir()


def test_malformed_image_host_is_dropped_without_aborting(config, run_with_client, png_bytes):
    page = """
    <html><body>
      <img alt="exterior" src="/a.png">
      <img alt="room" src="http://xn--/b.jpg">
    </body></html>
    """
    handler = _site({"/p": page}, {"/a.png": png_bytes})

    result = run_with_client(
        handler, lambda client: run_extraction(PAGE_URL, "p1", config, client)
    )

    assert result["success"] is True
    assert result["data"]["gallery"]["exterior"] == [
        f"/images/projects/p1/exterior/0_{_hash8('https://x.test/a.png')}.png"
    ]
    assert result["data"]["gallery"]["interior"] == []


def test_malformed_page_host_becomes_fetch_failure(config, run_with_client):
    def handler(request):  # pragma: no cover - must not be reached
        raise AssertionError("malformed host reached the transport")

    result = run_with_client(
        handler, lambda client: run_extraction("http://xn--/p", "p1", config, client)
    )

    assert result["success"] is False
    assert result["error"] == "Failed to extract content from website"
    assert _files(config.asset_root) == []


def test_write_failure_in_one_category_spares_the_others(config, run_with_client, png_bytes):
    page = """
    <html><body>
      <img class="gallery" alt="exterior view" src="/a.jpg" width="400" height="400">
      <div class="interior-gallery"><img src="/g/living.jpg"></div>
    </body></html>
    """
    handler = _site({"/p": page}, {"/a.jpg": png_bytes, "/g/living.jpg": png_bytes})
    # A plain file where the exterior directory should go.
    (config.asset_root / "p1").mkdir(parents=True)
    (config.asset_root / "p1" / "exterior").write_text("blocked")

    result = run_with_client(
        handler, lambda client: run_extraction(PAGE_URL, "p1", config, client)
    )

    assert result["success"] is True
    data = result["data"]
    assert data["gallery"]["exterior"] == []
    assert data["projectImages"] == [
        f"/images/projects/p1/project/0_{_hash8('https://x.test/a.jpg')}.png"
    ]
    assert data["gallery"]["interior"] == [
        f"/images/projects/p1/interior/0_{_hash8('https://x.test/g/living.jpg')}.png"
    ]

def test_fetch_and_parse_errors_propagate_from_extract_project(config, run_with_client):
    def timeout_handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(FetchError):
        run_with_client(
            timeout_handler,
            lambda client: extract_project(ExtractionRequest(PAGE_URL, "p1"), config, client),
        )

    empty = _site({"/p": "   "}, {})
    with pytest.raises(ParseError):
        run_with_client(
            empty,
            lambda client: extract_project(ExtractionRequest(PAGE_URL, "p1"), config, client),
        )

    with pytest.raises(InvalidRequestError):
        run_with_client(
            empty,
            lambda client: extract_project(ExtractionRequest(PAGE_URL, ""), config, client),
        )


# ----------------------------------------------------------------------
# Preview and image checks
# ----------------------------------------------------------------------
def test_preview_keeps_remote_urls_and_writes_nothing(config, run_with_client):
    overview = "Premium homes in the heart of the city. " * 5
    page = f"""
    <html><body>
      <div class="overview">{overview}</div>
      <div class="gallery"><img src="/g/1.jpg" alt="tower"></div>
    </body></html>
    """
    handler = _site({"/p": page}, {})

    result = run_with_client(handler, lambda client: preview_project(PAGE_URL, config, client))

    assert result["success"] is True
    assert result["data"]["overview"] == overview.strip()
    assert result["data"]["projectImages"] == ["https://x.test/g/1.jpg"]
    assert result["data"]["gallery"]["exterior"] == ["https://x.test/g/1.jpg"]
    assert _files(config.asset_root) == []


def test_preview_reports_fetch_failures(config, run_with_client):
    result = run_with_client(
        lambda request: httpx.Response(503),
        lambda client: preview_project(PAGE_URL, config, client),
    )
    assert result == {
        "success": False,
        "error": "Extraction failed",
        "details": result["details"],
    }
    assert "503" in result["details"]


def test_check_images_uses_head_requests(config, run_with_client):
    def handler(request):
        return httpx.Response(200, headers={"Content-Type": "image/png"})

    results = run_with_client(
        handler, lambda client: check_images(["https://x.test/a.png"], config, client)
    )
    assert results[0]["valid"] is True


def test_build_client_sends_browser_user_agent(config):
    client = build_client(config)
    try:
        assert client.headers["User-Agent"].startswith("Mozilla/5.0")
    finally:
        asyncio.run(client.aclose())
