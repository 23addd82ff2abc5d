"""Image downloading, validation and storage utilities."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Sequence
from urllib.parse import urlparse

import httpx

from .config import IngestConfig
from .errors import AssetError, AssetFetchError, InvalidAssetError, StorageError
from .models import CandidateAsset, DownloadResult

logger = logging.getLogger("listing_ingest")

MIN_IMAGE_BYTES = 100

# Sniffing order matters: the first matching signature wins.
IMAGE_SIGNATURES = (
    ("jpeg", b"\xff\xd8\xff"),
    ("png", b"\x89PNG"),
    ("gif", b"GIF"),
    ("webp", b"RIFF"),
)
_SIGNATURE_BY_FORMAT = dict(IMAGE_SIGNATURES)

CONTENT_TYPE_FORMATS = {
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/pjpeg": "jpeg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}
FORMAT_EXTENSIONS = {"jpeg": ".jpg", "png": ".png", "gif": ".gif", "webp": ".webp"}
URL_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
DEFAULT_EXTENSION = ".jpg"


def declared_format(content_type: Optional[str]) -> Optional[str]:
    """Map an HTTP Content-Type to one of the known image families."""
    if not content_type:
        return None
    mime = content_type.split(";")[0].strip().lower()
    return CONTENT_TYPE_FORMATS.get(mime)


def detect_image_format(data: bytes) -> Optional[str]:
    """Identify the image family from its leading bytes."""
    for name, signature in IMAGE_SIGNATURES:
        if data.startswith(signature):
            return name
    return None


def is_valid_image(data: bytes, content_type: Optional[str] = None) -> bool:
    """Check a payload against the signature for its declared or sniffed type.

    Tiny payloads are rejected outright; they are almost always tracking
    pixels or truncated responses. When the server declares an image type the
    bytes must carry that type's signature, even if they happen to look like a
    different image format.
    """
    if not data or len(data) < MIN_IMAGE_BYTES:
        return False
    expected = declared_format(content_type)
    if expected:
        return data.startswith(_SIGNATURE_BY_FORMAT[expected])
    return detect_image_format(data) is not None


def choose_extension(content_type: Optional[str], source_url: str) -> str:
    """Pick a file extension from the Content-Type, then the URL, then ``.jpg``."""
    fmt = declared_format(content_type)
    if fmt:
        return FORMAT_EXTENSIONS[fmt]
    suffix = PurePosixPath(urlparse(source_url).path).suffix.lower()
    if suffix in URL_IMAGE_EXTENSIONS:
        return suffix
    return DEFAULT_EXTENSION


def asset_filename(ordinal_index: int, source_url: str, extension: str) -> str:
    """Deterministic name for a given position and source URL."""
    digest = hashlib.md5(source_url.encode("utf-8")).hexdigest()[:8]
    return f"{ordinal_index}_{digest}{extension}"


def _write_asset(directory: Path, filename: str, data: bytes) -> None:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / filename).write_bytes(data)


async def store_image(
    data: bytes,
    content_type: Optional[str],
    source_url: str,
    project_id: str,
    category: str,
    ordinal_index: int,
    config: IngestConfig,
) -> str:
    """Validate and persist image bytes, returning the public path."""
    if not is_valid_image(data, content_type):
        raise InvalidAssetError(
            f"{source_url} is not a valid image "
            f"({len(data)} bytes, Content-Type={content_type or 'unknown'})"
        )

    extension = choose_extension(content_type, source_url)
    filename = asset_filename(ordinal_index, source_url, extension)
    directory = Path(config.asset_root) / project_id / category
    try:
        await asyncio.to_thread(_write_asset, directory, filename, data)
    except OSError as exc:
        raise StorageError(f"Failed to write {directory / filename}: {exc}") from exc

    prefix = config.public_prefix.rstrip("/")
    return f"{prefix}/{project_id}/{category}/{filename}"


async def download_image(
    client: httpx.AsyncClient,
    candidate: CandidateAsset,
    config: IngestConfig,
) -> DownloadResult:
    """Fetch and store a single candidate; failures come back as a result, not an exception."""
    try:
        try:
            resp = await client.get(candidate.remote_url, timeout=config.image_timeout)
            resp.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise AssetFetchError(
                f"Failed to fetch image {candidate.remote_url}: {exc!r}"
            ) from exc

        local_path = await store_image(
            resp.content,
            resp.headers.get("Content-Type"),
            candidate.remote_url,
            candidate.project_id,
            candidate.category,
            candidate.ordinal_index,
            config,
        )
    except AssetError as exc:
        logger.warning("Dropping %s asset: %s", candidate.category, exc)
        return DownloadResult(candidate=candidate, error=str(exc))
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Unexpected error downloading %s", candidate.remote_url)
        return DownloadResult(candidate=candidate, error=repr(exc))

    logger.debug("Stored %s -> %s", candidate.remote_url, local_path)
    return DownloadResult(candidate=candidate, local_path=local_path)


async def download_candidates(
    client: httpx.AsyncClient,
    urls: Sequence[str],
    project_id: str,
    category: str,
    config: IngestConfig,
) -> List[DownloadResult]:
    """Download URLs in fixed-size batches, each batch finishing before the next starts."""
    candidates = [
        CandidateAsset(url, project_id, category, index)
        for index, url in enumerate(urls)
        if url
    ]
    if not candidates:
        return []

    batch_size = max(1, config.batch_size)
    total_batches = (len(candidates) + batch_size - 1) // batch_size
    results: List[DownloadResult] = []
    for start in range(0, len(candidates), batch_size):
        batch = candidates[start : start + batch_size]
        logger.debug(
            "Downloading %s batch %d of %d (size: %d)",
            category,
            (start // batch_size) + 1,
            total_batches,
            len(batch),
        )
        results.extend(
            await asyncio.gather(
                *(download_image(client, candidate, config) for candidate in batch)
            )
        )
    return results


async def download_all(
    client: httpx.AsyncClient,
    urls: Sequence[str],
    project_id: str,
    category: str,
    config: IngestConfig,
) -> List[str]:
    """Return local paths for the URLs that downloaded and validated successfully."""
    results = await download_candidates(client, urls, project_id, category, config)
    paths = [result.local_path for result in results if result.ok]
    logger.info(
        "Stored %d/%d %s image(s) for %s", len(paths), len(urls), category, project_id
    )
    return paths


async def check_image_url(
    client: httpx.AsyncClient,
    url: str,
    config: IngestConfig,
) -> Dict[str, object]:
    """Probe an image URL with a HEAD request without downloading the body."""
    try:
        resp = await client.head(url, timeout=config.check_timeout)
    except httpx.TimeoutException:
        return {"url": url, "valid": False, "error": "Timeout"}
    except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
        logger.debug("HEAD %s failed: %r", url, exc)
        return {"url": url, "valid": False, "error": "Request failed"}
    return {
        "url": url,
        "valid": resp.status_code == 200,
        "contentType": resp.headers.get("Content-Type"),
        "size": resp.headers.get("Content-Length"),
    }


async def check_image_urls(
    client: httpx.AsyncClient,
    urls: Sequence[str],
    config: IngestConfig,
) -> List[Dict[str, object]]:
    """Probe many image URLs, ``batch_size`` at a time, preserving input order."""
    batch_size = max(1, config.batch_size)
    results: List[Dict[str, object]] = []
    for start in range(0, len(urls), batch_size):
        batch = urls[start : start + batch_size]
        results.extend(
            await asyncio.gather(*(check_image_url(client, url, config) for url in batch))
        )
    return results
