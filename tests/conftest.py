"""Shared fixtures: a temporary asset root and an httpx client backed by a mock transport."""

import asyncio

import httpx
import pytest

from listing_ingest.config import IngestConfig

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 192
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 196


@pytest.fixture
def png_bytes():
    return PNG_BYTES


@pytest.fixture
def jpeg_bytes():
    return JPEG_BYTES


@pytest.fixture
def config(tmp_path):
    return IngestConfig(asset_root=tmp_path / "assets")


@pytest.fixture
def run_with_client():
    """
    Run ``make_coro(client)`` on a fresh event loop, with every request
    answered by ``handler`` instead of the network.
    """

    def runner(handler, make_coro):
        async def main():
            transport = httpx.MockTransport(handler)
            async with httpx.AsyncClient(transport=transport) as client:
                return await make_coro(client)

        return asyncio.run(main())

    return runner
