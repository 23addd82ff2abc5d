"""MCP server exposing project extraction tools."""

from __future__ import annotations

import json
import logging

from mcp.server.fastmcp import FastMCP

from .config import IngestConfig
from .crawler import preview_project, run_extraction

logger = logging.getLogger("listing_ingest.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="listing-ingest")


@mcp.tool()
async def extract(
    url: str,
    project_id: str,
) -> str:
    """Extract a project website, store its images locally and return the JSON document."""
    result = await run_extraction(url, project_id, IngestConfig.from_env())
    return json.dumps(result, ensure_ascii=False)


@mcp.tool()
async def preview(
    url: str,
) -> str:
    """Extract a project website without downloading images."""
    result = await preview_project(url, IngestConfig.from_env())
    return json.dumps(result, ensure_ascii=False)


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
