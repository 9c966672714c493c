"""Search proxy: fetch a resource site's result page for the browser.

Browsers cannot read cross-origin search pages directly, so the client
asks the server to fetch them. The optional ``className`` is a CSS
selector; when given, only the matching elements are returned.
"""

from __future__ import annotations

import logging
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from fastapi import APIRouter, HTTPException, status
from fastapi.responses import HTMLResponse, JSONResponse, Response

from ...config.settings import Settings
from ...utils.http_client import get_http_client
from ..schemas import SearchRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["search"])


def select_fragments(html: str, selector: str) -> str:
    """Outer HTML of every element matching ``selector``, concatenated."""
    soup = BeautifulSoup(html, "html.parser")
    return "".join(str(element) for element in soup.select(selector))


@router.post("/search", summary="Fetch an upstream search page", response_class=HTMLResponse)
async def proxy_search(payload: SearchRequest) -> Response:
    if not payload.url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing url parameter")
    if urlparse(payload.url).scheme not in {"http", "https"}:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only http(s) URLs can be fetched")

    client = get_http_client(Settings.SEARCH_TIMEOUT_SECONDS)
    try:
        page = await client.fetch_page(payload.url, post=payload.is_post, data=payload.post_data)
    except Exception as exc:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to fetch upstream resource", "message": str(exc)},
        )

    if not page.ok:
        logger.info("Upstream returned %s for %s", page.status, payload.url)
        return JSONResponse(
            status_code=page.status,
            content={"error": "Upstream request failed", "status": page.status, "statusText": page.reason},
        )

    if not payload.class_name:
        return HTMLResponse(page.text)

    try:
        content = select_fragments(page.text, payload.class_name)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid selector: {exc}"
        ) from exc
    return HTMLResponse(content)


__all__ = ["router", "select_fragments"]
