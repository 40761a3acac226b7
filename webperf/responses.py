"""
Glue between Starlette requests and the negotiator: cache policy, CORS and
the compressed file response itself.
"""
import logging
from pathlib import Path

from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import Response

from .content import ContentPayload, FileSource
from .exceptions import SourceReadFailure
from .negotiation import Negotiator, default_negotiator

logger = logging.getLogger(__name__)

NO_CACHE = "no-cache"
SHORT_LIVED = "public, max-age=300"
LONG_LIVED = "public, max-age=31536000"
IMMUTABLE = "public, max-age=31536000, immutable"


def is_good_practice(request: Request) -> bool:
    """Assets requested from the good page get the good caching headers."""
    return "good" in request.headers.get("referer", "")


def cache_control_for(media_type: str, good: bool, is_font: bool = False) -> str:
    if not good:
        return NO_CACHE
    if media_type == "text/html":
        return SHORT_LIVED
    if is_font:
        return IMMUTABLE
    return LONG_LIVED


def read_payload(path: Path) -> ContentPayload:
    return ContentPayload.from_source(FileSource(path))


async def negotiated_file_response(
    request: Request,
    path: Path,
    *,
    is_font: bool = False,
    negotiator: Negotiator | None = None,
) -> Response:
    """
    Reads `path`, compresses it with the encoding the client accepts and
    attaches cache and CORS headers.

    A missing file becomes a 404. Compression errors are left to propagate.
    """
    negotiator = negotiator or default_negotiator
    try:
        payload = await run_in_threadpool(read_payload, path)
    except SourceReadFailure:
        logger.info("source not found: %s", path, extra={"path": str(path)})
        raise HTTPException(status_code=404, detail="Page not found")

    body, headers = await run_in_threadpool(
        negotiator.negotiate, payload, request.headers.get("accept-encoding", "")
    )
    headers["Cache-Control"] = cache_control_for(
        payload.media_type, is_good_practice(request), is_font
    )
    headers["Vary"] = "Accept-Encoding"
    if is_font:
        headers["Access-Control-Allow-Origin"] = "*"

    # Content-Type is already set, so Starlette adds no charset to it
    return Response(body, headers=headers)
