"""
Companion UI, error page and robots.txt.

These paths never reach the relay. The error page is the landing point of
the error-redirect protocol: ``?code=NNN`` makes the page answer with the
original failure status while still rendering a styled document.
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import FileResponse, PlainTextResponse, Response

from ghrelay.vars import ProxyConfig

logger = logging.getLogger("uvicorn.error")

router = APIRouter()

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"
ROBOTS_TXT = "User-agent: *\nDisallow: /\n"
ALL_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]


@router.api_route("/robots.txt", methods=ALL_METHODS)
async def robots_txt():
    return PlainTextResponse(ROBOTS_TXT)


def resolve_asset(path: str, config: ProxyConfig) -> Optional[str]:
    """File name under ``static/`` served for ``path``, if any."""
    prefix = config.prefix
    if path in ("/", "/index.html", prefix, prefix.rstrip("/") or "/"):
        return "index.html"
    if path in ("/error", f"{prefix}error"):
        return "error.html"
    if path == "/favicon.ico":
        return "favicon.ico"
    return None


def status_override(raw_code: Optional[str]) -> Optional[int]:
    try:
        code = int(raw_code) if raw_code else None
    except ValueError:
        return None
    if code is not None and 400 <= code < 600:
        return code
    return None


def serve_asset(request: Request, filename: str) -> Response:
    file_path = STATIC_DIR / filename
    if not file_path.is_file():
        logger.debug(f"[Assets] Missing static file {filename}")
        return Response(status_code=404)
    status = status_override(request.query_params.get("code")) or 200
    return FileResponse(file_path, status_code=status)
