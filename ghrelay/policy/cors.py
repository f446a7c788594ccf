from typing import Optional
from urllib.parse import urlsplit

from fastapi import Request
from fastapi.responses import Response
from starlette.datastructures import MutableHeaders

from ghrelay.policy.gate import host_matches
from ghrelay.vars import ProxyConfig

ROBOTS_TAG = "noindex, nofollow, noarchive, nosnippet"
ALLOWED_METHODS = "GET,POST,PUT,PATCH,TRACE,DELETE,HEAD,OPTIONS"
PREFLIGHT_MAX_AGE = "1728000"


def is_allowed_origin(origin: Optional[str], config: ProxyConfig) -> bool:
    """Match the Origin hostname against the allow-list, suffixes included."""
    if not origin or not config.allowed_origins:
        return False
    try:
        host = (urlsplit(origin).hostname or "").lower()
    except ValueError:
        return False
    if not host:
        return False
    return any(host_matches(host, allowed) for allowed in config.allowed_origins)


def annotate_headers(
    headers: MutableHeaders, origin: Optional[str], config: ProxyConfig
) -> None:
    """Anti-indexing on every response, CORS only for allowed origins."""
    headers["x-robots-tag"] = ROBOTS_TAG
    if "access-control-allow-origin" in headers:
        del headers["access-control-allow-origin"]
    if is_allowed_origin(origin, config):
        headers["access-control-allow-origin"] = origin
        headers["access-control-expose-headers"] = "*"
        headers.append("vary", "Origin")


def is_preflight(request: Request) -> bool:
    return (
        request.method == "OPTIONS"
        and "access-control-request-headers" in request.headers
    )


def preflight_response(request: Request) -> Response:
    headers = {
        "access-control-allow-methods": ALLOWED_METHODS,
        "access-control-max-age": PREFLIGHT_MAX_AGE,
        "access-control-allow-headers": request.headers.get(
            "access-control-request-headers", ""
        ),
    }
    return Response(status_code=204, headers=headers)


def install_cors_middleware(app, config: ProxyConfig) -> None:
    @app.middleware("http")
    async def annotate_response(request: Request, call_next):
        response = await call_next(request)
        annotate_headers(response.headers, request.headers.get("origin"), config)
        return response
