import logging
import re
from typing import AsyncIterator, Optional
from urllib.parse import urlencode, urlsplit

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse, Response, StreamingResponse
from opentelemetry import trace

from ghrelay.assets.route import resolve_asset, serve_asset
from ghrelay.policy.cors import is_preflight, preflight_response
from ghrelay.policy.gate import is_crawler, is_denied_referer, is_whitelisted
from ghrelay.relay.classifier import (
    ResourceShape,
    jsdelivr_url,
    match_resource,
    raw_url,
)
from ghrelay.relay.engine import RelayError, RelayResult, build_client, relay
from ghrelay.utils import mask_query
from ghrelay.vars import ProxyConfig

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

# Some front ends collapse "//" in the path, leaving "https:/github.com/..."
_COLLAPSED_SCHEME = re.compile(r"^https?:/+", re.IGNORECASE)
_HAS_SCHEME = re.compile(r"^https?://", re.IGNORECASE)


def get_config(request: Request) -> ProxyConfig:
    return request.app.state.config


def public_origin(request: Request, config: ProxyConfig) -> str:
    """Origin clients use to reach this proxy, for rewritten redirects."""
    if config.public_url:
        return config.public_url
    host = request.headers.get("host") or request.url.netloc
    return f"{request.url.scheme}://{host}"


def error_redirect(config: ProxyConfig, status: int, message: str) -> Response:
    query = urlencode({"code": status, "msg": message})
    return RedirectResponse(f"{config.prefix}error?{query}", status_code=302)


def extract_target(request: Request, config: ProxyConfig) -> Optional[str]:
    """The part of the inbound URL after the prefix, query string included."""
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1").split("?", 1)[0] if raw_path else request.url.path
    if not path.startswith(config.prefix):
        return None
    target = path[len(config.prefix):]
    if request.url.query:
        target = f"{target}?{request.url.query}"
    return _COLLAPSED_SCHEME.sub("https://", target)


def to_absolute_url(target: str) -> Optional[str]:
    """Promote bare ``host/path`` to ``https://host/path`` and validate it."""
    if not _HAS_SCHEME.match(target):
        target = "https://" + target
    try:
        parsed = urlsplit(target)
        httpx.URL(target)
    except Exception as e:
        logger.info(f"[Proxy] Rejecting unparseable target {mask_query(target)}: {e}")
        return None
    if not parsed.hostname:
        return None
    return target


async def stream_response(
    result: RelayResult, client: httpx.AsyncClient
) -> AsyncIterator[bytes]:
    """Stream the origin body unchanged, then release the upstream connection."""
    try:
        async for chunk in result.upstream.aiter_raw():
            yield chunk
    finally:
        await result.aclose()
        await client.aclose()


async def relay_to_origin(
    request: Request, target: str, config: ProxyConfig
) -> Response:
    body = await request.body()
    client = build_client(config)
    try:
        result = await relay(
            client,
            request.method,
            target,
            request.headers.items(),
            body or None,
            config,
            public_origin(request, config),
        )
    except RelayError as e:
        await client.aclose()
        return error_redirect(config, e.status_code, e.message)
    except BaseException:
        await client.aclose()
        raise

    response = StreamingResponse(
        stream_response(result, client), status_code=result.status_code
    )
    for name, value in result.headers:
        response.headers.append(name, value)
    return response


async def forward_to_origin(request: Request) -> Response:
    """
    Ingress pipeline for one proxied request.

    Static pages and the ``?q=`` shortcut are answered first. The target is
    then taken from the path, checked against the crawler, referer and
    whitelist policies, classified, and either redirected to jsDelivr or
    relayed to the origin.
    """
    config = get_config(request)

    if request.method in ("GET", "HEAD"):
        asset = resolve_asset(request.url.path, config)
        if asset:
            return serve_asset(request, asset)

    q = request.query_params.get("q")
    if q:
        return RedirectResponse(
            f"{public_origin(request, config)}{config.prefix}{q}", status_code=301
        )

    with tracer.start_as_current_span("proxy_request") as span:
        span.set_attribute("proxy.method", request.method)

        target_path = extract_target(request, config)
        if target_path is None:
            return error_redirect(config, 400, "invalid target url")

        if is_preflight(request):
            return preflight_response(request)

        organization = (
            request.headers.get(config.bot_org_header)
            if config.bot_org_header
            else None
        )
        if is_crawler(request.headers.get("user-agent"), organization, config):
            span.set_attribute("proxy.rejected", "crawler")
            return Response(content="Gone", status_code=410, media_type="text/plain")

        if is_denied_referer(request.headers.get("referer"), config):
            span.set_attribute("proxy.rejected", "referer")
            return error_redirect(config, 403, "forbidden referer")

        if not is_whitelisted(target_path, config):
            span.set_attribute("proxy.rejected", "whitelist")
            logger.info(f"[Proxy] Not whitelisted: {mask_query(target_path)}")
            return error_redirect(config, 403, "blocked")

        target = to_absolute_url(target_path)
        if target is None:
            return error_redirect(config, 400, "invalid target url")
        span.set_attribute("proxy.target_url", mask_query(target))

        match = match_resource(target)
        if match is None:
            span.set_attribute("proxy.rejected", "unsupported")
            return error_redirect(config, 403, "unsupported resource")
        span.set_attribute("proxy.shape", match.shape.value)

        if match.shape is ResourceShape.BLOB_OR_RAW:
            if config.use_jsdelivr:
                location = jsdelivr_url(match)
                span.set_attribute("proxy.cdn_location", location)
                return RedirectResponse(location, status_code=302)
            if match.kind == "blob":
                target = raw_url(match)

        logger.debug(f"[Proxy] {request.method} {mask_query(target)}")
        return await relay_to_origin(request, target, config)


@router.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy_all(request: Request, path: str):
    """Catch-all route; everything not served elsewhere goes through the relay."""
    return await forward_to_origin(request)
