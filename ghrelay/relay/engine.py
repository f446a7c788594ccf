"""
Outbound fetch and redirect resolution for proxied GitHub resources.

The engine issues the request with redirects disabled and inspects the
``Location`` header itself. Redirects to URLs the classifier recognizes are
rewritten to point back through this proxy; anything else (typically a CDN
or object-storage host) is followed in place, up to ``MAX_REDIRECTS`` hops,
so the client only ever sees the final response.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import urljoin

import httpx
from opentelemetry import trace

from ghrelay.relay.classifier import classify
from ghrelay.utils import mask_query
from ghrelay.utils.exception_logging import (
    log_exception_with_details,
    transport_error_status,
)
from ghrelay.utils.traced_requests import traced_request
from ghrelay.vars import MAX_REDIRECTS, ProxyConfig

tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

# Request headers dropped before contacting the origin
DROPPED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length"}

# Response headers that would stop browsers from following or embedding
STRIPPED_RESPONSE_HEADERS = {
    "content-security-policy",
    "content-security-policy-report-only",
    "clear-site-data",
}


class RelayError(Exception):
    """A locally handled failure, reported to the client as ``status_code``."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


@dataclass
class RelayResult:
    status_code: int
    headers: list[tuple[str, str]]
    upstream: httpx.Response
    target: str
    hops: int = 0
    redirected: bool = False

    async def aclose(self) -> None:
        await self.upstream.aclose()


def build_client(
    config: ProxyConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """Client for one inbound request; redirects are always handled manually."""
    client = httpx.AsyncClient(
        timeout=httpx.Timeout(config.proxy_timeout),
        follow_redirects=False,
        transport=transport,
    )
    # Only the inbound headers may reach the origin; httpx's defaults would
    # otherwise add Accept-Encoding and a python-httpx User-Agent.
    client.headers.clear()
    return client


def prepare_headers(headers: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    """
    Copy inbound headers for the origin request.
    Drops Host and hop-by-hop headers and forces an English Accept-Language.
    """
    prepared = [
        (name, value)
        for name, value in headers
        if name.lower() not in DROPPED_REQUEST_HEADERS
        and name.lower() != "accept-language"
    ]
    prepared.append(("Accept-Language", "en"))
    return prepared


def filter_response_headers(headers: httpx.Headers) -> list[tuple[str, str]]:
    return [
        (name, value)
        for name, value in headers.multi_items()
        if name.lower() not in HOP_BY_HOP_HEADERS
        and name.lower() not in STRIPPED_RESPONSE_HEADERS
    ]


def proxied_location(location: str, config: ProxyConfig, public_origin: str) -> str:
    """Point a recognized redirect target back through this proxy."""
    return f"{public_origin}{config.prefix}{location}"


def _replace_header(
    headers: list[tuple[str, str]], name: str, value: str
) -> list[tuple[str, str]]:
    kept = [(k, v) for k, v in headers if k.lower() != name]
    kept.append((name, value))
    return kept


async def _send(
    client: httpx.AsyncClient,
    method: str,
    target: str,
    headers: list[tuple[str, str]],
    body: Optional[bytes],
) -> httpx.Response:
    try:
        request = client.build_request(method, target, headers=headers, content=body)
        return await client.send(request, stream=True)
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        status, message = transport_error_status(e)
        log_exception_with_details(logger, f"[Relay] {mask_query(target)}", e)
        raise RelayError(status, message) from e


async def relay(
    client: httpx.AsyncClient,
    method: str,
    target: str,
    headers: Iterable[tuple[str, str]],
    body: Optional[bytes],
    config: ProxyConfig,
    public_origin: str,
) -> RelayResult:
    """
    Fetch ``target`` and chase unrecognized redirects.

    Raises RelayError when the origin answers with an error status, when it
    cannot be reached, or when the chain exceeds ``MAX_REDIRECTS`` hops. On
    success the caller owns the returned upstream response and must close it.
    """
    outbound_headers = prepare_headers(headers)
    hops = 0

    while True:
        if hops >= MAX_REDIRECTS:
            logger.warning(
                f"[Relay] Giving up after {hops} redirects at {mask_query(target)}"
            )
            raise RelayError(508, "too many redirects")

        with traced_request(
            tracer,
            "relay_hop",
            target,
            hops,
            f"[Relay] {method} {mask_query(target)} (hop {hops})",
            extra_attrs={"relay.method": method},
        ) as span:
            response = await _send(client, method, target, outbound_headers, body)
            span.set_attribute("relay.status_code", response.status_code)

            if response.status_code >= 400:
                await response.aclose()
                logger.info(
                    f"[Relay] Origin answered {response.status_code} for {mask_query(target)}"
                )
                raise RelayError(response.status_code, "failed to access resource")

            response_headers = filter_response_headers(response.headers)
            location = response.headers.get("location")
            if location is None:
                return RelayResult(
                    status_code=response.status_code,
                    headers=response_headers,
                    upstream=response,
                    target=target,
                    hops=hops,
                )

            next_target = urljoin(target, location)
            if classify(next_target) is not None:
                rewritten = proxied_location(next_target, config, public_origin)
                span.set_attribute("relay.rewritten_location", mask_query(rewritten))
                return RelayResult(
                    status_code=response.status_code,
                    headers=_replace_header(response_headers, "location", rewritten),
                    upstream=response,
                    target=target,
                    hops=hops,
                    redirected=True,
                )

            await response.aclose()
            span.set_attribute("relay.followed_location", mask_query(next_target))

        target = next_target
        hops += 1
