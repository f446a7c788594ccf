"""
Cheap, local checks that run before any outbound request.

None of these are security controls: the whitelist keeps the proxy scoped to
the repositories it is meant to serve, and the crawler/referer heuristics only
discourage search engines from indexing proxied content.
"""

import logging
from typing import Optional
from urllib.parse import urlsplit

from ghrelay.vars import ProxyConfig

logger = logging.getLogger("uvicorn.error")


def is_whitelisted(target_path: str, config: ProxyConfig) -> bool:
    """True when ``target_path`` contains a whitelist entry, or the list is empty."""
    if not config.white_list:
        return True
    return any(needle in target_path for needle in config.white_list)


def _contains_any(value: Optional[str], needles: tuple[str, ...]) -> bool:
    if not value:
        return False
    lowered = value.lower()
    return any(needle.lower() in lowered for needle in needles)


def is_crawler(
    user_agent: Optional[str], organization: Optional[str], config: ProxyConfig
) -> bool:
    if _contains_any(user_agent, config.bot_user_agents):
        logger.info(f"[Gate] Crawler user-agent rejected: {user_agent}")
        return True
    if _contains_any(organization, config.bot_organizations):
        logger.info(f"[Gate] Crawler organization rejected: {organization}")
        return True
    return False


def host_matches(host: str, domain: str) -> bool:
    domain = domain.lower().lstrip("*").lstrip(".")
    return bool(domain) and (host == domain or host.endswith("." + domain))


def is_denied_referer(referer: Optional[str], config: ProxyConfig) -> bool:
    """True when the Referer host is one of the configured search engines."""
    if not referer or not config.denied_referers:
        return False
    try:
        host = (urlsplit(referer).hostname or "").lower()
    except ValueError:
        return False
    if not host:
        return False
    return any(host_matches(host, domain) for domain in config.denied_referers)
