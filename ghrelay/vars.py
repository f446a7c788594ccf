import os
from dataclasses import dataclass
from typing import Mapping, Optional

SERVICE_NAME = os.getenv("SERVICE_NAME", "ghrelay")
HOST = os.environ.get("HOSTNAME", "0.0.0.0")
PORT = int(os.environ.get("PORT", "8080"))

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

# Redirect hops followed for a single inbound request before giving up.
MAX_REDIRECTS = 5

DEFAULT_BOT_USER_AGENTS = (
    "googlebot,bingbot,baiduspider,yandexbot,duckduckbot,slurp,sogou,"
    "360spider,bytespider,petalbot,applebot,semrushbot,ahrefsbot"
)
DEFAULT_DENIED_REFERERS = (
    "google.com,bing.com,baidu.com,yandex.com,yandex.ru,duckduckgo.com,"
    "sogou.com,so.com,search.yahoo.com"
)

_TRUTHY = {"1", "true", "yes", "on"}


def normalize_prefix(prefix: Optional[str]) -> str:
    """Return ``prefix`` with exactly one leading and one trailing slash."""
    if not prefix:
        return "/"
    value = prefix.strip()
    if not value.startswith("/"):
        value = "/" + value
    if not value.endswith("/"):
        value = value + "/"
    return value


def parse_list(raw: Optional[str]) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(item.strip() for item in str(raw).split(",") if item.strip())


def parse_flag(raw: Optional[str]) -> bool:
    return str(raw or "").strip().lower() in _TRUTHY


@dataclass(frozen=True)
class ProxyConfig:
    prefix: str = "/"
    white_list: tuple[str, ...] = ()
    use_jsdelivr: bool = False
    allowed_origins: tuple[str, ...] = ()
    public_url: str = ""
    proxy_timeout: float = 300.0
    bot_user_agents: tuple[str, ...] = parse_list(DEFAULT_BOT_USER_AGENTS)
    bot_org_header: str = "x-asn-organization"
    bot_organizations: tuple[str, ...] = ()
    denied_referers: tuple[str, ...] = parse_list(DEFAULT_DENIED_REFERERS)

    def __post_init__(self):
        object.__setattr__(self, "prefix", normalize_prefix(self.prefix))
        object.__setattr__(self, "public_url", self.public_url.rstrip("/"))


def load_config(environ: Optional[Mapping[str, str]] = None) -> ProxyConfig:
    """Build the process-wide configuration from environment variables."""
    env = os.environ if environ is None else environ
    return ProxyConfig(
        prefix=env.get("PREFIX", "/"),
        white_list=parse_list(env.get("WHITE_LIST", "")),
        use_jsdelivr=parse_flag(env.get("USE_JSDELIVR", "0")),
        allowed_origins=parse_list(env.get("ALLOWED_ORIGINS", "")),
        public_url=env.get("PUBLIC_URL", "").strip(),
        proxy_timeout=float(env.get("PROXY_TIMEOUT", "300")),
        bot_user_agents=parse_list(
            env.get("BOT_USER_AGENTS", DEFAULT_BOT_USER_AGENTS)
        ),
        bot_org_header=env.get("BOT_ORG_HEADER", "x-asn-organization").strip(),
        bot_organizations=parse_list(env.get("BOT_ORGANIZATIONS", "")),
        denied_referers=parse_list(
            env.get("DENIED_REFERERS", DEFAULT_DENIED_REFERERS)
        ),
    )
