"""
Recognition of the GitHub URL shapes the relay is willing to proxy.

Every rule is a (hosts, path predicate) pair evaluated in table order. Rules
are disjoint by host and by the third path segment, so the first match is
also the only match.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional
from urllib.parse import urlsplit

GITHUB_HOSTS = frozenset({"github.com"})
RAW_HOSTS = frozenset({"raw.githubusercontent.com", "raw.github.com"})
GIST_HOSTS = frozenset({"gist.github.com", "gist.githubusercontent.com"})

JSDELIVR_GH_BASE = "https://cdn.jsdelivr.net/gh"


class ResourceShape(str, Enum):
    RELEASE_OR_ARCHIVE = "release-or-archive"
    BLOB_OR_RAW = "blob-or-raw"
    INFO_OR_GIT_PROTOCOL = "info-or-git-protocol"
    RAW_CONTENT_HOST = "raw-content-host"
    GIST_CONTENT = "gist-content"
    TAG_LISTING = "tag-listing"


@dataclass(frozen=True)
class ResourceMatch:
    shape: ResourceShape
    host: str
    owner: str
    repo: str
    kind: str = ""
    ref: str = ""
    path: str = ""
    query: str = ""


# Each predicate receives the path segments after the leading slash, with
# empty segments preserved (so "/a/b/releases/" -> ["a", "b", "releases", ""]).
_Predicate = Callable[[list[str]], bool]


def _repo_segment(segments: list[str], test: Callable[[str], bool]) -> bool:
    if len(segments) < 3 or not segments[0] or not segments[1]:
        return False
    return test(segments[2].lower())


def _release_or_archive(segments: list[str]) -> bool:
    return len(segments) >= 4 and _repo_segment(
        segments, lambda kind: kind in ("releases", "archive")
    )


def _blob_or_raw(segments: list[str]) -> bool:
    return (
        len(segments) >= 4
        and bool(segments[3])
        and _repo_segment(segments, lambda kind: kind in ("blob", "raw"))
    )


def _info_or_git(segments: list[str]) -> bool:
    return _repo_segment(
        segments, lambda kind: kind.startswith("info") or kind.startswith("git-")
    )


def _tags(segments: list[str]) -> bool:
    return _repo_segment(segments, lambda kind: kind.startswith("tags"))


def _raw_content(segments: list[str]) -> bool:
    return (
        len(segments) >= 4
        and all(segments[:3])
        and bool("/".join(segments[3:]))
    )


def _gist_content(segments: list[str]) -> bool:
    return len(segments) >= 3 and all(segments[:2]) and bool("/".join(segments[2:]))


SHAPE_RULES: tuple[tuple[ResourceShape, frozenset, _Predicate], ...] = (
    (ResourceShape.RELEASE_OR_ARCHIVE, GITHUB_HOSTS, _release_or_archive),
    (ResourceShape.BLOB_OR_RAW, GITHUB_HOSTS, _blob_or_raw),
    (ResourceShape.INFO_OR_GIT_PROTOCOL, GITHUB_HOSTS, _info_or_git),
    (ResourceShape.RAW_CONTENT_HOST, RAW_HOSTS, _raw_content),
    (ResourceShape.GIST_CONTENT, GIST_HOSTS, _gist_content),
    (ResourceShape.TAG_LISTING, GITHUB_HOSTS, _tags),
)


def _split(url: str) -> Optional[tuple[str, list[str], str]]:
    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not host:
        return None
    if not parts.path.startswith("/"):
        return None
    return host, parts.path[1:].split("/"), parts.query


def matching_shapes(url: str) -> list[ResourceShape]:
    """All rules matching ``url``; used to check the table stays disjoint."""
    split = _split(url)
    if split is None:
        return []
    host, segments, _ = split
    return [
        shape
        for shape, hosts, predicate in SHAPE_RULES
        if host in hosts and predicate(segments)
    ]


def match_resource(url: str) -> Optional[ResourceMatch]:
    """Classify ``url`` and decompose it into owner/repo/ref/path fields."""
    split = _split(url)
    if split is None:
        return None
    host, segments, query = split
    for shape, hosts, predicate in SHAPE_RULES:
        if host not in hosts or not predicate(segments):
            continue
        if shape is ResourceShape.BLOB_OR_RAW:
            return ResourceMatch(
                shape=shape,
                host=host,
                owner=segments[0],
                repo=segments[1],
                kind=segments[2].lower(),
                ref=segments[3],
                path="/".join(segments[4:]),
                query=query,
            )
        if shape is ResourceShape.RAW_CONTENT_HOST:
            return ResourceMatch(
                shape=shape,
                host=host,
                owner=segments[0],
                repo=segments[1],
                ref=segments[2],
                path="/".join(segments[3:]),
                query=query,
            )
        return ResourceMatch(
            shape=shape,
            host=host,
            owner=segments[0],
            repo=segments[1] if len(segments) > 1 else "",
            kind=segments[2].lower() if len(segments) > 2 else "",
            path="/".join(segments[3:]),
            query=query,
        )
    return None


def classify(url: str) -> Optional[ResourceShape]:
    match = match_resource(url)
    return match.shape if match else None


def _with_tail(url: str, match: ResourceMatch) -> str:
    if match.path:
        url = f"{url}/{match.path}"
    if match.query:
        url = f"{url}?{match.query}"
    return url


def jsdelivr_url(match: ResourceMatch) -> str:
    """Equivalent jsDelivr URL for a github.com blob/raw match."""
    return _with_tail(
        f"{JSDELIVR_GH_BASE}/{match.owner}/{match.repo}@{match.ref}", match
    )


def raw_url(match: ResourceMatch) -> str:
    """The same github.com file addressed through ``/raw/`` instead of ``/blob/``."""
    return _with_tail(
        f"https://{match.host}/{match.owner}/{match.repo}/raw/{match.ref}", match
    )
