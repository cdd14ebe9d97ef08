from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

from pear_reviewer_core.errors import ParseError

_DEFAULT_PORTS = {"https": 443, "http": 80, "ssh": 22, "git": 9418}


@dataclass(frozen=True)
class RemoteRepository:
    """One repository on one GitHub host, parsed from its clone or web URL."""

    host: str
    port: int
    owner: str
    name: str
    original_url: str

    @classmethod
    def parse(cls, url: str) -> RemoteRepository:
        return parse_remote(url)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def web_url(self) -> str:
        netloc = self.host if self.port == 443 else f"{self.host}:{self.port}"
        return f"https://{netloc}/{self.owner}/{self.name}"


def parse_remote(url: str) -> RemoteRepository:
    """Parse ``https://host[:port]/owner/repo[.git]`` into a RemoteRepository.

    Raises ParseError for relative URLs, URLs without host or port, and paths
    that are not exactly ``/owner/repo``.
    """
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError as e:
        raise ParseError(f"can't parse remote {url!r}: {e}") from e

    if not parts.scheme or not parts.netloc:
        raise ParseError(f"can't parse remote {url!r}: not an absolute URL")
    if not parts.hostname:
        raise ParseError(f"remote {url!r} has no host")

    if port is None:
        port = _DEFAULT_PORTS.get(parts.scheme.lower())
    if port is None:
        raise ParseError(f"remote {url!r} has no port")

    segments = parts.path.lstrip("/").split("/")
    if len(segments) != 2 or not all(segments):
        raise ParseError("expected /owner/repo.git")

    owner, name = segments
    name = name.removesuffix(".git")
    if not name:
        raise ParseError("expected /owner/repo.git")

    return RemoteRepository(
        host=parts.hostname,
        port=port,
        owner=owner,
        name=name,
        original_url=url,
    )
