"""One API client per GitHub host.

Tokens are looked up per host so that github.com and any number of GitHub
Enterprise instances can be audited in the same run:

  github.com           GITHUB_TOKEN               https://api.github.com
  github.example.com   GITHUB_EXAMPLE_COM_TOKEN   https://github.example.com/api/v3
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Callable

from pear_reviewer_core.errors import AuthError
from pear_reviewer_core.gh.client import DEFAULT_API_URL, GitHubClient, ReviewApi

logger = logging.getLogger(__name__)

PUBLIC_HOST = "github.com"


def credentials_for_host(host: str) -> tuple[str, str]:
    """Return ``(env_var_name, api_base_url)`` for a GitHub host."""
    if host == PUBLIC_HOST:
        return "GITHUB_TOKEN", DEFAULT_API_URL

    name = host.replace(".", "_").upper()
    while name.startswith("GITHUB_"):
        name = name.removeprefix("GITHUB_")
    return f"GITHUB_{name}_TOKEN", f"https://{host}/api/v3"


class ClientGateway:
    """Lazily builds and caches one client per host.

    ``client_factory`` receives ``(token, api_base_url)``; it defaults to the
    live GitHubClient. Clients are shared read-only by every analysis that
    targets the same host, so the per-client semaphore is the host's
    concurrency ceiling.
    """

    def __init__(
        self,
        client_factory: Callable[[str, str], ReviewApi] | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self._client_factory = client_factory or GitHubClient
        self._environ = os.environ if environ is None else environ
        self._clients: dict[str, ReviewApi] = {}

    def register(self, host: str, client: ReviewApi) -> None:
        """Use ``client`` for ``host`` instead of building one."""
        self._clients[host] = client

    def client_for(self, host: str) -> ReviewApi:
        client = self._clients.get(host)
        if client is not None:
            return client

        env_name, api_url = credentials_for_host(host)
        token = self._environ.get(env_name)
        if not token:
            raise AuthError(host, env_name)

        logger.debug("Creating API client for %s (%s)", host, api_url)
        client = self._client_factory(token, api_url)
        self._clients[host] = client
        return client
