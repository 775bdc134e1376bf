"""
Registry fetcher for the DeGov DAO registry.

Resolves which ref of the registry repository to read, downloads the
registry document and the per-DAO config documents, and loads the
auxiliary agent registry. Candidate refs are tried in order and the first
one that yields a parseable document wins.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
import yaml
from pydantic import TypeAdapter, ValidationError

from degov.config import Settings, settings
from degov.infrastructure.observability.logging import get_logger
from degov.models.external.agent import AgentDaosResponse
from degov.models.external.dao_config import DaoConfig, DaoConfigResult
from degov.models.external.registry import (
    DaoRegistryConfig,
    GitHubTag,
    RegistryConfigResult,
    RegistryLink,
)

logger = get_logger(__name__)

_registry_adapter = TypeAdapter(dict[str, list[DaoRegistryConfig]])
_tags_adapter = TypeAdapter(list[GitHubTag])

BODY_PREVIEW_CHARS = 300


class FetchError(Exception):
    """Base error for remote document fetches."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class RegistryFetchError(FetchError):
    """The registry document could not be loaded from any candidate ref."""


class DaoConfigError(FetchError):
    """A single DAO config document is missing, unreadable or incomplete."""


class AgentRegistryError(FetchError):
    """The agent registry is unavailable or answered with an error envelope."""


class RegistryFetcher:
    """Loads registry, DAO config and agent documents over HTTP."""

    def __init__(
        self,
        config: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or settings
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.HTTP_TIMEOUT_SECONDS,
            transport=self._transport,
            follow_redirects=True,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator["RegistryFetcher"]:
        """Share one HTTP client across every request made inside the block. Nests."""
        if self._http is not None:
            yield self
            return

        async with self._client() as client:
            self._http = client
            try:
                yield self
            finally:
                self._http = None

    async def _get(self, url: str, **kwargs) -> httpx.Response:
        if self._http is not None:
            return await self._http.get(url, **kwargs)
        async with self._client() as client:
            return await client.get(url, **kwargs)

    async def fetch_text(self, url: str) -> str:
        """GET a document and return its body; raises FetchError on any failure."""
        try:
            response = await self._get(url)
        except httpx.RequestError as e:
            raise FetchError(f"failed to fetch from {url}: {e}", url=url) from e

        if response.status_code != 200:
            logger.error(
                "Failed to fetch content",
                url=url,
                status_code=response.status_code,
                response_body=response.text[:BODY_PREVIEW_CHARS],
            )
            raise FetchError(
                f"unexpected status {response.status_code} from {url}",
                url=url,
                status_code=response.status_code,
            )

        return response.text

    async def fetch_yaml(self, url: str) -> tuple[str, Any]:
        """Fetch a YAML document. Returns (raw text, parsed value)."""
        raw = await self.fetch_text(url)
        try:
            return raw, yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise FetchError(f"failed to parse YAML from {url}: {e}", url=url) from e

    # ------------------------------------------------------------------
    # Ref resolution
    # ------------------------------------------------------------------

    def build_link(self, mode: str, ref: str) -> RegistryLink:
        kind = "tags" if mode == "tag" else "heads"
        base_link = f"{self.config.registry_raw_base()}/refs/{kind}/{ref}"
        return RegistryLink(
            base_link=base_link,
            config_link=f"{base_link}/{self.config.REGISTRY_CONFIG_FILE}",
        )

    async def get_latest_tag(self) -> str | None:
        """Most recent tag name from the tag list API, or None if there are no tags."""
        url = self.config.registry_tags_url()
        logger.debug("Fetching tags from GitHub API", url=url)

        try:
            response = await self._get(url, headers={"Accept": "application/vnd.github+json"})
        except httpx.RequestError as e:
            raise FetchError(f"failed to fetch tags: {e}", url=url) from e

        if response.status_code != 200:
            raise FetchError(
                f"GitHub API returned status {response.status_code}",
                url=url,
                status_code=response.status_code,
            )

        try:
            tags = _tags_adapter.validate_python(response.json())
        except (ValueError, ValidationError) as e:
            raise FetchError(f"failed to parse GitHub API response: {e}", url=url) from e

        # The API lists newest first
        return tags[0].name if tags else None

    async def build_registry_links(self) -> list[tuple[str, RegistryLink]]:
        """
        Ordered candidate refs for the registry document.

        1. mode and ref configured: exactly that ref
        2. only ref configured: the ref as a tag, then as a branch
        3. nothing configured: latest tag, or the default branch when there
           are no tags or the tag lookup fails
        """
        mode = self.config.REGISTRY_CONFIG_MODE
        refs = self.config.REGISTRY_CONFIG_REFS

        if mode and refs:
            logger.debug("Using explicit registry ref", mode=mode, refs=refs)
            return [(f"{mode}:{refs}", self.build_link(mode, refs))]

        if refs:
            logger.debug("Using registry ref with tag/branch fallback", refs=refs)
            return [
                (f"tag:{refs}", self.build_link("tag", refs)),
                (f"branch:{refs}", self.build_link("branch", refs)),
            ]

        default_branch = self.config.REGISTRY_DEFAULT_BRANCH
        try:
            latest_tag = await self.get_latest_tag()
        except FetchError as e:
            logger.warning(
                "Failed to get latest registry tag, using default branch",
                branch=default_branch,
                error=str(e),
            )
            latest_tag = None
        else:
            if not latest_tag:
                logger.info("No registry tags found, using default branch", branch=default_branch)

        if latest_tag:
            logger.info("Using latest registry tag", tag=latest_tag)
            return [(f"tag:{latest_tag}", self.build_link("tag", latest_tag))]

        return [(f"branch:{default_branch}", self.build_link("branch", default_branch))]

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def fetch_registry_config(self) -> RegistryConfigResult:
        """Try each candidate ref in order; the first parseable registry wins."""
        async with self.session():
            return await self._fetch_registry_config()

    async def _fetch_registry_config(self) -> RegistryConfigResult:
        candidates = await self.build_registry_links()
        last_error: Exception | None = None

        for attempt, (label, link) in enumerate(candidates, 1):
            logger.debug(
                "Attempting to fetch registry config",
                ref=label,
                url=link.config_link,
                attempt=attempt,
            )
            try:
                _, document = await self.fetch_yaml(link.config_link)
                chains = self._parse_registry(document, link.config_link)
            except FetchError as e:
                last_error = e
                if attempt < len(candidates):
                    logger.warning(
                        "Failed to fetch registry config, trying next ref",
                        ref=label,
                        error=str(e),
                    )
                continue

            logger.debug("Fetched registry config", ref=label, chains=len(chains))
            return RegistryConfigResult(remote_link=link, chains=chains)

        raise RegistryFetchError(
            f"failed to fetch registry config from all refs: {last_error}",
            url=candidates[-1][1].config_link if candidates else None,
        )

    @staticmethod
    def _parse_registry(document: Any, url: str) -> dict[str, list[DaoRegistryConfig]]:
        if document is None:
            return {}
        if not isinstance(document, dict):
            raise FetchError(f"registry document at {url} is not a mapping", url=url)

        # A chain key with no entries parses as None
        normalized = {str(chain): daos or [] for chain, daos in document.items()}
        try:
            return _registry_adapter.validate_python(normalized)
        except ValidationError as e:
            raise FetchError(f"invalid registry document at {url}: {e}", url=url) from e

    async def fetch_dao_config(self, config_url: str, dao_code: str) -> DaoConfigResult:
        logger.debug("Fetching DAO config", url=config_url, dao=dao_code)

        try:
            raw, document = await self.fetch_yaml(config_url)
        except FetchError as e:
            raise DaoConfigError(str(e), url=config_url, status_code=e.status_code) from e

        if not isinstance(document, dict):
            raise DaoConfigError(f"DAO config at {config_url} is not a mapping", url=config_url)

        try:
            config = DaoConfig.model_validate(document)
        except ValidationError as e:
            raise DaoConfigError(f"invalid DAO config at {config_url}: {e}", url=config_url) from e

        return DaoConfigResult(raw=raw, config=config)

    async def fetch_agent_daos(self) -> dict[str, dict[str, Any]]:
        """Agent configs keyed by DAO code."""
        url = self.config.AGENT_DAOS_URL
        if not url:
            return {}

        try:
            body = await self.fetch_text(url)
            envelope = AgentDaosResponse.model_validate_json(body)
        except FetchError as e:
            raise AgentRegistryError(f"failed to fetch agent DAOs: {e}", url=url) from e
        except ValidationError as e:
            raise AgentRegistryError(f"failed to parse agent DAOs: {e}", url=url) from e

        if envelope.code != 0:
            raise AgentRegistryError(f"agent DAOs response error: {envelope.message}", url=url)

        return envelope.configs_by_code()
