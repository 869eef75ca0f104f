"""
Metadata Fetcher

Looks up the latest metadata of a package: cache first, then the registry.
Every registry failure shape is classified into NetworkError, RegistryError
or ParseError before it leaves this module.
"""

import json
from typing import Any, Dict, Optional
from urllib.parse import quote

from depfetch.constants import ERROR_BODY_PREVIEW_CHARS, REGISTRY_LATEST_SUFFIX
from depfetch.exceptions import NetworkError, ParseError, RegistryError
from depfetch.log_utils import logger

from .async_client import AsyncRegistryClient, RawResponse
from .cache import MetadataCache, make_cache_key, normalize_registry
from .interfaces import PackageMetadata


def build_latest_url(registry: str, name: str) -> str:
    """Return `{registry}/{url-encoded name}/latest`; scoped names keep their '@' and '/' encoded."""
    return f"{normalize_registry(registry)}/{quote(name, safe='')}/{REGISTRY_LATEST_SUFFIX}"


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def parse_registry_response(
    response: RawResponse,
    name: Optional[str] = None,
    url: Optional[str] = None,
) -> PackageMetadata:
    """
    Classify a registry response and turn a successful one into PackageMetadata.

    Raises:
        RegistryError: Non-2xx status, or a 2xx JSON object carrying an `error` field.
        ParseError: 2xx body that is not JSON or not a valid metadata object.
    """
    if not _is_success(response.status):
        try:
            body: Any = json.loads(response.text)
        except ValueError:
            body = None

        if isinstance(body, dict):
            error = body.get("error")
            if error:
                message = str(error)
            else:
                message = f"{response.status} {response.reason or ''}".strip()
        else:
            preview = response.text.strip()[:ERROR_BODY_PREVIEW_CHARS]
            message = f"HTTP {response.status}: {preview}" if preview else f"HTTP {response.status}"
        raise RegistryError(message, status_code=response.status, name=name, url=url)

    try:
        body = json.loads(response.text)
    except ValueError as e:
        raise ParseError(
            "Invalid JSON from registry", name=name, url=url, details=str(e)
        ) from e

    if not isinstance(body, dict):
        raise ParseError(
            f"Expected a JSON object from registry, got {type(body).__name__}",
            name=name,
            url=url,
        )
    if body.get("error"):
        raise RegistryError(
            str(body["error"]), status_code=response.status, name=name, url=url
        )

    try:
        return PackageMetadata.from_dict(body)
    except ValueError as e:
        raise ParseError(
            "Invalid package metadata", name=name, url=url, details=str(e)
        ) from e


class MetadataFetcher:
    """
    Cache-first metadata lookup.

    A cache hit returns without touching the network. A miss issues one
    request (shared by concurrent callers of the same key) and writes the
    result through to the cache before returning it.
    """

    def __init__(self, client: AsyncRegistryClient, cache: MetadataCache) -> None:
        self.client = client
        self.cache = cache

    async def fetch(self, registry: str, name: str) -> PackageMetadata:
        """
        Return the latest metadata of `name` on `registry`.

        Raises:
            NetworkError: Transport failure before a response was obtained.
            RegistryError: The registry rejected the request.
            ParseError: The response body is not valid metadata.
        """
        key = make_cache_key(registry, name)

        async def _load() -> PackageMetadata:
            return await self._fetch_from_registry(registry, name)

        return await self.cache.get_or_load(key, _load)

    async def _fetch_from_registry(self, registry: str, name: str) -> PackageMetadata:
        url = build_latest_url(registry, name)
        logger.debug(f"Fetching {name}...")
        try:
            response = await self.client.get_text(url)
        except NetworkError as e:
            e.name = name
            raise
        metadata = parse_registry_response(response, name=name, url=url)
        logger.debug(f"Fetched {metadata.name}@{metadata.version}")
        return metadata

    def summary(self) -> Dict[str, int]:
        """Cache hit/miss counters for the session."""
        return {
            "cached_entries": len(self.cache),
            "cache_hits": self.cache.hits,
            "cache_misses": self.cache.misses,
        }
