from __future__ import annotations

import asyncio
import json
import logging
from functools import lru_cache
from importlib import resources
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

import httpx

from ..config import DEFAULT_NAMESPACE_PREFIX, IngestionConfig
from .errors import FormatError, IngestionIOError

logger = logging.getLogger(__name__)


class DescriptorFetcher(Protocol):
    async def fetch(self) -> str:
        ...


class BundledDescriptorFetcher:
    """
    Reads the built-in component catalog shipped inside the package.
    """

    def __init__(self, resource_name: str = "simple_components.json"):
        self.resource_name = resource_name

    async def fetch(self) -> str:
        try:
            return await asyncio.to_thread(self._read)
        except OSError as exc:
            raise IngestionIOError(f"Cannot read bundled catalog {self.resource_name}: {exc}") from exc

    def _read(self) -> str:
        resource = resources.files(__package__).joinpath("resources").joinpath(self.resource_name)
        return resource.read_text(encoding="utf-8")


class HttpDescriptorFetcher:
    def __init__(self, url: str, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def fetch(self) -> str:
        try:
            if self._client is not None:
                response = await self._client.get(self.url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    response = await client.get(self.url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise IngestionIOError(f"Cannot fetch descriptor catalog {self.url}: {exc}") from exc
        return response.text


class DescriptorCatalog:
    """
    Table of built-in component descriptors keyed by fully-qualified runtime
    type name (``<namespace_prefix>.<Type>``).

    The catalog is fetched on the first ``get()``. Callers that arrive while
    that fetch is pending await the same task, so the resource is fetched
    once. A successful load is kept for the life of the object and never
    refreshed; a failed load is not kept, the next ``get()`` tries again.
    """

    def __init__(self, fetcher: DescriptorFetcher, namespace_prefix: str = DEFAULT_NAMESPACE_PREFIX):
        self.fetcher = fetcher
        self.namespace_prefix = namespace_prefix
        self._descriptors: Optional[Tuple[Dict[str, Any], ...]] = None
        self._by_type: Mapping[str, Dict[str, Any]] = MappingProxyType({})
        self._inflight: Optional[asyncio.Future] = None

    @property
    def loaded(self) -> bool:
        return self._descriptors is not None

    async def get(self) -> Tuple[Dict[str, Any], ...]:
        if self._descriptors is not None:
            return self._descriptors
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._load())
        inflight = self._inflight
        try:
            return await asyncio.shield(inflight)
        finally:
            if inflight.done() and self._inflight is inflight:
                self._inflight = None

    async def _load(self) -> Tuple[Dict[str, Any], ...]:
        text = await self.fetcher.fetch()
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise FormatError(f"Descriptor catalog is not valid JSON: {exc}") from exc
        if not isinstance(data, list):
            raise FormatError("Descriptor catalog must be a JSON array")

        descriptors = tuple(d for d in data if isinstance(d, dict))
        self._by_type = MappingProxyType({d["type"]: d for d in descriptors if "type" in d})
        self._descriptors = descriptors
        logger.info("Loaded %d built-in component descriptors", len(descriptors))
        return descriptors

    def find(self, qualified_type_name: str) -> Optional[Dict[str, Any]]:
        return self._by_type.get(qualified_type_name)

    def qualified_name(self, component_type: str) -> str:
        return f"{self.namespace_prefix}.{component_type}"

    async def lookup(self, component_type: str) -> Optional[Dict[str, Any]]:
        await self.get()
        return self.find(self.qualified_name(component_type))


def build_catalog(config: IngestionConfig) -> DescriptorCatalog:
    if config.descriptor_url:
        fetcher: DescriptorFetcher = HttpDescriptorFetcher(config.descriptor_url, timeout=config.http_timeout)
    else:
        fetcher = BundledDescriptorFetcher()
    return DescriptorCatalog(fetcher, namespace_prefix=config.namespace_prefix)


@lru_cache(maxsize=1)
def get_default_catalog() -> DescriptorCatalog:
    """
    Process-wide catalog, configured from the environment on first use.
    """
    return build_catalog(IngestionConfig.from_env())
