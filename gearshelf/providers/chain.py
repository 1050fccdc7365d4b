"""
Metadata Provider Chain
Tries providers strictly in priority order and returns the first success
"""

import asyncio
import logging
from dataclasses import replace
from typing import List, Optional, Tuple

from gearshelf.config import PLACEHOLDER_IMAGE
from gearshelf.errors import AllProvidersFailed, ProviderUnavailable
from gearshelf.models import ProductIdentifier, ProductMetadata
from gearshelf.providers.base import MetadataProvider

logger = logging.getLogger(__name__)


class MetadataProviderChain:
    """
    Ordered fallback over MetadataProviders.

    - The first success short-circuits.
    - Only ProviderUnavailable (including timeouts) moves on to the next
      provider; anything else is a bug and propagates.
    - No caching: every fetch hits the providers.
    """

    def __init__(
        self,
        providers: List[MetadataProvider],
        placeholder_image: str = PLACEHOLDER_IMAGE,
        provider_timeout: Optional[float] = 15.0,
    ):
        self.providers = list(providers)
        self.placeholder_image = placeholder_image
        self.provider_timeout = provider_timeout

    async def fetch(self, identifier: ProductIdentifier) -> ProductMetadata:
        """
        Args:
            identifier: Resolved product identifier

        Returns:
            ProductMetadata with non-empty title and image_url, tagged with
            the provider that produced it

        Raises:
            AllProvidersFailed: Every provider was unavailable
        """
        failures: List[Tuple[str, ProviderUnavailable]] = []

        for provider in self.providers:
            try:
                metadata = await self._try_provider(provider, identifier)
            except ProviderUnavailable as e:
                logger.warning("Provider %s unavailable for %s: %s", provider.provider_name, identifier, e.message)
                failures.append((provider.provider_name, e))
                continue

            if failures:
                logger.info("Fetched %s via fallback provider %s", identifier, provider.provider_name)
            return self._finalize(metadata, identifier, provider)

        raise AllProvidersFailed(failures)

    async def _try_provider(self, provider: MetadataProvider, identifier: ProductIdentifier) -> ProductMetadata:
        if not provider.supports(identifier):
            raise provider.unavailable(f"unsupported identifier {identifier.asin} (amazon.{identifier.locale})")

        try:
            metadata = await asyncio.wait_for(provider.try_fetch(identifier), timeout=self.provider_timeout)
        except asyncio.TimeoutError as e:
            raise provider.unavailable(f"timed out after {self.provider_timeout}s") from e

        if not (metadata.title or '').strip():
            raise provider.unavailable('empty title')
        return metadata

    def _finalize(self, metadata: ProductMetadata, identifier: ProductIdentifier,
                  provider: MetadataProvider) -> ProductMetadata:
        return replace(
            metadata,
            identifier=identifier,
            title=metadata.title.strip(),
            image_url=(metadata.image_url or '').strip() or self.placeholder_image,
            provider_used=provider.provider_name,
        )

    @property
    def provider_names(self) -> List[str]:
        return [provider.provider_name for provider in self.providers]

    def __repr__(self) -> str:
        return f"MetadataProviderChain({' -> '.join(self.provider_names)})"


def build_chain(registry, config) -> MetadataProviderChain:
    """
    Chain over the registry's providers in configured priority order.

    Args:
        registry: ProviderRegistry with every available provider
        config: PipelineConfig supplying priority, enabled flags and timeouts
    """
    enabled = {name: config.provider_enabled(name) for name in registry.get_provider_names()}
    providers = registry.ordered(config.provider_priority, enabled)
    return MetadataProviderChain(
        providers,
        placeholder_image=config.placeholder_image,
        provider_timeout=config.provider_timeout_seconds,
    )
