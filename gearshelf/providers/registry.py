"""
Metadata Provider Registry
Manages registration and priority ordering of metadata providers
"""

import logging
from typing import Dict, List, Optional

from gearshelf.providers.base import MetadataProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Registry for all available metadata providers.
    Provides lookup by name and the priority-ordered list the chain iterates.
    """

    def __init__(self):
        """Initialize empty registry"""
        self._providers: Dict[str, MetadataProvider] = {}

    def register(self, provider: MetadataProvider) -> None:
        """
        Register a metadata provider.

        Raises:
            ValueError: If a provider with this name is already registered
        """
        name = provider.provider_name.lower()

        if name in self._providers:
            raise ValueError(f"Provider '{provider.provider_name}' is already registered")

        self._providers[name] = provider

    def get_by_name(self, name: str) -> Optional[MetadataProvider]:
        """Get provider by name (case-insensitive)."""
        return self._providers.get(name.lower())

    def ordered(self, priority_order: List[str], enabled: Optional[Dict[str, bool]] = None) -> List[MetadataProvider]:
        """
        Providers in priority order.

        Args:
            priority_order: Provider names, highest priority first
            enabled: Optional name -> enabled flag; names mapped to False are skipped

        Returns:
            List of providers. Registered providers missing from
            priority_order are not included.
        """
        ordered = []
        for name in priority_order:
            provider = self.get_by_name(name)
            if provider is None:
                logger.warning("Provider '%s' in priority order is not registered", name)
                continue
            if enabled is not None and not enabled.get(provider.provider_name, False):
                logger.info("Provider '%s' is disabled", provider.provider_name)
                continue
            ordered.append(provider)
        return ordered

    def get_provider_names(self) -> List[str]:
        return [provider.provider_name for provider in self._providers.values()]

    def is_registered(self, name: str) -> bool:
        return name.lower() in self._providers

    def count(self) -> int:
        return len(self._providers)

    def __repr__(self) -> str:
        providers = ', '.join(self.get_provider_names())
        return f"ProviderRegistry({self.count()} providers: {providers})"
