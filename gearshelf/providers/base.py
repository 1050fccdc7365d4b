"""
Base Metadata Provider
Abstract base class that every metadata provider in the chain inherits from
"""

from abc import ABC, abstractmethod

from gearshelf.errors import ProviderUnavailable
from gearshelf.models import ProductIdentifier, ProductMetadata


class MetadataProvider(ABC):
    """
    One source of product metadata.

    Implementations raise ProviderUnavailable for every expected failure
    (unsupported identifier, quota denial, HTTP errors, unparseable
    responses) so the chain can fall through to the next provider.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Stable name used in configuration and in ProductMetadata.provider_used.

        Examples: 'pa-api', 'og-metadata'
        """
        pass

    @abstractmethod
    async def try_fetch(self, identifier: ProductIdentifier) -> ProductMetadata:
        """
        Fetch metadata for one identifier.

        Args:
            identifier: Resolved product identifier

        Returns:
            ProductMetadata with at least a title. image_url may be empty;
            the chain substitutes a placeholder.

        Raises:
            ProviderUnavailable: The provider cannot serve this identifier now
        """
        pass

    def supports(self, identifier: ProductIdentifier) -> bool:
        """
        Whether this provider can serve the identifier at all.

        Default implementation: every identifier is supported.
        """
        return True

    def unavailable(self, message: str) -> ProviderUnavailable:
        return ProviderUnavailable(self.provider_name, message)

    def matches_name(self, name: str) -> bool:
        return name.lower() == self.provider_name.lower()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.provider_name})"
