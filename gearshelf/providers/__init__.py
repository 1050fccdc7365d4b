"""
Metadata providers
Each provider implements MetadataProvider.try_fetch; the chain tries them in
priority order and falls through on ProviderUnavailable.
"""

from gearshelf.providers.base import MetadataProvider
from gearshelf.providers.chain import MetadataProviderChain, build_chain
from gearshelf.providers.og_metadata import OgMetadataProvider
from gearshelf.providers.pa_api import PaApiProvider
from gearshelf.providers.registry import ProviderRegistry

__all__ = [
    'MetadataProvider',
    'MetadataProviderChain',
    'OgMetadataProvider',
    'PaApiProvider',
    'ProviderRegistry',
    'build_chain',
]
