from gearshelf.identity.resolver import (
    IdentifierResolver,
    add_associate_tag,
    extract_asin,
    is_supported_url,
)

__all__ = [
    'IdentifierResolver',
    'add_associate_tag',
    'extract_asin',
    'is_supported_url',
]
