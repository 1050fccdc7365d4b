"""
Attribute standardization
Typed per-category schemas, the normalizer that fills them, and the
best-effort extractors that feed it from product metadata.
"""

from gearshelf.standardization.schemas import (
    ATTRIBUTE_SCHEMAS,
    AttributeSet,
    CategoryKind,
    InputDeviceAttributes,
    PointingDeviceAttributes,
)
from gearshelf.standardization.normalizer import normalize

__all__ = [
    'ATTRIBUTE_SCHEMAS',
    'AttributeSet',
    'CategoryKind',
    'InputDeviceAttributes',
    'PointingDeviceAttributes',
    'normalize',
]
