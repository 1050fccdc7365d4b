"""
Category attribute schemas
Tagged union of typed attribute sets, one variant per device category.
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Union


class CategoryKind(Enum):
    """Device categories with a fixed attribute schema."""

    MOUSE = 'mouse'
    KEYBOARD = 'keyboard'

    @classmethod
    def parse(cls, value: Union['CategoryKind', str]) -> 'CategoryKind':
        """
        Accept an enum member or its value/name in any case.

        Raises:
            ValueError: If the value names no known category
        """
        if isinstance(value, cls):
            return value
        text = str(value or '').strip().lower()
        for member in cls:
            if text in (member.value, member.name.lower()):
                return member
        raise ValueError(f"Unknown device category '{value}'")


@dataclass
class AttributeSet:
    """
    Base of the attribute tagged union.

    None means "unset". Only the normalizer's defaulted flags are ever
    filled in without input.
    """

    category: ClassVar[CategoryKind]

    def to_dict(self) -> Dict[str, Any]:
        """Set fields only, suitable for JSON storage."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'AttributeSet':
        """Rebuild this variant from stored data, re-applying normalization."""
        from gearshelf.standardization.normalizer import normalize
        return normalize(cls.category, data)

    @classmethod
    def field_names(cls) -> set:
        return {f.name for f in fields(cls)}


@dataclass
class PointingDeviceAttributes(AttributeSet):
    category: ClassVar[CategoryKind] = CategoryKind.MOUSE

    manufacturer: Optional[str] = None
    dpi_min: Optional[int] = None
    dpi_max: Optional[int] = None
    weight: Optional[float] = None          # g
    length: Optional[float] = None          # mm
    width: Optional[float] = None           # mm
    height: Optional[float] = None          # mm
    buttons: Optional[int] = None
    polling_rate: Optional[int] = None      # Hz, highest supported rate
    battery_life: Optional[int] = None      # hours
    sensor: Optional[str] = None
    connection_type: Optional[str] = None   # wired | wireless | both
    shape: Optional[str] = None             # symmetric | right_handed | left_handed | ergonomic
    bluetooth: Optional[bool] = None
    onboard_memory: Optional[bool] = None
    wireless_charging: Optional[bool] = None
    rgb: Optional[bool] = None
    software: Optional[str] = None


@dataclass
class InputDeviceAttributes(AttributeSet):
    category: ClassVar[CategoryKind] = CategoryKind.KEYBOARD

    manufacturer: Optional[str] = None
    layout: Optional[str] = None            # full | tkl | 60 | 65 | 75 | 80
    key_arrangement: Optional[str] = None   # jp | us | iso
    width: Optional[float] = None           # mm
    depth: Optional[float] = None           # mm
    height: Optional[float] = None          # mm
    weight: Optional[float] = None          # g
    polling_rate: Optional[int] = None      # Hz, highest supported rate
    switch_type: Optional[str] = None       # mechanical | magnetic | optical | capacitive | membrane
    key_stroke: Optional[float] = None      # mm
    actuation_point: Optional[float] = None # mm
    rapid_trigger: Optional[bool] = None
    rapid_trigger_min: Optional[float] = None  # mm
    connection_type: Optional[str] = None
    rgb: Optional[bool] = None
    software: Optional[str] = None
    keycaps: Optional[str] = None
    hot_swap: Optional[bool] = None


ATTRIBUTE_SCHEMAS = {
    CategoryKind.MOUSE: PointingDeviceAttributes,
    CategoryKind.KEYBOARD: InputDeviceAttributes,
}
