"""
Attribute normalizer
Maps loosely-typed attribute fragments (form payloads, CSV rows, scraped
spec tables, LLM output) onto the typed schema of one device category.

normalize() is total: unknown keys are dropped and values that cannot be
coerced are left unset.
"""

import math
import re
import unicodedata
from functools import partial
from typing import Any, Callable, Dict, Iterable, Iterator, Optional

from gearshelf.standardization.schemas import (
    ATTRIBUTE_SCHEMAS,
    AttributeSet,
    CategoryKind,
)

# Flags where absence means "not supported"
DEFAULT_FALSE_FLAGS = {
    CategoryKind.MOUSE: {'rgb'},
    CategoryKind.KEYBOARD: {'rgb', 'rapid_trigger', 'hot_swap'},
}

CATEGORY_PREFIXES = {
    CategoryKind.MOUSE: 'mouse_',
    CategoryKind.KEYBOARD: 'keyboard_',
}

KEY_ALIASES = {
    'brand': 'manufacturer',
    'maker': 'manufacturer',
    'manufacturer_name': 'manufacturer',
    'connectivity_technology': 'connection_type',
    'connectivity': 'connection_type',
    'connection': 'connection_type',
    'interface': 'connection_type',
    'item_weight': 'weight',
    'weight_g': 'weight',
    'dpi': 'dpi_max',
    'max_dpi': 'dpi_max',
    'maximum_dpi': 'dpi_max',
    'min_dpi': 'dpi_min',
    'movement_detection_technology': 'sensor',
    'sensor_type': 'sensor',
    'number_of_buttons': 'buttons',
    'button_count': 'buttons',
    'report_rate': 'polling_rate',
    'polling_rate_hz': 'polling_rate',
    'battery': 'battery_life',
    'battery_hours': 'battery_life',
    'switch': 'switch_type',
    'switch_technology': 'switch_type',
    'keyboard_layout': 'layout',
    'form_factor': 'layout',
    'key_layout': 'key_arrangement',
    'language': 'key_arrangement',
    'hotswap': 'hot_swap',
    'hot_swappable': 'hot_swap',
    'rgb_lighting': 'rgb',
    'lighting': 'rgb',
    'rt_min': 'rapid_trigger_min',
}

CATEGORY_KEY_ALIASES = {
    CategoryKind.MOUSE: {'depth': 'length'},
    CategoryKind.KEYBOARD: {'length': 'depth'},
}

CONNECTION_TYPES = {
    'wired': 'wired',
    'usb': 'wired',
    'cable': 'wired',
    'usb c': 'wired',
    'type c': 'wired',
    '有線': 'wired',
    'wireless': 'wireless',
    '2.4ghz': 'wireless',
    '2.4 ghz': 'wireless',
    'bluetooth': 'wireless',
    '2.4ghz bluetooth': 'wireless',
    'bluetooth 2.4ghz': 'wireless',
    '無線': 'wireless',
    'ワイヤレス': 'wireless',
    'both': 'both',
    'hybrid': 'both',
    'wired wireless': 'both',
    'wireless wired': 'both',
    'usb bluetooth': 'both',
    'usb 2.4ghz': 'both',
    '有線 無線': 'both',
    '無線 有線': 'both',
    '有線 ワイヤレス': 'both',
    'ワイヤレス 有線': 'both',
}

SHAPES = {
    'symmetric': 'symmetric',
    'symmetrical': 'symmetric',
    'ambidextrous': 'symmetric',
    '左右対称': 'symmetric',
    '対称': 'symmetric',
    'シンメトリー': 'symmetric',
    'right handed': 'right_handed',
    'right': 'right_handed',
    '右手': 'right_handed',
    '右手用': 'right_handed',
    '右利き': 'right_handed',
    'left handed': 'left_handed',
    'left': 'left_handed',
    '左手': 'left_handed',
    '左手用': 'left_handed',
    '左利き': 'left_handed',
    'ergonomic': 'ergonomic',
    'エルゴノミクス': 'ergonomic',
    'エルゴノミック': 'ergonomic',
    '人間工学': 'ergonomic',
}

LAYOUTS = {
    'full': 'full',
    'full size': 'full',
    'fullsize': 'full',
    '100%': 'full',
    'フルサイズ': 'full',
    'フル': 'full',
    'tkl': 'tkl',
    'tenkeyless': 'tkl',
    'テンキーレス': 'tkl',
    '60': '60',
    '60%': '60',
    'sixty': '60',
    '65': '65',
    '65%': '65',
    'sixtyfive': '65',
    'sixty five': '65',
    '75': '75',
    '75%': '75',
    'seventyfive': '75',
    'seventy five': '75',
    '80': '80',
    '80%': '80',
    'eighty': '80',
}

KEY_ARRANGEMENTS = {
    'jp': 'jp',
    'jis': 'jp',
    'japanese': 'jp',
    '日本語': 'jp',
    '日本語配列': 'jp',
    'jis配列': 'jp',
    'us': 'us',
    'ansi': 'us',
    'english': 'us',
    'us english': 'us',
    '英語': 'us',
    '英語配列': 'us',
    'us配列': 'us',
    'iso': 'iso',
    'uk': 'iso',
    'iso配列': 'iso',
}

SWITCH_TYPES = {
    'mechanical': 'mechanical',
    'メカニカル': 'mechanical',
    'magnetic': 'magnetic',
    'hall effect': 'magnetic',
    'magnetic hall effect': 'magnetic',
    '磁気': 'magnetic',
    '磁気式': 'magnetic',
    'ホールエフェクト': 'magnetic',
    'optical': 'optical',
    '光学': 'optical',
    '光学式': 'optical',
    'オプティカル': 'optical',
    'capacitive': 'capacitive',
    'topre': 'capacitive',
    '静電容量': 'capacitive',
    '静電容量無接点': 'capacitive',
    'membrane': 'membrane',
    'メンブレン': 'membrane',
}

TRUE_VALUES = {'true', 'yes', 'y', '1', 'on', '対応', 'あり', '有り'}
FALSE_VALUES = {'false', 'no', 'n', '0', 'off', '非対応', 'なし', '無し'}

WEIGHT_UNITS = {'kg': 1000.0, 'g': 1.0}
LENGTH_UNITS = {'cm': 10.0, 'mm': 1.0}

NUMBER_RE = re.compile(r'-?\d+(?:\.\d+)?')
THOUSANDS_RE = re.compile(r'(?<=\d),(?=\d{3}(?!\d))')
RATE_SPLIT_RE = re.compile(r'[/|;、]|,\s+')
ENUM_SEPARATORS_RE = re.compile(r'[\s_\-・/,&+＆]+')
CAMEL_RE = re.compile(r'(?<=[a-z0-9])([A-Z])')


def normalize_key(key: Any) -> str:
    """'dpiMax' / 'DPI Max' / 'dpi-max' -> 'dpi_max'."""
    text = CAMEL_RE.sub(r'_\1', str(key).strip())
    text = re.sub(r'[^\w]+', '_', text.lower())
    return text.strip('_')


def _text(value: Any) -> str:
    return unicodedata.normalize('NFKC', value).strip()


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a number from a number or a string with units/thousands separators.

    Booleans are not numbers here; NaN and infinities are rejected.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        match = NUMBER_RE.search(THOUSANDS_RE.sub('', _text(value)))
        if not match:
            return None
        number = float(match.group(0))
    else:
        return None
    return number if math.isfinite(number) else None


def _last_scalar(value: Any) -> Any:
    """Lists offered for scalar fields keep their last usable element."""
    if isinstance(value, (list, tuple)):
        for item in reversed(value):
            if item is not None and item != '':
                return item
        return None
    return value


def _measure(value: Any, units: Optional[Dict[str, float]]) -> Optional[float]:
    number = parse_number(value)
    if number is None or not units or not isinstance(value, str):
        return number
    unit_text = _text(value).lower()
    for unit, factor in units.items():
        if re.search(rf'\d\s*{unit}\b', unit_text):
            return number * factor
    return number


def coerce_int(value: Any, low: float, high: float) -> Optional[int]:
    for candidate in _candidates(value):
        number = parse_number(candidate)
        if number is not None and low <= number <= high:
            return int(round(number))
    return None


def coerce_float(value: Any, low: float, high: float,
                 units: Optional[Dict[str, float]] = None) -> Optional[float]:
    for candidate in _candidates(value):
        number = _measure(candidate, units)
        if number is not None and low <= number <= high:
            return round(number, 3)
    return None


def _candidates(value: Any) -> Iterable[Any]:
    # Last parseable element of a list wins
    if isinstance(value, (list, tuple)):
        return list(reversed(value))
    return [value]


def _rate_candidates(value: Any) -> Iterator[float]:
    if isinstance(value, (list, tuple, set)):
        for item in value:
            yield from _rate_candidates(item)
        return

    if not isinstance(value, str):
        number = parse_number(value)
        if number is not None:
            yield number
        return

    for token in RATE_SPLIT_RE.split(_text(value)):
        number = parse_number(token)
        if number is not None:
            yield number
        # "125,500,1000" without spaces reads as one huge number above;
        # its comma-separated parts are offered too
        if ',' in token:
            for part in token.split(','):
                number = parse_number(part)
                if number is not None:
                    yield number


def coerce_polling_rate(value: Any, low: float = 1, high: float = 16000) -> Optional[int]:
    """Highest plausible rate among everything offered."""
    rates = [rate for rate in _rate_candidates(value) if low <= rate <= high]
    if not rates:
        return None
    return int(max(rates))


def coerce_bool(value: Any) -> Optional[bool]:
    value = _last_scalar(value)
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = _text(value).lower()
        if text in TRUE_VALUES:
            return True
        if text in FALSE_VALUES:
            return False
    return None


def enum_key(text: str) -> str:
    return ENUM_SEPARATORS_RE.sub(' ', _text(text).lower()).strip()


def coerce_enum(value: Any, table: Dict[str, str]) -> Optional[str]:
    value = _last_scalar(value)
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        # Enum codes are short; huge ints would not fit a float or a table key
        value = str(value) if abs(value) < 10 ** 6 else None
    elif isinstance(value, float):
        value = str(int(value)) if value.is_integer() else str(value)
    if not isinstance(value, str):
        return None
    text = _text(value).lower()
    return table.get(text) or table.get(enum_key(text))


def coerce_text(value: Any, max_length: int = 100) -> Optional[str]:
    value = _last_scalar(value)
    if not isinstance(value, str):
        return None
    text = re.sub(r'\s+', ' ', value).strip()
    if not text or len(text) > max_length:
        return None
    return text


Coercer = Callable[[Any], Any]

_COMMON_FIELDS: Dict[str, Coercer] = {
    'manufacturer': coerce_text,
    'weight': partial(coerce_float, low=1, high=5000, units=WEIGHT_UNITS),
    'height': partial(coerce_float, low=1, high=1000, units=LENGTH_UNITS),
    'width': partial(coerce_float, low=1, high=1000, units=LENGTH_UNITS),
    'polling_rate': coerce_polling_rate,
    'connection_type': partial(coerce_enum, table=CONNECTION_TYPES),
    'rgb': coerce_bool,
    'software': coerce_text,
}

FIELD_COERCERS: Dict[CategoryKind, Dict[str, Coercer]] = {
    CategoryKind.MOUSE: {
        **_COMMON_FIELDS,
        'dpi_min': partial(coerce_int, low=50, high=100000),
        'dpi_max': partial(coerce_int, low=50, high=100000),
        'length': partial(coerce_float, low=1, high=1000, units=LENGTH_UNITS),
        'buttons': partial(coerce_int, low=1, high=50),
        'battery_life': partial(coerce_int, low=1, high=10000),
        'sensor': coerce_text,
        'shape': partial(coerce_enum, table=SHAPES),
        'bluetooth': coerce_bool,
        'onboard_memory': coerce_bool,
        'wireless_charging': coerce_bool,
    },
    CategoryKind.KEYBOARD: {
        **_COMMON_FIELDS,
        'layout': partial(coerce_enum, table=LAYOUTS),
        'key_arrangement': partial(coerce_enum, table=KEY_ARRANGEMENTS),
        'depth': partial(coerce_float, low=1, high=1000, units=LENGTH_UNITS),
        'switch_type': partial(coerce_enum, table=SWITCH_TYPES),
        'key_stroke': partial(coerce_float, low=0.1, high=10),
        'actuation_point': partial(coerce_float, low=0.01, high=10),
        'rapid_trigger': coerce_bool,
        'rapid_trigger_min': partial(coerce_float, low=0.001, high=5),
        'keycaps': coerce_text,
        'hot_swap': coerce_bool,
    },
}


def canonical_field(category: CategoryKind, key: Any) -> Optional[str]:
    """
    Map a raw key onto a schema field name of the category.

    Returns:
        Field name, or None when the key is unknown or belongs to another category
    """
    name = normalize_key(key)
    for other, prefix in CATEGORY_PREFIXES.items():
        if name.startswith(prefix):
            if other is not category:
                return None
            name = name[len(prefix):]
            break

    name = CATEGORY_KEY_ALIASES[category].get(name, name)
    name = KEY_ALIASES.get(name, name)
    return name if name in FIELD_COERCERS[category] else None


def normalize(category, raw: Optional[Dict[str, Any]]) -> AttributeSet:
    """
    Normalize a raw attribute map into the category's AttributeSet.

    Args:
        category: CategoryKind (or its string value)
        raw: Arbitrary key/value fragments; None or non-dict is treated as empty

    Returns:
        AttributeSet variant for the category. Fields that were absent or
        unparseable stay None, except the category's default-false flags.

    Example:
        >>> normalize(CategoryKind.MOUSE, {'pollingRate': [125, 500, 1000, 8000]}).polling_rate
        8000
    """
    category = CategoryKind.parse(category)
    coercers = FIELD_COERCERS[category]
    values: Dict[str, Any] = {}

    if isinstance(raw, dict):
        # Exact field names are applied last so they win over aliases
        items = sorted(raw.items(), key=lambda item: normalize_key(item[0]) in coercers)
        for key, value in items:
            field_name = canonical_field(category, key)
            if field_name is None:
                continue
            coerced = coercers[field_name](value)
            if coerced is not None:
                values[field_name] = coerced

    for flag in DEFAULT_FALSE_FLAGS[category]:
        if values.get(flag) is None:
            values[flag] = False

    return ATTRIBUTE_SCHEMAS[category](**values)


def merge_missing(existing: Dict[str, Any], fresh: AttributeSet) -> Dict[str, Any]:
    """
    Fill attributes the existing map lacks from a freshly normalized set.

    Existing values are kept as-is, including curated False flags.
    """
    merged = dict(existing or {})
    for name, value in fresh.to_dict().items():
        if merged.get(name) is None:
            merged[name] = value
    return merged
