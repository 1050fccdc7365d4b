"""
Raw attribute extraction
Best-effort guesses at device attributes from product metadata. The output
is an untyped map that goes through normalize(); nothing here can fail a
preview.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, Optional

import google.generativeai as genai

from gearshelf.models import ProductMetadata
from gearshelf.standardization.schemas import ATTRIBUTE_SCHEMAS, CategoryKind
from gearshelf.standardization.normalizer import canonical_field

logger = logging.getLogger(__name__)

MOUSE_KEYWORDS = [
    'mouse', 'マウス', 'mice', 'ゲーミングマウス',
    'gaming mouse', 'wireless mouse', 'ワイヤレスマウス',
]

KEYBOARD_KEYWORDS = [
    'keyboard', 'キーボード', 'ゲーミングキーボード',
    'gaming keyboard', 'mechanical keyboard', 'メカニカルキーボード',
    'tkl', 'テンキーレス',
]

DPI_RE = re.compile(r'(\d{1,3}(?:,\d{3})+|\d+)\s*(?:dpi|cpi)', re.IGNORECASE)
WEIGHT_RE = re.compile(r'(?<![\d.])(\d+(?:\.\d+)?)\s*(?:g|grams?|グラム)(?![a-z])', re.IGNORECASE)
BUTTONS_RE = re.compile(r'(\d+)\s*(?:buttons?|ボタン|個のボタン)', re.IGNORECASE)
POLLING_RE = re.compile(r'(\d{1,3}(?:,\d{3})+|\d+)\s*hz', re.IGNORECASE)
BATTERY_RE = re.compile(r'(\d+)\s*(?:hours?|hrs?|時間)', re.IGNORECASE)

# "2.4G" / "5.8G" in wireless mouse titles are radio bands, not grams
RADIO_BANDS = {'2.4', '5', '5.8'}

LAYOUT_HINTS = [
    (('60%', 'sixty percent'), '60'),
    (('65%',), '65'),
    (('75%',), '75'),
    (('80%',), '80'),
    (('tkl', 'tenkeyless', 'テンキーレス'), 'tkl'),
    (('full size', 'full-size', 'フルサイズ'), 'full'),
]

SWITCH_HINTS = [
    (('magnetic', 'hall effect', '磁気'), 'magnetic'),
    (('optical', '光学'), 'optical'),
    (('capacitive', '静電容量'), 'capacitive'),
    (('mechanical', 'メカニカル'), 'mechanical'),
    (('membrane', 'メンブレン'), 'membrane'),
]

ARRANGEMENT_HINTS = [
    (('日本語配列', 'jis配列', 'jis layout', 'japanese layout'), 'jp'),
    (('英語配列', 'us配列', 'ansi', 'us layout'), 'us'),
    (('iso layout', 'iso配列'), 'iso'),
]


def detect_category(title: Optional[str]) -> CategoryKind:
    """
    Guess the device category from a product title.

    Mouse terms are checked first; anything unrecognised defaults to MOUSE.
    """
    lower = (title or '').lower()
    if any(keyword in lower for keyword in MOUSE_KEYWORDS):
        return CategoryKind.MOUSE
    if any(keyword in lower for keyword in KEYBOARD_KEYWORDS):
        return CategoryKind.KEYBOARD
    return CategoryKind.MOUSE


def metadata_text(metadata: ProductMetadata) -> str:
    parts = [metadata.title or '', metadata.description or '']
    parts.extend(metadata.features or [])
    return '\n'.join(part for part in parts if part)


def _first_hint(text: str, hints) -> Optional[str]:
    for keywords, value in hints:
        if any(keyword in text for keyword in keywords):
            return value
    return None


def _weight_hit(text: str) -> Optional[str]:
    for match in WEIGHT_RE.finditer(text):
        if match.group(1) not in RADIO_BANDS:
            return match.group(1)
    return None


def _connection_hint(text: str) -> Optional[str]:
    wireless = any(k in text for k in ('wireless', 'ワイヤレス', '無線', '2.4ghz', 'bluetooth'))
    wired = any(k in text for k in ('wired', '有線'))
    if wireless and wired:
        return 'both'
    if wireless:
        return 'wireless'
    if wired:
        return 'wired'
    return None


class KeywordAttributeExtractor:
    """Regex and keyword heuristics over title, description, bullets and spec tables."""

    def extract(self, metadata: ProductMetadata, category: CategoryKind) -> Dict[str, Any]:
        # Scraped spec tables first; text hits only fill gaps
        raw: Dict[str, Any] = dict(metadata.raw_specs or {})
        if metadata.brand and 'brand' not in raw:
            raw['brand'] = metadata.brand

        text = metadata_text(metadata).lower()
        hits: Dict[str, Any] = {}

        connection = _connection_hint(text)
        if connection:
            hits['connection_type'] = connection
            if 'bluetooth' in text:
                hits['bluetooth'] = True

        rates = POLLING_RE.findall(text)
        if rates:
            hits['polling_rate'] = rates

        if category is CategoryKind.MOUSE:
            dpi = DPI_RE.search(text)
            if dpi:
                hits['dpi_max'] = dpi.group(1)
            weight = _weight_hit(text)
            if weight:
                hits['weight'] = weight
            buttons = BUTTONS_RE.search(text)
            if buttons:
                hits['buttons'] = buttons.group(1)
            battery = BATTERY_RE.search(text)
            if battery:
                hits['battery_life'] = battery.group(1)
        else:
            layout = _first_hint(text, LAYOUT_HINTS)
            if layout:
                hits['layout'] = layout
            switch = _first_hint(text, SWITCH_HINTS)
            if switch:
                hits['switch_type'] = switch
            arrangement = _first_hint(text, ARRANGEMENT_HINTS)
            if arrangement:
                hits['key_arrangement'] = arrangement
            if 'rapid trigger' in text or 'ラピッドトリガー' in text:
                hits['rapid_trigger'] = True
            if 'hot swap' in text or 'hot-swap' in text or 'ホットスワップ' in text:
                hits['hot_swap'] = True

        provided = {canonical_field(category, key) for key in raw}
        for key, value in hits.items():
            if key not in provided:
                raw[key] = value
        return raw

    async def extract_async(self, metadata: ProductMetadata, category: CategoryKind) -> Dict[str, Any]:
        return self.extract(metadata, category)


def strip_code_fence(text: str) -> str:
    """Remove a ```json ... ``` wrapper around a model response."""
    text = text.strip()
    if text.startswith('```'):
        lines = text.split('\n')
        text = '\n'.join(lines[1:-1]) if len(lines) > 2 else text.strip('`')
        if text.startswith('json'):
            text = text[4:]
    return text.strip()


class GeminiAttributeExtractor:
    """
    Asks Gemini for attribute values, falling back to keyword heuristics.

    Any failure (missing key, API error, unparseable JSON) is logged and
    the keyword extractor's result is returned instead.
    """

    def __init__(self, api_key: Optional[str], model_name: str = 'gemini-2.5-flash',
                 fallback: Optional[KeywordAttributeExtractor] = None):
        self.api_key = api_key
        self.model_name = model_name
        self.fallback = fallback or KeywordAttributeExtractor()

    def build_prompt(self, metadata: ProductMetadata, category: CategoryKind) -> str:
        field_list = ', '.join(sorted(ATTRIBUTE_SCHEMAS[category].field_names()))
        specs = '\n'.join(f"- {key}: \"{value}\"" for key, value in (metadata.raw_specs or {}).items())

        return f"""You are extracting structured specifications for a gaming {category.value} from Amazon product text.

Product text:
{metadata_text(metadata)}

Spec table:
{specs or '- (none)'}

Rules:
1. Only use these snake_case keys: {field_list}
2. Numbers without units (weight in g, sizes in mm, polling_rate in Hz)
3. polling_rate may be a list of every supported rate
4. Use true/false for yes/no features
5. Omit anything the text does not state
6. Return ONLY valid JSON, no explanations"""

    def _generate(self, prompt: str) -> str:
        genai.configure(api_key=self.api_key)
        model = genai.GenerativeModel(self.model_name)
        response = model.generate_content(prompt)
        return response.text

    async def extract_async(self, metadata: ProductMetadata, category: CategoryKind) -> Dict[str, Any]:
        fallback = self.fallback.extract(metadata, category)
        if not self.api_key:
            logger.warning("GEMINI_API_KEY not set, using keyword extraction")
            return fallback

        try:
            response_text = await asyncio.to_thread(self._generate, self.build_prompt(metadata, category))
            extracted = json.loads(strip_code_fence(response_text))
        except Exception as e:
            logger.warning("Gemini extraction failed for %s: %s", metadata.identifier, str(e)[:100])
            return fallback

        if not isinstance(extracted, dict):
            logger.warning("Gemini returned %s instead of an object, using keyword extraction",
                           type(extracted).__name__)
            return fallback

        # Model output wins; heuristics fill whatever it left out
        merged = dict(fallback)
        merged.update({k: v for k, v in extracted.items() if v is not None})
        return merged
