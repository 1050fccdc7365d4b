"""Tests for category detection and raw attribute extraction."""

import pytest

from gearshelf.models import ProductIdentifier, ProductMetadata
from gearshelf.standardization.extractor import (
    GeminiAttributeExtractor,
    KeywordAttributeExtractor,
    detect_category,
    strip_code_fence,
)
from gearshelf.standardization.normalizer import normalize
from gearshelf.standardization.schemas import CategoryKind


def metadata(title, description=None, features=None, raw_specs=None, brand=None):
    return ProductMetadata(
        identifier=ProductIdentifier('B0TESTASIN'),
        title=title,
        image_url='https://m.media-amazon.com/images/I/x.jpg',
        description=description,
        features=features or [],
        raw_specs=raw_specs or {},
        brand=brand,
    )


@pytest.mark.parametrize("title, expected", [
    ('Logicool G PRO X SUPERLIGHT ゲーミングマウス', CategoryKind.MOUSE),
    ('Razer Viper V3 Pro Wireless Gaming Mouse', CategoryKind.MOUSE),
    ('Wooting 60HE+ ゲーミングキーボード', CategoryKind.KEYBOARD),
    ('REALFORCE R3 テンキーレス', CategoryKind.KEYBOARD),
    ('Mechanical Keyboard TKL', CategoryKind.KEYBOARD),
    ('USB ハブ 4ポート', CategoryKind.MOUSE),
    ('', CategoryKind.MOUSE),
])
def test_detect_category(title, expected):
    assert detect_category(title) == expected


def test_mouse_heuristics():
    raw = KeywordAttributeExtractor().extract(metadata(
        'Logicool G PRO X SUPERLIGHT ワイヤレス ゲーミングマウス',
        description='HERO 25K sensor, 25,600 DPI, 63g',
        features=['5 buttons', 'LIGHTSPEED 1000Hz', '最大70時間のバッテリー'],
    ), CategoryKind.MOUSE)

    attributes = normalize(CategoryKind.MOUSE, raw)

    assert attributes.dpi_max == 25600
    assert attributes.weight == 63.0
    assert attributes.buttons == 5
    assert attributes.polling_rate == 1000
    assert attributes.battery_life == 70
    assert attributes.connection_type == 'wireless'


@pytest.mark.parametrize("title, expected", [
    ('Logicool G304 2.4G ワイヤレス ゲーミングマウス 99g', 99.0),
    ('2.4GHz Wireless Gaming Mouse 58 grams', 58.0),
    ('5.8G 無線 ゲーミングマウス 軽量 49g', 49.0),
    ('Logicool G304 2.4G ワイヤレス ゲーミングマウス', None),
])
def test_radio_band_is_not_a_weight(title, expected):
    raw = KeywordAttributeExtractor().extract(metadata(title), CategoryKind.MOUSE)

    attributes = normalize(CategoryKind.MOUSE, raw)

    assert attributes.weight == expected
    assert attributes.connection_type == 'wireless'


def test_keyboard_heuristics():
    raw = KeywordAttributeExtractor().extract(metadata(
        'Wooting 60HE+ 60% 磁気スイッチ ゲーミングキーボード 有線',
        features=['Rapid Trigger 対応', '8000Hz polling', 'ホットスワップ対応', '英語配列'],
    ), CategoryKind.KEYBOARD)

    attributes = normalize(CategoryKind.KEYBOARD, raw)

    assert attributes.layout == '60'
    assert attributes.switch_type == 'magnetic'
    assert attributes.rapid_trigger is True
    assert attributes.hot_swap is True
    assert attributes.polling_rate == 8000
    assert attributes.key_arrangement == 'us'
    assert attributes.connection_type == 'wired'


def test_spec_table_wins_over_text_hits():
    raw = KeywordAttributeExtractor().extract(metadata(
        'Some wireless mouse',
        raw_specs={'connectivity_technology': 'USB', 'brand': 'Razer'},
        brand='Ignored Brand',
    ), CategoryKind.MOUSE)

    attributes = normalize(CategoryKind.MOUSE, raw)

    assert attributes.manufacturer == 'Razer'
    assert attributes.connection_type == 'wired'


def test_extracts_nothing_from_bare_title():
    raw = KeywordAttributeExtractor().extract(metadata('Mouse'), CategoryKind.MOUSE)
    assert raw == {}


def test_strip_code_fence():
    assert strip_code_fence('```json\n{"dpi_max": 26000}\n```') == '{"dpi_max": 26000}'
    assert strip_code_fence('{"a": 1}') == '{"a": 1}'


@pytest.mark.asyncio
async def test_gemini_without_key_uses_keyword_extraction():
    extractor = GeminiAttributeExtractor(api_key=None)

    raw = await extractor.extract_async(metadata('Wireless mouse 26,000 DPI'), CategoryKind.MOUSE)

    assert raw['dpi_max'] == '26,000'
    assert raw['connection_type'] == 'wireless'


@pytest.mark.asyncio
async def test_gemini_output_merged_over_heuristics(monkeypatch):
    extractor = GeminiAttributeExtractor(api_key='test-key')
    monkeypatch.setattr(extractor, '_generate', lambda prompt: '```json\n{"dpi_max": 30000, "sensor": "Focus Pro"}\n```')

    raw = await extractor.extract_async(metadata('Wireless mouse 26,000 DPI'), CategoryKind.MOUSE)

    assert raw['dpi_max'] == 30000
    assert raw['sensor'] == 'Focus Pro'
    assert raw['connection_type'] == 'wireless'


@pytest.mark.asyncio
async def test_gemini_failure_falls_back(monkeypatch):
    extractor = GeminiAttributeExtractor(api_key='test-key')

    def boom(prompt):
        raise RuntimeError('quota')

    monkeypatch.setattr(extractor, '_generate', boom)

    raw = await extractor.extract_async(metadata('Wired mouse'), CategoryKind.MOUSE)

    assert raw == {'connection_type': 'wired'}


@pytest.mark.asyncio
async def test_gemini_non_object_falls_back(monkeypatch):
    extractor = GeminiAttributeExtractor(api_key='test-key')
    monkeypatch.setattr(extractor, '_generate', lambda prompt: '["not", "an", "object"]')

    raw = await extractor.extract_async(metadata('Wired mouse'), CategoryKind.MOUSE)

    assert raw == {'connection_type': 'wired'}


def test_gemini_prompt_lists_schema_fields():
    prompt = GeminiAttributeExtractor(api_key='k').build_prompt(metadata('Keyboard'), CategoryKind.KEYBOARD)
    assert 'rapid_trigger' in prompt
    assert 'dpi_max' not in prompt
