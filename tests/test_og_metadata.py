"""Tests for the page metadata provider."""

import pytest

from conftest import CANONICAL_URL, IMAGE_URL, SAMPLE_PRODUCT_HTML, FakeTransport
from gearshelf.errors import ProviderUnavailable, TransportError
from gearshelf.providers.og_metadata import OgMetadataProvider, clean_title, parse_price, spec_key
from gearshelf.utils.http import HttpResponse


def page(html, status=200):
    return HttpResponse(status=status, url=CANONICAL_URL, text=html)


@pytest.mark.asyncio
async def test_parses_product_page(identifier):
    provider = OgMetadataProvider(FakeTransport({CANONICAL_URL: page(SAMPLE_PRODUCT_HTML)}))

    metadata = await provider.try_fetch(identifier)

    assert metadata.title == 'Logicool G PRO X SUPERLIGHT ワイヤレス ゲーミングマウス'
    assert metadata.image_url == IMAGE_URL
    assert metadata.description == '超軽量63g未満のワイヤレスゲーミングマウス'
    assert metadata.price == 16800.0
    assert metadata.brand == 'Logicool G'
    assert metadata.provider_used == 'og-metadata'
    assert len(metadata.features) == 3
    assert metadata.raw_specs['connectivity_technology'] == 'Wireless'
    assert metadata.raw_specs['item_weight'] == '63 Grams'


@pytest.mark.asyncio
async def test_falls_back_to_product_title_and_landing_image(identifier):
    html = """
    <html><head><title>Amazon.co.jp</title></head><body>
      <span id="productTitle">  Wooting 60HE+  </span>
      <img id="landingImage" src="data:image/gif;base64,R0lGOD" data-old-hires="https://m.media-amazon.com/images/I/wooting.jpg"/>
      <span class="a-price-whole">29,800</span>
    </body></html>
    """
    metadata = await OgMetadataProvider(FakeTransport({CANONICAL_URL: page(html)})).try_fetch(identifier)

    assert metadata.title == 'Wooting 60HE+'
    assert metadata.image_url == 'https://m.media-amazon.com/images/I/wooting.jpg'
    assert metadata.price == 29800.0


@pytest.mark.asyncio
async def test_page_without_title_is_unavailable(identifier):
    provider = OgMetadataProvider(FakeTransport({CANONICAL_URL: page('<html><body></body></html>')}))

    with pytest.raises(ProviderUnavailable, match='no product metadata found'):
        await provider.try_fetch(identifier)


ROBOT_CHECK_HTML = """
<html><head><title>Amazon.co.jp</title></head><body>
  <h4>Enter the characters you see below</h4>
  <form method="get" action="/errors/validateCaptcha" name="">
    <input type="text" id="captchacharacters" name="field-keywords">
  </form>
</body></html>
"""


@pytest.mark.asyncio
async def test_robot_check_page_is_unavailable(identifier):
    provider = OgMetadataProvider(FakeTransport({CANONICAL_URL: page(ROBOT_CHECK_HTML)}))

    with pytest.raises(ProviderUnavailable, match='robot check'):
        await provider.try_fetch(identifier)


@pytest.mark.parametrize("title", ['Amazon.co.jp', 'Amazon.com', 'Amazon', 'Amazon.co.jp: ', 'Robot Check'])
def test_storefront_only_title_is_unavailable(identifier, title):
    provider = OgMetadataProvider(FakeTransport())

    with pytest.raises(ProviderUnavailable, match='no product metadata found'):
        provider.parse_page(identifier, f'<html><head><title>{title}</title></head><body></body></html>')


@pytest.mark.asyncio
async def test_http_error_is_unavailable(identifier):
    provider = OgMetadataProvider(FakeTransport({CANONICAL_URL: page('blocked', status=503)}))

    with pytest.raises(ProviderUnavailable, match='HTTP 503'):
        await provider.try_fetch(identifier)


@pytest.mark.asyncio
async def test_transport_error_is_unavailable(identifier):
    provider = OgMetadataProvider(FakeTransport({CANONICAL_URL: TransportError('timed out after 10s')}))

    with pytest.raises(ProviderUnavailable) as exc_info:
        await provider.try_fetch(identifier)

    assert exc_info.value.provider == 'og-metadata'


@pytest.mark.parametrize("raw, expected", [
    ('Razer Viper V3 Pro | Amazon.co.jp', 'Razer Viper V3 Pro'),
    ('Amazon.co.jp: Razer Viper V3 Pro', 'Razer Viper V3 Pro'),
    ('【Amazon.co.jp限定】 Razer Viper V3 Pro 【日本正規代理店保証品】', 'Razer Viper V3 Pro'),
    ('Razer Viper V3 Pro', 'Razer Viper V3 Pro'),
])
def test_clean_title(raw, expected):
    assert clean_title(raw) == expected


def test_parse_price_and_spec_key():
    assert parse_price('￥1,234') == 1234.0
    assert parse_price('$59.99') == 59.99
    assert parse_price('n/a') is None
    assert spec_key(' Connectivity Technology ') == 'connectivity_technology'
