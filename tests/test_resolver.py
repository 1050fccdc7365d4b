"""Tests for the Amazon identifier resolver and redirect walker."""

import pytest

from conftest import ASIN, FakeTransport, redirect
from gearshelf.errors import InvalidProductUrl, TransportError, UnresolvableLink
from gearshelf.identity.resolver import (
    IdentifierResolver,
    add_associate_tag,
    extract_asin,
    is_supported_url,
    storefront_locale,
    strip_associate_tag,
)
from gearshelf.models import ProductIdentifier
from gearshelf.utils.http import HttpResponse


@pytest.mark.parametrize("url", [
    f"https://www.amazon.co.jp/dp/{ASIN}",
    f"https://www.amazon.co.jp/dp/{ASIN}/",
    f"https://www.amazon.co.jp/dp/{ASIN}?ref_=ast_sto_dp&th=1&psc=1",
    f"https://www.amazon.co.jp/Logicool-G-SUPERLIGHT/dp/{ASIN}/ref=sr_1_3?keywords=mouse",
    f"https://amazon.co.jp/gp/product/{ASIN}",
    f"https://www.amazon.co.jp/exec/obidos/ASIN/{ASIN}",
    f"https://www.amazon.co.jp/o/ASIN/{ASIN}",
    f"https://www.amazon.co.jp/gp/aw/d/{ASIN}",
    f"https://www.amazon.co.jp/dp/{ASIN.lower()}",
    f"https://www.amazon.co.jp/s?ASIN={ASIN}",
])
@pytest.mark.asyncio
async def test_url_variants_resolve_to_same_identifier(url):
    resolver = IdentifierResolver(FakeTransport())

    identifier = await resolver.resolve(url)

    assert identifier == ProductIdentifier(ASIN)
    assert identifier.asin == ASIN
    assert identifier.locale == 'co.jp'


@pytest.mark.asyncio
async def test_locale_hint_does_not_change_identity():
    resolver = IdentifierResolver(FakeTransport())

    jp = await resolver.resolve(f"https://www.amazon.co.jp/dp/{ASIN}")
    us = await resolver.resolve(f"https://smile.amazon.com/dp/{ASIN}")

    assert jp == us
    assert hash(jp) == hash(us)
    assert (jp.locale, us.locale) == ('co.jp', 'com')


@pytest.mark.asyncio
async def test_amazon_jp_alias_maps_to_co_jp():
    identifier = await IdentifierResolver(FakeTransport()).resolve(f"https://www.amazon.jp/dp/{ASIN}")
    assert identifier.locale == 'co.jp'


@pytest.mark.parametrize("url", [
    "",
    "not a url",
    f"ftp://www.amazon.co.jp/dp/{ASIN}",
    f"https://www.example.com/dp/{ASIN}",
    f"https://www.amazon.co.jp.evil.example/dp/{ASIN}",
    "https://www.amazon.co.jp/",
    "https://www.amazon.co.jp/s?k=gaming+mouse",
    "https://www.amazon.co.jp/dp/B09NWG",
])
@pytest.mark.asyncio
async def test_invalid_urls_raise_invalid_product_url(url):
    with pytest.raises(InvalidProductUrl):
        await IdentifierResolver(FakeTransport()).resolve(url)


@pytest.mark.asyncio
async def test_short_link_is_followed_to_storefront():
    transport = FakeTransport({
        'https://amzn.asia/d/abc1234': redirect(
            'https://amzn.asia/d/abc1234',
            f'https://www.amazon.co.jp/dp/{ASIN}?ref=cm_sw_r_cp_api',
        ),
    })

    identifier = await IdentifierResolver(transport).resolve('https://amzn.asia/d/abc1234')

    assert identifier.asin == ASIN
    assert transport.urls == ['https://amzn.asia/d/abc1234']
    assert transport.requests[0]['allow_redirects'] is False


@pytest.mark.asyncio
async def test_short_link_and_long_link_give_identical_identifier():
    transport = FakeTransport({
        'https://amzn.to/3xYz': redirect('https://amzn.to/3xYz', f'https://www.amazon.co.jp/dp/{ASIN}'),
    })
    resolver = IdentifierResolver(transport)

    assert await resolver.resolve('https://amzn.to/3xYz') == await resolver.resolve(
        f'https://www.amazon.co.jp/gp/product/{ASIN}?tag=someone-22'
    )


@pytest.mark.asyncio
async def test_relative_redirects_are_joined():
    transport = FakeTransport({
        'https://a.co/d/xyz': redirect('https://a.co/d/xyz', '/d/xyz2'),
        'https://a.co/d/xyz2': redirect('https://a.co/d/xyz2', f'https://www.amazon.com/dp/{ASIN}'),
    })

    identifier = await IdentifierResolver(transport).resolve('https://a.co/d/xyz')

    assert identifier.locale == 'com'
    assert transport.urls == ['https://a.co/d/xyz', 'https://a.co/d/xyz2']


@pytest.mark.asyncio
async def test_redirect_loop_exhausts_hop_budget():
    transport = FakeTransport({
        'https://amzn.to/loop': redirect('https://amzn.to/loop', 'https://amzn.to/loop'),
    })

    with pytest.raises(UnresolvableLink) as exc_info:
        await IdentifierResolver(transport, max_hops=3).resolve('https://amzn.to/loop')

    assert 'within 3 redirects' in str(exc_info.value)
    assert len(transport.requests) == 3


@pytest.mark.asyncio
async def test_short_link_ending_off_storefront_is_unresolvable():
    transport = FakeTransport({
        'https://amzn.to/elsewhere': redirect('https://amzn.to/elsewhere', 'https://www.example.com/'),
        'https://www.example.com/': HttpResponse(status=200, url='https://www.example.com/'),
    })

    with pytest.raises(UnresolvableLink):
        await IdentifierResolver(transport).resolve('https://amzn.to/elsewhere')


@pytest.mark.asyncio
async def test_redirect_without_location_is_unresolvable():
    transport = FakeTransport({
        'https://amzn.to/broken': HttpResponse(status=302, url='https://amzn.to/broken'),
    })

    with pytest.raises(UnresolvableLink):
        await IdentifierResolver(transport).resolve('https://amzn.to/broken')


@pytest.mark.asyncio
async def test_transport_failure_is_unresolvable_with_cause():
    transport = FakeTransport({'https://amzn.to/down': TransportError('timed out after 10s')})

    with pytest.raises(UnresolvableLink) as exc_info:
        await IdentifierResolver(transport).resolve('https://amzn.to/down')

    assert isinstance(exc_info.value.__cause__, TransportError)


@pytest.mark.asyncio
async def test_short_link_to_non_product_storefront_page_is_invalid():
    transport = FakeTransport({
        'https://amzn.to/shop': redirect('https://amzn.to/shop', 'https://www.amazon.co.jp/stores/page/ABC'),
    })

    with pytest.raises(InvalidProductUrl):
        await IdentifierResolver(transport).resolve('https://amzn.to/shop')


def test_extract_asin_prefers_path_over_query():
    url = f'https://www.amazon.co.jp/dp/{ASIN}?ASIN=B000000000'
    assert extract_asin(url) == ASIN


def test_storefront_locale_prefers_longest_suffix():
    assert storefront_locale('www.amazon.co.uk') == 'co.uk'
    assert storefront_locale('www.amazon.com.au') == 'com.au'
    assert storefront_locale('amazon.de') == 'de'
    assert storefront_locale('notamazon.com') is None


def test_is_supported_url():
    assert is_supported_url(f'https://www.amazon.co.jp/dp/{ASIN}')
    assert is_supported_url('https://amzn.asia/d/abc')
    assert not is_supported_url('https://www.example.com/')
    assert not is_supported_url('mailto:someone@amazon.co.jp')


def test_add_associate_tag_replaces_existing_tag():
    url = f'https://www.amazon.co.jp/dp/{ASIN}?tag=other-22&th=1'

    tagged = add_associate_tag(url, 'gearshelf-22')

    assert 'tag=gearshelf-22' in tagged
    assert 'other-22' not in tagged
    assert 'th=1' in tagged
    assert 'tag=' not in strip_associate_tag(tagged)


def test_add_associate_tag_ignores_foreign_urls():
    assert add_associate_tag('https://www.example.com/x', 'gearshelf-22') == 'https://www.example.com/x'
