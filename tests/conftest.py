"""Shared fixtures: scripted HTTP transport, stub providers and sample pages."""

import asyncio
from typing import Dict, List, Optional, Union

import pytest

from gearshelf.database.store import InMemoryStore
from gearshelf.models import CatalogEntry, ProductIdentifier, ProductMetadata
from gearshelf.providers.base import MetadataProvider
from gearshelf.standardization.schemas import CategoryKind
from gearshelf.utils.http import HttpResponse, HttpTransport

ASIN = 'B09NWGDJZH'
CANONICAL_URL = f'https://www.amazon.co.jp/dp/{ASIN}'
IMAGE_URL = 'https://m.media-amazon.com/images/I/51y7Qd4oQ2L._AC_SL1500_.jpg'

SAMPLE_PRODUCT_HTML = f"""
<html>
<head>
  <title>Amazon.co.jp: Logicool G PRO X SUPERLIGHT : パソコン・周辺機器</title>
  <meta property="og:title" content="Logicool G PRO X SUPERLIGHT ワイヤレス ゲーミングマウス 【国内正規品】 | Amazon.co.jp" />
  <meta property="og:description" content="超軽量63g未満のワイヤレスゲーミングマウス" />
  <meta property="og:image" content="{IMAGE_URL}" />
</head>
<body>
  <span id="productTitle"> Logicool G PRO X SUPERLIGHT </span>
  <div class="a-price"><span class="a-offscreen">￥16,800</span></div>
  <table class="a-normal a-spacing-micro">
    <tr><td><span>Brand</span></td><td><span>Logicool G</span></td></tr>
    <tr><td><span>Connectivity Technology</span></td><td><span>Wireless</span></td></tr>
    <tr><td><span>Item Weight</span></td><td><span>63 Grams</span></td></tr>
  </table>
  <div id="feature-bullets">
    <ul>
      <li><span>HERO 25K センサー 25,600 DPI</span></li>
      <li><span>LIGHTSPEED ワイヤレス 最大1000Hz</span></li>
      <li><span>最大70時間のバッテリー</span></li>
    </ul>
  </div>
</body>
</html>
"""


def redirect(url: str, location: str, status: int = 301) -> HttpResponse:
    return HttpResponse(status=status, url=url, headers={'Location': location})


class FakeTransport(HttpTransport):
    """
    Scripted transport keyed by exact URL.

    A route maps to an HttpResponse, an exception to raise, or a list of
    those consumed one per request. Unknown URLs answer 404.
    """

    def __init__(self, routes: Optional[Dict[str, Union[HttpResponse, Exception, List]]] = None):
        self.routes = dict(routes or {})
        self.requests: List[Dict] = []

    def add(self, url: str, response) -> None:
        self.routes[url] = response

    async def request(self, method, url, headers=None, body=None, allow_redirects=True, read_body=True):
        self.requests.append({
            'method': method,
            'url': url,
            'headers': headers or {},
            'body': body,
            'allow_redirects': allow_redirects,
        })
        result = self.routes.get(url)
        if isinstance(result, list):
            result = result.pop(0) if result else None
        if result is None:
            return HttpResponse(status=404, url=url)
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def urls(self) -> List[str]:
        return [request['url'] for request in self.requests]


class StubProvider(MetadataProvider):
    """Provider returning canned metadata, failing for selected ASINs."""

    def __init__(self, name: str = 'stub', fail_for=(), fail_all: bool = False,
                 message: str = 'no product metadata found', delay: float = 0.0,
                 title: str = 'Logicool G PRO X SUPERLIGHT ワイヤレス ゲーミングマウス',
                 image_url: str = IMAGE_URL, supported: bool = True):
        self._name = name
        self.fail_for = set(fail_for)
        self.fail_all = fail_all
        self.message = message
        self.delay = delay
        self.title = title
        self.image_url = image_url
        self.supported = supported
        self.calls: List[str] = []

    @property
    def provider_name(self) -> str:
        return self._name

    def supports(self, identifier: ProductIdentifier) -> bool:
        return self.supported

    async def try_fetch(self, identifier: ProductIdentifier) -> ProductMetadata:
        self.calls.append(identifier.asin)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_all or identifier.asin in self.fail_for:
            raise self.unavailable(self.message)
        return ProductMetadata(
            identifier=identifier,
            title=self.title,
            image_url=self.image_url,
            provider_used=self._name,
            description='25,600 DPI 63g LIGHTSPEED wireless',
            brand='Logicool G',
            features=['最大1000Hz', '最大70時間のバッテリー'],
            raw_specs={'brand': 'Logicool G', 'connectivity_technology': 'Wireless'},
        )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def identifier():
    return ProductIdentifier(ASIN, 'co.jp')


@pytest.fixture
def catalog_mouse(store, identifier):
    return store.add_catalog_entry(CatalogEntry(
        identifier=identifier,
        name='Logicool G PRO X SUPERLIGHT',
        category=CategoryKind.MOUSE,
        image_url=IMAGE_URL,
        manufacturer='Logicool G',
        attributes={'dpi_max': 25600, 'weight': 63.0, 'rgb': False},
    ))
