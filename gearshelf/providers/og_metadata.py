"""
Page metadata provider
Secondary source: scrapes Open Graph tags and a few well-known elements
from the public product page. Always available, less precise.
"""

import logging
import re
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from gearshelf.errors import TransportError
from gearshelf.models import ProductIdentifier, ProductMetadata
from gearshelf.providers.base import MetadataProvider
from gearshelf.utils.http import BROWSER_HEADERS, HttpTransport

logger = logging.getLogger(__name__)

TITLE_SELECTORS = [
    ('meta', {'property': 'og:title'}),
    ('meta', {'name': 'og:title'}),
    ('meta', {'name': 'twitter:title'}),
]

IMAGE_META_SELECTORS = [
    ('meta', {'property': 'og:image'}),
    ('meta', {'name': 'og:image'}),
]

FALLBACK_IMAGE_META_SELECTORS = [
    ('meta', {'name': 'twitter:image'}),
    ('meta', {'property': 'twitter:image'}),
]

DESCRIPTION_SELECTORS = [
    ('meta', {'property': 'og:description'}),
    ('meta', {'name': 'og:description'}),
    ('meta', {'name': 'description'}),
]

# " | Amazon.co.jp ..." / ": Amazon.com: Electronics"
SITE_SUFFIX_RE = re.compile(r'\s*[|｜:：]\s*Amazon.*$', re.IGNORECASE)
BRACKET_BLURB_RE = re.compile(r'【.*?】')
# Leading "Amazon.co.jp: " / "Amazon.com : "
SITE_PREFIX_RE = re.compile(r'^\s*Amazon(?:\.[a-z.]+)?\s*[|｜:：]\s*', re.IGNORECASE)
PRICE_RE = re.compile(r'[0-9][0-9,]*(?:\.[0-9]+)?')
# What is left of a robot-check or error page title after cleaning
STOREFRONT_ONLY_RE = re.compile(r'^(?:Amazon(?:\.[a-z.]+)?|Robot Check|Page Not Found)$', re.IGNORECASE)


def clean_title(title: str) -> str:
    """Strip storefront prefixes/suffixes and 【...】 marketing blurbs."""
    title = SITE_PREFIX_RE.sub('', title or '')
    title = SITE_SUFFIX_RE.sub('', title)
    title = BRACKET_BLURB_RE.sub('', title)
    return re.sub(r'\s+', ' ', title).strip()


def parse_price(text: Optional[str]) -> Optional[float]:
    """'￥12,980' -> 12980.0; None when no number is present."""
    if not text:
        return None
    match = PRICE_RE.search(text)
    if not match:
        return None
    try:
        return float(match.group(0).replace(',', ''))
    except ValueError:
        return None


def spec_key(label: str) -> str:
    """Table row label -> snake_case key ('Connectivity Technology' -> 'connectivity_technology')."""
    key = re.sub(r'[^\w]+', '_', label.strip().lower())
    return key.strip('_')


def _meta_content(soup: BeautifulSoup, selectors: List) -> Optional[str]:
    for tag, attrs in selectors:
        element = soup.find(tag, attrs=attrs)
        if element and element.get('content'):
            content = element['content'].strip()
            if content:
                return content
    return None


class OgMetadataProvider(MetadataProvider):
    """Open Graph / product page scraper."""

    def __init__(self, transport: HttpTransport):
        self.transport = transport

    @property
    def provider_name(self) -> str:
        return "og-metadata"

    async def try_fetch(self, identifier: ProductIdentifier) -> ProductMetadata:
        url = identifier.canonical_url()

        try:
            response = await self.transport.get(url, headers=BROWSER_HEADERS)
        except TransportError as e:
            raise self.unavailable(str(e)) from e

        if not response.ok:
            raise self.unavailable(f"page request failed: HTTP {response.status}")

        return self.parse_page(identifier, response.text)

    def parse_page(self, identifier: ProductIdentifier, html: str) -> ProductMetadata:
        """
        Parse a product page into ProductMetadata.

        Raises:
            ProviderUnavailable: No title could be recovered from the page
        """
        soup = BeautifulSoup(html or '', 'html.parser')

        if self._is_robot_check(soup):
            raise self.unavailable("robot check page served instead of product")

        title = clean_title(self._extract_title(soup) or '')
        if not title or STOREFRONT_ONLY_RE.match(title):
            raise self.unavailable("no product metadata found")

        features = self._extract_features(soup)
        raw_specs = self._extract_specs(soup)

        brand = raw_specs.get('brand') or raw_specs.get('manufacturer')

        return ProductMetadata(
            identifier=identifier,
            title=title,
            image_url=self._extract_image(soup) or '',
            provider_used=self.provider_name,
            description=_meta_content(soup, DESCRIPTION_SELECTORS),
            price=self._extract_price(soup),
            brand=brand,
            features=features,
            raw_specs=raw_specs,
        )

    def _is_robot_check(self, soup: BeautifulSoup) -> bool:
        return soup.find('form', action=re.compile(r'validateCaptcha')) is not None

    def _extract_title(self, soup: BeautifulSoup) -> Optional[str]:
        title = _meta_content(soup, TITLE_SELECTORS)
        if title:
            return title

        product_title = soup.find(id='productTitle')
        if product_title and product_title.get_text(strip=True):
            return product_title.get_text(strip=True)

        if soup.title and soup.title.string:
            return soup.title.string.strip()
        return None

    def _extract_image(self, soup: BeautifulSoup) -> Optional[str]:
        image = _meta_content(soup, IMAGE_META_SELECTORS)
        if image:
            return image

        landing = soup.find(id='landingImage')
        if landing:
            for attr in ('data-old-hires', 'src'):
                value = (landing.get(attr) or '').strip()
                if value and not value.startswith('data:'):
                    return value

        image = _meta_content(soup, FALLBACK_IMAGE_META_SELECTORS)
        if image:
            return image

        link = soup.find('link', rel='image_src')
        if link and link.get('href'):
            return link['href'].strip()
        return None

    def _extract_price(self, soup: BeautifulSoup) -> Optional[float]:
        for selector in ('.a-price .a-offscreen', '.a-price-whole'):
            element = soup.select_one(selector)
            if element:
                price = parse_price(element.get_text(strip=True))
                if price is not None:
                    return price
        return None

    def _extract_features(self, soup: BeautifulSoup) -> List[str]:
        container = soup.find(id='feature-bullets')
        if not container:
            return []
        bullets = []
        for item in container.find_all('li'):
            text = item.get_text(' ', strip=True)
            if text:
                bullets.append(text)
        return bullets

    def _extract_specs(self, soup: BeautifulSoup) -> Dict[str, str]:
        """Product overview and technical detail tables as a flat map."""
        specs = {}
        tables = soup.select('table.a-normal.a-spacing-micro, #productDetails_techSpec_section_1')
        for table in tables:
            for row in table.find_all('tr'):
                cells = row.find_all(['th', 'td'])
                if len(cells) < 2:
                    continue
                key = spec_key(cells[0].get_text(' ', strip=True))
                value = cells[1].get_text(' ', strip=True).replace('\u200e', '').strip()
                if key and value and key not in specs:
                    specs[key] = value
        return specs
