"""
Product Advertising API provider
Primary structured-data source: signed GetItems calls to Amazon PA-API 5
"""

import asyncio
import hashlib
import hmac
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from gearshelf.errors import TransportError
from gearshelf.models import ProductIdentifier, ProductMetadata
from gearshelf.providers.base import MetadataProvider
from gearshelf.utils.http import HttpTransport

logger = logging.getLogger(__name__)

API_PATH = '/paapi5/getitems'
SERVICE = 'ProductAdvertisingAPI'
TARGET = 'com.amazon.paapi5.v1.ProductAdvertisingAPIv1.GetItems'

# storefront suffix -> (API host, signing region)
MARKETPLACES: Dict[str, Tuple[str, str]] = {
    'co.jp': ('webservices.amazon.co.jp', 'us-west-2'),
    'com': ('webservices.amazon.com', 'us-east-1'),
    'ca': ('webservices.amazon.ca', 'us-east-1'),
    'co.uk': ('webservices.amazon.co.uk', 'eu-west-1'),
    'de': ('webservices.amazon.de', 'eu-west-1'),
    'fr': ('webservices.amazon.fr', 'eu-west-1'),
    'it': ('webservices.amazon.it', 'eu-west-1'),
    'es': ('webservices.amazon.es', 'eu-west-1'),
}

RESOURCES = [
    'Images.Primary.Large',
    'ItemInfo.Title',
    'ItemInfo.Features',
    'ItemInfo.ByLineInfo',
    'ItemInfo.ManufactureInfo',
    'ItemInfo.ProductInfo',
    'Offers.Listings.Price',
    'Offers.Listings.Availability.Message',
]


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode('utf-8'), hashlib.sha256).digest()


def sign_request(
    headers: Dict[str, str],
    payload: str,
    access_key: str,
    secret_key: str,
    region: str,
    amz_date: str,
    path: str = API_PATH,
) -> str:
    """
    Build the AWS Signature Version 4 Authorization header value.

    Args:
        headers: Headers to sign (names are lower-cased for signing)
        payload: Exact request body
        amz_date: Timestamp in YYYYMMDD'T'HHMMSS'Z' form, also sent as x-amz-date

    Returns:
        Authorization header value
    """
    date_stamp = amz_date[:8]
    credential_scope = f"{date_stamp}/{region}/{SERVICE}/aws4_request"

    lowered = sorted((k.lower(), v.strip()) for k, v in headers.items())
    canonical_headers = ''.join(f"{k}:{v}\n" for k, v in lowered)
    signed_headers = ';'.join(k for k, _ in lowered)
    payload_hash = hashlib.sha256(payload.encode('utf-8')).hexdigest()

    canonical_request = '\n'.join([
        'POST', path, '', canonical_headers, signed_headers, payload_hash,
    ])
    string_to_sign = '\n'.join([
        'AWS4-HMAC-SHA256',
        amz_date,
        credential_scope,
        hashlib.sha256(canonical_request.encode('utf-8')).hexdigest(),
    ])

    k_date = _hmac(f"AWS4{secret_key}".encode('utf-8'), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, SERVICE)
    k_signing = _hmac(k_service, 'aws4_request')
    signature = hmac.new(k_signing, string_to_sign.encode('utf-8'), hashlib.sha256).hexdigest()

    return (
        f"AWS4-HMAC-SHA256 Credential={access_key}/{credential_scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )


class MinIntervalLimiter:
    """Spaces calls at least min_interval seconds apart (PA-API allows ~1 req/s)."""

    def __init__(self, min_interval: float = 1.1):
        self.min_interval = min_interval
        self._last_call = 0.0
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        async with self._lock:
            elapsed = time.monotonic() - self._last_call
            if self._last_call and elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)
            self._last_call = time.monotonic()


class PaApiProvider(MetadataProvider):
    """
    Structured product data from the Product Advertising API.

    Most precise source, but quota-limited and only available for
    marketplaces with an API endpoint and when associate credentials exist.
    """

    def __init__(
        self,
        transport: HttpTransport,
        access_key: Optional[str],
        secret_key: Optional[str],
        partner_tag: Optional[str],
        min_interval: float = 1.1,
        clock=None,
    ):
        self.transport = transport
        self.access_key = access_key
        self.secret_key = secret_key
        self.partner_tag = partner_tag
        self.limiter = MinIntervalLimiter(min_interval)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def provider_name(self) -> str:
        return "pa-api"

    def supports(self, identifier: ProductIdentifier) -> bool:
        return identifier.locale in MARKETPLACES

    async def try_fetch(self, identifier: ProductIdentifier) -> ProductMetadata:
        if not (self.access_key and self.secret_key and self.partner_tag):
            raise self.unavailable("credentials not configured")

        marketplace = MARKETPLACES.get(identifier.locale)
        if marketplace is None:
            raise self.unavailable(f"unsupported marketplace amazon.{identifier.locale}")
        host, region = marketplace

        payload = json.dumps({
            'ItemIds': [identifier.asin],
            'Resources': RESOURCES,
            'PartnerTag': self.partner_tag,
            'PartnerType': 'Associates',
            'Marketplace': f"www.amazon.{identifier.locale}",
        })

        amz_date = self._clock().strftime('%Y%m%dT%H%M%SZ')
        headers = {
            'content-encoding': 'amz-1.0',
            'content-type': 'application/json; charset=utf-8',
            'host': host,
            'x-amz-date': amz_date,
            'x-amz-target': TARGET,
        }
        headers['Authorization'] = sign_request(
            headers, payload, self.access_key, self.secret_key, region, amz_date
        )

        await self.limiter.wait()
        logger.debug("PA-API GetItems %s via %s", identifier.asin, host)

        try:
            response = await self.transport.post(f"https://{host}{API_PATH}", payload, headers=headers)
        except TransportError as e:
            raise self.unavailable(str(e)) from e

        if response.status == 429:
            raise self.unavailable("quota exceeded (HTTP 429)")
        if not response.ok:
            raise self.unavailable(f"request failed: HTTP {response.status}")

        try:
            data = response.json()
        except ValueError as e:
            raise self.unavailable("malformed JSON response") from e

        return self._parse_item(identifier, data)

    def _parse_item(self, identifier: ProductIdentifier, data) -> ProductMetadata:
        if not isinstance(data, dict):
            raise self.unavailable("malformed JSON response")

        items = _dig(data, 'ItemsResult', 'Items')
        item = _first(items)

        if item is None:
            error = _first(data.get('Errors'))
            if isinstance(error, dict):
                raise self.unavailable(f"{error.get('Code', 'Error')}: {error.get('Message', '')}".strip())
            if items:
                raise self.unavailable("malformed item in response")
            raise self.unavailable("no item found in response")

        title = _dig(item, 'ItemInfo', 'Title', 'DisplayValue')
        if not isinstance(title, str) or not title.strip():
            raise self.unavailable("item has no title")

        display_values = _dig(item, 'ItemInfo', 'Features', 'DisplayValues')
        features = [f for f in display_values if isinstance(f, str)] if isinstance(display_values, list) else []
        image_url = _dig(item, 'Images', 'Primary', 'Large', 'URL')

        brand = (_dig(item, 'ItemInfo', 'ByLineInfo', 'Brand', 'DisplayValue')
                 or _dig(item, 'ItemInfo', 'ByLineInfo', 'Manufacturer', 'DisplayValue')
                 or _dig(item, 'ItemInfo', 'ManufactureInfo', 'DisplayValue'))
        if not isinstance(brand, str):
            brand = None

        amount = _dig(_first(_dig(item, 'Offers', 'Listings')), 'Price', 'Amount')
        price = float(amount) if isinstance(amount, (int, float)) and not isinstance(amount, bool) else None

        raw_specs = {}
        if brand:
            raw_specs['brand'] = brand
        product_info = _dig(item, 'ItemInfo', 'ProductInfo')
        for key, value in (product_info.items() if isinstance(product_info, dict) else []):
            display = _dig(value, 'DisplayValue')
            if display is not None:
                raw_specs[key] = display

        return ProductMetadata(
            identifier=identifier,
            title=title.strip(),
            image_url=image_url if isinstance(image_url, str) else '',
            provider_used=self.provider_name,
            description=' '.join(features) or None,
            price=price,
            brand=brand,
            features=features,
            raw_specs=raw_specs,
        )


def _dig(data: Any, *keys: str) -> Any:
    """Walk nested dicts, None as soon as a level is missing or not a dict."""
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _first(values: Any) -> Any:
    if isinstance(values, list) and values:
        return values[0]
    return None
