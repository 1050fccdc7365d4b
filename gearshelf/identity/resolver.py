"""
Amazon Identifier Resolver
Turns any accepted Amazon product URL into a canonical ProductIdentifier
"""

import logging
import re
from typing import List, Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from gearshelf.errors import InvalidProductUrl
from gearshelf.models import ProductIdentifier
from gearshelf.utils.http import HttpTransport
from gearshelf.utils.url_resolver import follow_redirects

logger = logging.getLogger(__name__)

# Storefront suffixes, longest first so "co.jp" wins over "jp"
STOREFRONT_SUFFIXES = [
    'com.au', 'com.br', 'com.mx', 'com.tr', 'co.jp', 'co.uk',
    'com', 'jp', 'de', 'fr', 'it', 'es', 'ca', 'in', 'nl', 'se', 'pl', 'sg', 'ae', 'sa', 'cn',
]

SHORT_LINK_HOSTS = ['amzn.to', 'amzn.asia', 'amzn.eu', 'a.co']

ASIN_PATH_PATTERNS = [
    re.compile(r'/dp/([A-Z0-9]{10})(?:[/?]|$)', re.IGNORECASE),
    re.compile(r'/gp/product/([A-Z0-9]{10})(?:[/?]|$)', re.IGNORECASE),
    re.compile(r'/exec/obidos/ASIN/([A-Z0-9]{10})(?:[/?]|$)', re.IGNORECASE),
    re.compile(r'/o/ASIN/([A-Z0-9]{10})(?:[/?]|$)', re.IGNORECASE),
    re.compile(r'/gp/aw/d/([A-Z0-9]{10})(?:[/?]|$)', re.IGNORECASE),
]

ASIN_RE = re.compile(r'^[A-Z0-9]{10}$', re.IGNORECASE)


def storefront_locale(host: Optional[str]) -> Optional[str]:
    """
    Return the storefront suffix for an Amazon host, None for other hosts.

    >>> storefront_locale('www.amazon.co.jp')
    'co.jp'
    """
    if not host:
        return None
    host = host.lower().rstrip('.')
    for suffix in STOREFRONT_SUFFIXES:
        domain = f"amazon.{suffix}"
        if host == domain or host.endswith('.' + domain):
            return suffix
    return None


def is_short_link_host(host: Optional[str]) -> bool:
    if not host:
        return False
    host = host.lower().rstrip('.')
    return any(host == h or host.endswith('.' + h) for h in SHORT_LINK_HOSTS)


def is_storefront_url(url: str) -> bool:
    return storefront_locale(urlparse(url).hostname) is not None


def is_supported_url(url: str) -> bool:
    """Cheap host check for form validation; does not extract anything."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ('http', 'https'):
        return False
    return storefront_locale(parsed.hostname) is not None or is_short_link_host(parsed.hostname)


def extract_asin(url: str) -> Optional[str]:
    """
    Extract the ASIN from a long-form storefront URL.

    Tries the known path shapes first, then an ASIN= query parameter.

    Returns:
        Upper-cased ASIN, or None when no shape matches
    """
    parsed = urlparse(url)

    for pattern in ASIN_PATH_PATTERNS:
        match = pattern.search(parsed.path)
        if match:
            return match.group(1).upper()

    params = parse_qs(parsed.query)
    for key, values in params.items():
        if key.lower() == 'asin' and values and ASIN_RE.match(values[0]):
            return values[0].upper()

    return None


def add_associate_tag(url: str, tag: str) -> str:
    """Set the affiliate `tag` query parameter, replacing any existing one."""
    if not tag or not is_supported_url(url):
        return url
    parsed = urlparse(url)
    params = [(k, v) for k, v in _query_pairs(parsed.query) if k != 'tag']
    params.append(('tag', tag))
    return urlunparse(parsed._replace(query=urlencode(params)))


def strip_associate_tag(url: str) -> str:
    parsed = urlparse(url)
    params = [(k, v) for k, v in _query_pairs(parsed.query) if k != 'tag']
    return urlunparse(parsed._replace(query=urlencode(params)))


def _query_pairs(query: str) -> List[tuple]:
    pairs = []
    for key, values in parse_qs(query, keep_blank_values=True).items():
        for value in values:
            pairs.append((key, value))
    return pairs


class IdentifierResolver:
    """
    Resolves raw product URLs to ProductIdentifiers.

    Pure except for short links, which take one redirect-following step
    (bounded by max_hops) before extraction.
    """

    def __init__(self, transport: HttpTransport, max_hops: int = 5):
        self.transport = transport
        self.max_hops = max_hops

    async def resolve(self, raw_url: str) -> ProductIdentifier:
        """
        Args:
            raw_url: Any accepted Amazon URL (long-form or short link)

        Returns:
            ProductIdentifier with the storefront locale as hint

        Raises:
            InvalidProductUrl: Not an Amazon product URL
            UnresolvableLink: Short link did not reach a storefront
        """
        url = (raw_url or '').strip()
        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise InvalidProductUrl(url, 'malformed URL') from e

        if parsed.scheme not in ('http', 'https') or not parsed.hostname:
            raise InvalidProductUrl(url, 'not an absolute http(s) URL')

        if is_short_link_host(parsed.hostname):
            logger.info("Resolving short link %s", url)
            url = await follow_redirects(
                url, self.transport, is_storefront_url, max_hops=self.max_hops
            )
            logger.info("Short link resolved to %s", url[:80])
            parsed = urlparse(url)

        locale = storefront_locale(parsed.hostname)
        if locale is None:
            raise InvalidProductUrl(url, 'not an Amazon storefront URL')

        asin = extract_asin(url)
        if asin is None:
            raise InvalidProductUrl(url, 'no product identifier in URL')

        # amazon.jp is an alias of the Japanese storefront
        if locale == 'jp':
            locale = 'co.jp'

        return ProductIdentifier(asin=asin, locale=locale)
