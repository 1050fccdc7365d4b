"""
URL Resolver Utility
Follows short-link redirect chains to the storefront URL they point at
"""

import logging
from typing import Callable
from urllib.parse import urljoin, urlparse

from gearshelf.errors import TransportError, UnresolvableLink
from gearshelf.utils.http import HttpTransport

logger = logging.getLogger(__name__)


async def follow_redirects(
    url: str,
    transport: HttpTransport,
    is_destination: Callable[[str], bool],
    max_hops: int = 5,
) -> str:
    """
    Follow a redirect chain until it reaches an accepted destination.

    Handles chains like:
    1. amzn.to/3xYz (short link)
    2. amazon.co.jp/dp/B08MVQ6LKK?ref=... (storefront)

    Redirects are followed manually so we can stop as soon as the current URL
    is a destination, without downloading the (heavy) product page.

    Args:
        url: The short/tracking URL to resolve
        transport: HTTP transport used for each hop
        is_destination: Predicate deciding whether a URL is the final target
        max_hops: Maximum number of requests to make

    Returns:
        The first URL in the chain accepted by is_destination

    Raises:
        UnresolvableLink: Hop budget exhausted, chain ended elsewhere, or the
            transport failed
    """
    current_url = url

    for hop in range(max_hops):
        if is_destination(current_url):
            return current_url

        try:
            response = await transport.get(current_url, allow_redirects=False, read_body=False)
        except TransportError as e:
            raise UnresolvableLink(url, str(e)) from e

        if not response.is_redirect:
            host = urlparse(current_url).hostname or current_url
            raise UnresolvableLink(
                url, f"chain ended at {host} (HTTP {response.status}), not a storefront"
            )

        next_url = response.header('Location')
        if not next_url:
            raise UnresolvableLink(url, f"redirect without Location header at {current_url}")

        # Relative redirects
        current_url = urljoin(current_url, next_url)
        logger.debug("Hop %d: %s", hop + 1, current_url)

    if is_destination(current_url):
        return current_url

    raise UnresolvableLink(url, f"no storefront reached within {max_hops} redirects")
