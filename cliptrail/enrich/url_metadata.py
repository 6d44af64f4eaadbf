# Purpose: fetch a page title and favicon for URL items
# the HTML is scanned with plain string searches, not parsed:
#   title = text between the first <title> and </title>
#   favicon = the href that follows the first rel="icon"
# either may be missing

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from cliptrail.core.config import settings
from cliptrail.core.errors import NetworkError

log = logging.getLogger(__name__)


@dataclass
class PageMetadata:
    title: Optional[str] = None
    favicon_url: Optional[str] = None


def extract_title(html: str) -> Optional[str]:
    start = html.find("<title>")
    if start == -1:
        return None
    start += len("<title>")
    end = html.find("</title>", start)
    if end == -1:
        return None
    title = html[start:end].strip()
    return title or None


def extract_favicon(html: str) -> Optional[str]:
    rel = html.find('rel="icon"')
    if rel == -1:
        return None
    href = html.find('href="', rel + len('rel="icon"'))
    if href == -1:
        return None
    href += len('href="')
    end = html.find('"', href)
    if end == -1:
        return None
    return html[href:end] or None


def scan_metadata(html: str) -> PageMetadata:
    return PageMetadata(title=extract_title(html), favicon_url=extract_favicon(html))


def fetch_metadata(url: str, client: Optional[httpx.Client] = None) -> PageMetadata:
    """
    GET the page and scan it
    raises NetworkError on any transport or HTTP status failure
    """
    owns_client = client is None
    if owns_client:
        client = httpx.Client(timeout=settings.url_fetch_timeout, follow_redirects=True)

    try:
        r = client.get(url)
        r.raise_for_status()
        html = r.text
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise NetworkError(f"Could not fetch {url}: {e}") from e
    finally:
        if owns_client:
            client.close()

    return scan_metadata(html)
