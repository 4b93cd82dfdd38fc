import logging
from typing import Tuple

import httpx

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 60.0


def short_url(url: str, length: int = 60) -> str:
    """Truncate long (often signed) URLs for log lines."""
    return url if len(url) <= length else url[:length] + "..."


async def download_image(client: httpx.AsyncClient, url: str) -> Tuple[bytes, str]:
    """
    Fetch an image.

    Args:
        client: shared async HTTP client
        url: image URL

    Returns:
        (bytes, content type)

    Raises:
        httpx.HTTPError: network failure or non-2xx status
    """
    logger.info("Downloading image %s", short_url(url))
    response = await client.get(url, timeout=DOWNLOAD_TIMEOUT, follow_redirects=True)
    response.raise_for_status()
    content_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
    return response.content, content_type
