import logging
from typing import Any

import httpx

from site_cms.errors import NetworkError

logger = logging.getLogger(__name__)

SYNTHETIC_FAILURE_STATUS = 599


async def send(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """Send a request, turning transport and URL failures into a failed response."""
    try:
        return await client.request(method, url, **kwargs)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        error = NetworkError(f"{method} {url} failed: {exc}")
        logger.warning("%s", error)
        request = None if isinstance(exc, httpx.InvalidURL) else httpx.Request(method, url)
        return httpx.Response(
            SYNTHETIC_FAILURE_STATUS,
            json={"message": str(error)},
            request=request,
        )
