import logging

import httpx

from site_cms.transport import send

logger = logging.getLogger(__name__)

CONTENT_PATHS = ("/", "/events")


class Revalidator:
    """Asks the rendering layer to drop cached pages. Never raises."""

    def __init__(self, url: str, secret: str = "", http: httpx.AsyncClient | None = None) -> None:
        self._url = url
        self._secret = secret
        self._http = http or httpx.AsyncClient(timeout=10.0)

    async def signal(self, paths: tuple[str, ...] = CONTENT_PATHS) -> bool:
        if not self._url:
            logger.debug("Revalidation skipped: no REVALIDATE_URL configured")
            return False
        headers = {"Authorization": f"Bearer {self._secret}"} if self._secret else {}
        response = await send(
            self._http, "POST", self._url, json={"paths": list(paths)}, headers=headers
        )
        if not response.is_success:
            logger.warning("Revalidation failed: HTTP %s %s", response.status_code, response.text[:200])
            return False
        return True

    async def aclose(self) -> None:
        await self._http.aclose()
