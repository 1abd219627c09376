"""
Freesound client

Text search over freesound.org sounds. Used for short effects and for long
ambient loops.
"""

from typing import Optional

import httpx
from pydantic import BaseModel

from companion.core.config import settings
from companion.core.logging import get_logger

logger = get_logger(__name__)

SEARCH_FIELDS = "id,name,description,duration,username,license,tags,previews"


class FreesoundTrack(BaseModel):
    id: int
    name: str
    description: str = ""
    duration: float = 0.0
    username: str = ""
    license: str = ""
    tags: list[str] = []
    previews: dict[str, str] = {}


class FreesoundClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.freesound_api_key
        self.base_url = (base_url or settings.freesound_api_url).rstrip("/")
        self.timeout = timeout or settings.catalog_timeout_s
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def search(
        self,
        query: str,
        filter: Optional[str] = None,
        sort: Optional[str] = None,
        page_size: int = 15,
        page: int = 1,
    ) -> list[FreesoundTrack]:
        """
        Search sounds by text.

        Returns an empty list when no API key is configured.
        Raises httpx.HTTPError on transport or status failures.
        """
        if not self.is_configured:
            return []

        params = {
            "token": self.api_key,
            "query": query,
            "fields": SEARCH_FIELDS,
            "page_size": str(page_size),
            "page": str(page),
        }
        if filter:
            params["filter"] = filter
        if sort:
            params["sort"] = sort

        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            response = await client.get(f"{self.base_url}/search/text/", params=params)
            response.raise_for_status()
            data = response.json()

        return [FreesoundTrack.model_validate(item) for item in data.get("results", [])]

    @staticmethod
    def preview_url(track: FreesoundTrack) -> str:
        return track.previews.get("preview-hq-mp3") or track.previews.get("preview-lq-mp3", "")

    @staticmethod
    def build_attribution(track: FreesoundTrack) -> str:
        return f'"{track.name}" by {track.username} on Freesound.org ({track.license})'
