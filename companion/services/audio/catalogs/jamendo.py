"""
Jamendo client

Creative Commons music search. Jamendo authenticates with a client id.
"""

from typing import Optional

import httpx
from pydantic import BaseModel

from companion.core.config import settings
from companion.core.logging import get_logger
from companion.services.audio.catalogs import CatalogError

logger = get_logger(__name__)


class JamendoTrack(BaseModel):
    id: str
    name: str
    duration: float = 0.0
    artist_name: str = ""
    album_name: str = ""
    audio: str = ""
    shareurl: str = ""


class JamendoClient:
    def __init__(
        self,
        client_id: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id if client_id is not None else settings.jamendo_client_id
        self.base_url = (base_url or settings.jamendo_api_url).rstrip("/")
        self.timeout = timeout or settings.catalog_timeout_s
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id)

    async def search(
        self,
        query: Optional[str] = None,
        vocalinstrumental: Optional[str] = None,
        order: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[JamendoTrack]:
        if not self.is_configured:
            return []

        params = {
            "client_id": self.client_id,
            "format": "json",
            "limit": str(limit),
            "offset": str(offset),
            "include": "musicinfo",
            "audioformat": "mp32",
        }
        if query:
            params["search"] = query
        if order:
            params["order"] = order
        if vocalinstrumental:
            params["vocalinstrumental"] = vocalinstrumental

        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            response = await client.get(f"{self.base_url}/tracks/", params=params)
            response.raise_for_status()
            data = response.json()

        headers = data.get("headers") or {}
        if headers.get("status") == "error":
            raise CatalogError(f"Jamendo API error: {headers.get('error_message') or 'Unknown error'}")

        # Jamendo returns numeric ids as strings, but not always
        return [
            JamendoTrack.model_validate({**item, "id": str(item.get("id", ""))})
            for item in data.get("results", [])
        ]

    @staticmethod
    def build_attribution(track: JamendoTrack) -> str:
        return f'"{track.name}" by {track.artist_name} - Jamendo'
