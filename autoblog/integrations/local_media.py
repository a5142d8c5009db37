"""
Local media store - downloads generated images with httpx into MEDIA_ROOT
and records them in media_assets.
"""
import logging
import os
import uuid
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker

from autoblog.config import Settings, get_settings
from autoblog.integrations.base import MediaStore
from autoblog.models.post import MediaAsset
from autoblog.utils.errors import PersistenceError

logger = logging.getLogger(__name__)


class LocalMediaStore(MediaStore):
    def __init__(
        self,
        session_factory: async_sessionmaker,
        media_root: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        config: Optional[Settings] = None,
    ):
        settings = config or get_settings()
        self._session_factory = session_factory
        self.media_root = media_root or settings.media_root
        self.timeout = settings.media_download_timeout_seconds
        self._http_client = http_client

    async def _download(self, url: str) -> tuple[bytes, Optional[str]]:
        if self._http_client is not None:
            response = await self._http_client.get(url)
        else:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url)
        response.raise_for_status()
        return response.content, response.headers.get("content-type")

    async def fetch_and_attach(
        self,
        url: str,
        filename: str,
        content_ref: str,
        alt_text: str = "",
    ) -> str:
        try:
            payload, content_type = await self._download(url)
        except httpx.HTTPError as e:
            raise PersistenceError(f"Image download failed: {e}") from e

        os.makedirs(self.media_root, exist_ok=True)
        path = os.path.join(self.media_root, filename)
        with open(path, "wb") as fh:
            fh.write(payload)

        asset = MediaAsset(
            filename=filename,
            path=path,
            content_type=content_type,
            alt_text=alt_text[:500] if alt_text else None,
            source_url=url,
            post_id=uuid.UUID(str(content_ref)),
        )
        async with self._session_factory() as db:
            db.add(asset)
            await db.commit()

        logger.info("Media stored: %s (%d bytes)", filename, len(payload))
        return str(asset.id)
