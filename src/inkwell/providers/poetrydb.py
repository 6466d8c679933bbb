"""Classic public-domain poems from PoetryDB, with a daily cache."""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from urllib.parse import quote

import httpx

from ..defaults import API_TIMEOUTS, API_URLS, CACHE_EXPIRY_HOURS, STORAGE_KEYS
from ..errors import ProviderError
from ..local_storage import LocalStorage
from ..models import ClassicPoem, now_iso, parse_timestamp

logger = logging.getLogger(__name__)


def _is_error(data: Any) -> bool:
    # PoetryDB answers 200 with {"status": 404, "reason": "Not found"} on misses
    return isinstance(data, dict) and "status" in data and "reason" in data


class PoetryDbClient:
    def __init__(
        self,
        base_url: str = API_URLS["poetrydb"],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    async def _get(self, path: str) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(API_TIMEOUTS["poetrydb"]),
                transport=self._transport,
            ) as client:
                response = await client.get(path)
        except httpx.RequestError as e:
            raise ProviderError(f"PoetryDB: Network error: {e}") from e

        if response.status_code >= 400:
            raise ProviderError(f"PoetryDB: HTTP {response.status_code}")
        return response.json()

    async def random_poem(self) -> ClassicPoem:
        data = await self._get("/random")
        if _is_error(data):
            raise ProviderError(f"PoetryDB: {data['reason']}")
        if not data:
            raise ProviderError("PoetryDB: No poems returned")
        return ClassicPoem.from_dict(data[0])

    async def search_by_author(self, author: str) -> list[ClassicPoem]:
        """Poems by ``author``; no match is an empty list."""
        data = await self._get(f"/author/{quote(author)}")
        if _is_error(data):
            return []
        return [ClassicPoem.from_dict(item) for item in data]

    async def search_by_title(self, title: str) -> list[ClassicPoem]:
        data = await self._get(f"/title/{quote(title)}")
        if _is_error(data):
            return []
        return [ClassicPoem.from_dict(item) for item in data]


class DailyPoemCache:
    """Keep one random poem per day in on-device storage."""

    def __init__(self, client: PoetryDbClient, storage: LocalStorage):
        self.client = client
        self.storage = storage
        self.key = STORAGE_KEYS["daily_poem"]
        self.max_age = timedelta(hours=CACHE_EXPIRY_HOURS["daily_poem"])

    async def cached(self) -> Optional[ClassicPoem]:
        """The cached poem, or None when missing, unreadable or expired."""
        raw = await self.storage.aget_item(self.key)
        if not raw:
            return None
        try:
            entry = json.loads(raw)
            fetched_at = parse_timestamp(entry["fetched_at"])
            poem = ClassicPoem.from_dict(entry["poem"])
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable daily poem cache: {e}")
            return None

        if datetime.now(timezone.utc) - fetched_at > self.max_age:
            return None
        return poem

    async def get(self, force_refresh: bool = False) -> ClassicPoem:
        if not force_refresh:
            poem = await self.cached()
            if poem is not None:
                return poem

        poem = await self.client.random_poem()
        await self.storage.aset_item(
            self.key, json.dumps({"poem": poem.to_dict(), "fetched_at": now_iso()})
        )
        logger.debug(f"Cached daily poem: {poem.title} by {poem.author}")
        return poem
