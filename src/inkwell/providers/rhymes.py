"""Rhyme suggestions from the Datamuse API."""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from ..defaults import API_TIMEOUTS, API_URLS, CACHE_EXPIRY_HOURS, STORAGE_KEYS
from ..errors import ProviderError
from ..local_storage import LocalStorage
from ..models import now_iso, parse_timestamp

logger = logging.getLogger(__name__)

MAX_RESULTS = 15


@dataclass
class RhymeResult:
    word: str
    score: int
    num_syllables: int = 0


@dataclass
class RhymeSuggestions:
    perfect: list[RhymeResult] = field(default_factory=list)
    near: list[RhymeResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "perfect": [asdict(r) for r in self.perfect],
            "near": [asdict(r) for r in self.near],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RhymeSuggestions":
        return cls(
            perfect=[RhymeResult(**r) for r in data.get("perfect", [])],
            near=[RhymeResult(**r) for r in data.get("near", [])],
        )


class RhymeClient:
    """Perfect and near rhymes, cached per word for a month when storage is given."""

    def __init__(
        self,
        storage: Optional[LocalStorage] = None,
        base_url: str = API_URLS["datamuse"],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.storage = storage
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self.max_age = timedelta(hours=CACHE_EXPIRY_HOURS["rhymes"])

    async def _words(self, relation: str, word: str, max_results: int) -> list[RhymeResult]:
        params = {relation: word.strip().lower(), "max": str(max_results)}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(API_TIMEOUTS["datamuse"]),
                transport=self._transport,
            ) as client:
                response = await client.get("/words", params=params)
        except httpx.RequestError as e:
            raise ProviderError(f"Datamuse: Network error: {e}") from e

        if response.status_code >= 400:
            raise ProviderError(f"Datamuse: HTTP {response.status_code}")

        return [
            RhymeResult(
                word=item["word"],
                score=int(item.get("score", 0)),
                num_syllables=int(item.get("numSyllables", 0)),
            )
            for item in response.json()
        ]

    async def perfect_rhymes(self, word: str, max_results: int = MAX_RESULTS) -> list[RhymeResult]:
        return await self._words("rel_rhy", word, max_results)

    async def near_rhymes(self, word: str, max_results: int = MAX_RESULTS) -> list[RhymeResult]:
        return await self._words("rel_nry", word, max_results)

    def _cache_key(self, word: str) -> str:
        return f"{STORAGE_KEYS['rhyme_prefix']}{word}"

    async def _cached(self, word: str) -> Optional[RhymeSuggestions]:
        if self.storage is None:
            return None
        raw = await self.storage.aget_item(self._cache_key(word))
        if not raw:
            return None
        try:
            entry = json.loads(raw)
            cached_at = parse_timestamp(entry["cached_at"])
            suggestions = RhymeSuggestions.from_dict(entry["data"])
        except (ValueError, KeyError, TypeError) as e:
            logger.debug(f"Dropping unreadable rhyme cache for {word}: {e}")
            return None

        if datetime.now(timezone.utc) - cached_at > self.max_age:
            await self.storage.aremove_item(self._cache_key(word))
            return None
        return suggestions

    async def suggestions(self, word: str) -> RhymeSuggestions:
        """Both rhyme kinds for ``word``; a blank word yields empty lists."""
        word = word.strip().lower()
        if not word:
            return RhymeSuggestions()

        cached = await self._cached(word)
        if cached is not None:
            return cached

        perfect, near = await asyncio.gather(
            self.perfect_rhymes(word), self.near_rhymes(word)
        )
        result = RhymeSuggestions(perfect=perfect, near=near)

        if self.storage is not None:
            await self.storage.aset_item(
                self._cache_key(word),
                json.dumps({"data": result.to_dict(), "cached_at": now_iso()}),
            )
        return result
