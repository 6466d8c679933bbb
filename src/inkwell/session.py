"""Composition root: builds storage, remote services and stores for one user session."""

import logging
from typing import Optional

import httpx

from .config import Config
from .local_storage import LocalStorage
from .remote import (
    BackendClient,
    CollectionService,
    FormService,
    PoemService,
    PromptService,
    RecitationService,
    ReviewService,
    SettingsService,
)
from .stores import CollectionStore, PoemStore, SettingsStore
from .sync import BackgroundSync

logger = logging.getLogger(__name__)


class InkwellSession:
    """Owns one instance of each store and wires them together.

    Without a configured backend the stores work purely on-device. All
    stores share one BackgroundSync so ``drain()`` waits for everything.
    """

    def __init__(
        self,
        config: Config,
        storage: Optional[LocalStorage] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.user_id = config.user_id
        self.storage = storage or LocalStorage(config.db_path)
        self.sync = BackgroundSync("inkwell")

        self.backend: Optional[BackendClient] = None
        # Read-only reference content, reached directly rather than through a store
        self.prompts: Optional[PromptService] = None
        self.forms: Optional[FormService] = None
        poems = collections = settings = reviews = recitations = None
        if config.remote_enabled:
            self.backend = BackendClient(
                config.backend_url,
                config.backend_anon_key,
                access_token=config.backend_access_token,
                timeout=config.backend_timeout,
                transport=transport,
            )
            poems = PoemService(self.backend)
            collections = CollectionService(self.backend)
            settings = SettingsService(self.backend)
            reviews = ReviewService(self.backend)
            recitations = RecitationService(self.backend)
            self.prompts = PromptService(self.backend)
            self.forms = FormService(self.backend)
            logger.debug(f"Remote sync enabled against {config.backend_url}")

        self.collection_store = CollectionStore(self.storage, collections, self.sync)
        self.poem_store = PoemStore(
            self.storage,
            poems,
            reviews,
            recitations,
            self.sync,
            collection_resolver=self.collection_store.resolve_id,
        )
        self.settings_store = SettingsStore(self.storage, settings, self.sync)

        # Keep cross-references pointing at reconciled ids
        self.collection_store.add_reconcile_listener(
            self.poem_store.replace_collection_reference
        )
        self.poem_store.add_reconcile_listener(self.collection_store.replace_poem_reference)

    @property
    def remote_enabled(self) -> bool:
        return self.backend is not None

    async def load(self) -> None:
        """Rehydrate every store from on-device storage."""
        await self.collection_store.load()
        await self.poem_store.load()
        await self.settings_store.load()

    async def sync_all(self) -> dict[str, bool]:
        """Full refresh of every store from the backend; returns success per store."""
        results = {
            "collections": await self.collection_store.fetch_from_server(self.user_id),
            "poems": await self.poem_store.fetch_from_server(self.user_id),
            "settings": await self.settings_store.fetch_from_server(self.user_id),
        }
        await self.drain()
        return results

    async def drain(self) -> None:
        await self.sync.drain()

    async def aclose(self) -> None:
        await self.drain()
        if self.backend is not None:
            await self.backend.aclose()

    async def __aenter__(self) -> "InkwellSession":
        await self.load()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
