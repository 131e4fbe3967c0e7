"""
Trainer Context.

Owns every long-lived object of a trainer process and wires them together:
local store -> planner/prayer tracker -> sync orchestrator -> progress client.

Usage:
    ctx = TrainerContext.create(get_settings())
    await ctx.start()
    ...
    await ctx.close()
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from bangla10.config import Settings
from bangla10.delivery.catalog import ContentCatalog
from bangla10.delivery.prayer import PrayerTracker
from bangla10.delivery.scheduler import SessionPlanner
from bangla10.delivery.state_store import LocalStore
from bangla10.sync.orchestrator import SyncOrchestrator
from bangla10.sync.remote_client import ProgressClient


@dataclass
class TrainerContext:
    settings: Settings
    store: LocalStore
    catalog: ContentCatalog
    planner: SessionPlanner
    prayer: PrayerTracker
    orchestrator: SyncOrchestrator
    client: ProgressClient | None = None

    @classmethod
    def create(
        cls,
        settings: Settings,
        catalog: ContentCatalog | None = None,
        client: ProgressClient | None = None,
    ) -> TrainerContext:
        """
        Build a context from settings.

        Args:
            settings: Application settings
            catalog: Preloaded catalog (loaded from settings.content_dir if omitted)
            client: Progress client (built from settings.sync_url if omitted and sync is on)
        """
        store = LocalStore(settings.state_db_path, storage_key=settings.storage_key)

        if catalog is None:
            catalog = ContentCatalog(settings.content_dir)
            catalog.load()

        if client is None and settings.has_sync_configured():
            client = ProgressClient(
                settings.sync_url,
                timeout=settings.sync_timeout_seconds,
                max_state_bytes=settings.max_state_bytes,
            )

        orchestrator = SyncOrchestrator(
            store,
            client,
            debounce_seconds=settings.sync_debounce_seconds,
            bootstrap_timeout=settings.sync_bootstrap_timeout_seconds,
        )
        return cls(
            settings=settings,
            store=store,
            catalog=catalog,
            planner=SessionPlanner(catalog, store),
            prayer=PrayerTracker(catalog, store),
            orchestrator=orchestrator,
            client=client,
        )

    async def start(self) -> None:
        """Begin reconciling with the remote copy without holding up the caller."""
        if self.orchestrator.start_bootstrap() is not None:
            logger.debug("Sync bootstrap started in the background")

    async def close(self) -> None:
        """Finish bootstrap, flush pending pushes, then release the HTTP client and database."""
        await self.orchestrator.drain()
        if self.client is not None:
            await self.client.close()
        self.store.close()
