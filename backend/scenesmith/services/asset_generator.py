from __future__ import annotations
"""Reference asset generation and asset ordinal bookkeeping.

Asset numbers are a dense 1..N sequence per project (N ≤ 5). New assets
take the lowest free number, so a gap left by a deletion is filled before
the sequence grows; ``renumber_assets`` compacts the sequence after a delete.
"""

import asyncio
import logging
import uuid
import weakref
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scenesmith.config import get_settings
from scenesmith.database import async_session_factory
from scenesmith.errors import PersistenceWarning, ValidationError
from scenesmith.models.asset import MAX_ASSETS_PER_PROJECT, Asset, AssetKind
from scenesmith.services.base_gen_service import BaseGenService, GenServiceConfig
from scenesmith.services.providers import GenerationProvider, ImageRequest, get_provider
from scenesmith.services.storage import MediaStore, StoredObject, get_media_store

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class GeneratedAsset:
    url: str
    storage_key: str
    asset_id: str | None = None
    asset_number: int | None = None


def next_free_ordinal(taken: list[int | None]) -> int | None:
    """Lowest number in 1..MAX not in taken, or None when full."""
    used = {n for n in taken if n is not None}
    for n in range(1, MAX_ASSETS_PER_PROJECT + 1):
        if n not in used:
            return n
    return None


async def list_project_assets(session: AsyncSession, project_id: str) -> list[Asset]:
    result = await session.execute(
        select(Asset)
        .where(Asset.project_id == project_id)
        .order_by(Asset.asset_number.is_(None), Asset.asset_number, Asset.created_at)
    )
    return list(result.scalars().all())


async def renumber_assets(session: AsyncSession, project_id: str) -> list[Asset]:
    """Reassign asset numbers to 1..N keeping their current relative order.

    Moved assets pass through negative placeholders so the per-project
    unique constraint holds at every flush.
    """
    assets = await list_project_assets(session, project_id)
    moved = [(index, asset) for index, asset in enumerate(assets, start=1) if asset.asset_number != index]
    if not moved:
        return assets
    for index, asset in moved:
        asset.asset_number = -index
    await session.flush()
    for index, asset in moved:
        asset.asset_number = index
    await session.flush()
    return assets


class AssetGenerator(BaseGenService[StoredObject]):
    """Image generation for project reference assets."""

    service_name = "asset_gen"

    def __init__(
        self,
        provider: GenerationProvider | None = None,
        store: MediaStore | None = None,
        session_factory: async_sessionmaker | None = None,
        config: GenServiceConfig | None = None,
    ) -> None:
        super().__init__(config or GenServiceConfig(
            max_retries=settings.GENERATION_MAX_RETRIES,
            timeout=settings.ASSET_GENERATION_TIMEOUT,
        ))
        self._provider = provider
        self._store = store
        self._session_factory = session_factory
        # Entries vanish once no persist call holds the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def provider(self) -> GenerationProvider:
        return self._provider or get_provider()

    @property
    def store(self) -> MediaStore:
        return self._store or get_media_store()

    @property
    def session_factory(self) -> async_sessionmaker:
        return self._session_factory or async_session_factory

    def _lock_for(self, project_id: str) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[project_id] = lock
        return lock

    async def _generate(self, **kwargs: Any) -> StoredObject:
        request = ImageRequest(
            prompt=kwargs["prompt"],
            model_id=kwargs["model_id"],
            aspect_ratio=kwargs["aspect_ratio"],
        )
        output_url = await self.provider.generate_image(request, timeout=self.config.timeout)
        data = await self.store.fetch_bytes(output_url)
        key = self.store.object_key(kwargs.get("project_id"), "assets", f"{uuid.uuid4().hex}.png")
        return self.store.save_bytes(key, data)

    def _estimate_cost(self, **kwargs: Any) -> float:
        return 0.04

    async def generate_asset(
        self,
        prompt: str,
        model_id: str | None = None,
        aspect_ratio: str = "16:9",
        project_id: str | None = None,
    ) -> GeneratedAsset:
        """Generate and store an image; persist it as a project asset when project_id is set."""
        if not prompt or not prompt.strip():
            raise ValidationError("Asset prompt must not be empty")
        model_id = model_id or settings.DEFAULT_IMAGE_MODEL

        if project_id:
            async with self.session_factory() as session:
                taken = [a.asset_number for a in await list_project_assets(session, project_id)]
            if next_free_ordinal(taken) is None:
                raise ValidationError(
                    f"Project already has {MAX_ASSETS_PER_PROJECT} assets; delete one first"
                )

        result = await self.execute(
            prompt=prompt, model_id=model_id, aspect_ratio=aspect_ratio, project_id=project_id,
        )
        stored = result.data
        generated = GeneratedAsset(url=stored.url, storage_key=stored.key)
        if not project_id:
            return generated

        try:
            await self._persist(generated, prompt, model_id, project_id)
        except PersistenceWarning as e:
            logger.warning("Asset stored at %s but not recorded: %s", stored.key, e)
        return generated

    async def _persist(self, generated: GeneratedAsset, prompt: str, model_id: str, project_id: str) -> None:
        async with self._lock_for(project_id):
            async with self.session_factory() as session:
                taken = [a.asset_number for a in await list_project_assets(session, project_id)]
                number = next_free_ordinal(taken)
                if number is None:
                    raise ValidationError(
                        f"Project already has {MAX_ASSETS_PER_PROJECT} assets; delete one first"
                    )
                asset = Asset(
                    project_id=project_id,
                    kind=AssetKind.IMAGE.value,
                    prompt=prompt,
                    model_id=model_id,
                    storage_key=generated.storage_key,
                    url=generated.url,
                    asset_number=number,
                )
                session.add(asset)
                try:
                    await session.commit()
                except SQLAlchemyError as e:
                    await session.rollback()
                    raise PersistenceWarning(str(e)) from e
                generated.asset_id = asset.id
                generated.asset_number = number
        logger.info("Asset #%d created for project=%s", number, project_id[:8])


_asset_generator = AssetGenerator()


def get_asset_generator() -> AssetGenerator:
    """Return the singleton AssetGenerator for metrics access."""
    return _asset_generator
