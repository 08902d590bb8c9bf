"""Tests for scenesmith/services/asset_generator.py"""

import gc

import pytest
from sqlalchemy.exc import IntegrityError

from scenesmith.database import async_session_factory
from scenesmith.errors import ValidationError
from scenesmith.models.asset import MAX_ASSETS_PER_PROJECT, Asset
from scenesmith.models.project import Project
from scenesmith.services.asset_generator import (
    AssetGenerator,
    list_project_assets,
    next_free_ordinal,
    renumber_assets,
)


async def make_project_with_assets(numbers=()) -> str:
    async with async_session_factory() as session:
        project = Project(owner_id="local", title="Assets", prompt="A harbour at dawn", duration=30)
        session.add(project)
        await session.flush()
        for n in numbers:
            session.add(Asset(
                project_id=project.id, prompt=f"asset {n}", storage_key=f"{project.id}/assets/{n}.png",
                url=f"/media/{project.id}/assets/{n}.png", asset_number=n,
            ))
        await session.commit()
        return project.id


async def asset_numbers(project_id):
    async with async_session_factory() as session:
        return [a.asset_number for a in await list_project_assets(session, project_id)]


class TestNextFreeOrdinal:

    def test_empty_starts_at_one(self):
        assert next_free_ordinal([]) == 1

    def test_fills_lowest_gap(self):
        assert next_free_ordinal([1, 3, 4]) == 2

    def test_unnumbered_assets_ignored(self):
        assert next_free_ordinal([None, 1]) == 2

    def test_full_project(self):
        assert next_free_ordinal(list(range(1, MAX_ASSETS_PER_PROJECT + 1))) is None


class TestAssetGenerator:

    async def test_assets_numbered_in_creation_order(self, fake_provider, store):
        pid = await make_project_with_assets()
        generator = AssetGenerator(provider=fake_provider, store=store)

        first = await generator.generate_asset("red kite", project_id=pid)
        second = await generator.generate_asset("old lighthouse", project_id=pid)

        assert (first.asset_number, second.asset_number) == (1, 2)
        assert first.asset_id is not None
        assert first.storage_key.startswith(f"{pid}/assets/")
        assert store.exists(first.storage_key)
        assert await asset_numbers(pid) == [1, 2]

    async def test_gap_filled_before_sequence_grows(self, fake_provider, store):
        pid = await make_project_with_assets([1, 3])
        generated = await AssetGenerator(provider=fake_provider, store=store).generate_asset("kite", project_id=pid)
        assert generated.asset_number == 2

    async def test_sixth_asset_rejected_without_provider_call(self, fake_provider, store):
        pid = await make_project_with_assets(range(1, MAX_ASSETS_PER_PROJECT + 1))
        with pytest.raises(ValidationError, match="already has 5 assets"):
            await AssetGenerator(provider=fake_provider, store=store).generate_asset("one more", project_id=pid)
        assert fake_provider.image_requests == []

    async def test_without_project_nothing_is_recorded(self, fake_provider, store):
        generated = await AssetGenerator(provider=fake_provider, store=store).generate_asset("loose sketch")
        assert generated.asset_id is None
        assert generated.asset_number is None
        assert generated.storage_key.startswith("transient/assets/")

    async def test_empty_prompt(self, fake_provider, store):
        with pytest.raises(ValidationError):
            await AssetGenerator(provider=fake_provider, store=store).generate_asset("   ")
        assert fake_provider.image_requests == []

    async def test_default_image_model_used(self, fake_provider, store):
        from scenesmith.config import get_settings

        await AssetGenerator(provider=fake_provider, store=store).generate_asset("kite")
        assert fake_provider.image_requests[0].model_id == get_settings().DEFAULT_IMAGE_MODEL

    async def test_project_lock_released_after_persist(self, fake_provider, store):
        pid = await make_project_with_assets()
        generator = AssetGenerator(provider=fake_provider, store=store)
        await generator.generate_asset("kite", project_id=pid)
        gc.collect()
        assert pid not in generator._locks


class TestRenumberAssets:

    async def test_compacts_after_delete(self):
        pid = await make_project_with_assets([1, 2, 3])
        async with async_session_factory() as session:
            assets = await list_project_assets(session, pid)
            await session.delete(assets[1])
            await session.flush()
            remaining = await renumber_assets(session, pid)
            await session.commit()

        assert [a.prompt for a in remaining] == ["asset 1", "asset 3"]
        assert await asset_numbers(pid) == [1, 2]

    async def test_shift_down_past_occupied_numbers(self):
        pid = await make_project_with_assets([2, 3, 5])
        async with async_session_factory() as session:
            remaining = await renumber_assets(session, pid)
            await session.commit()

        assert [a.prompt for a in remaining] == ["asset 2", "asset 3", "asset 5"]
        assert await asset_numbers(pid) == [1, 2, 3]

    async def test_duplicate_number_rejected(self):
        pid = await make_project_with_assets([1])
        with pytest.raises(IntegrityError):
            async with async_session_factory() as session:
                session.add(Asset(
                    project_id=pid, prompt="twin", storage_key=f"{pid}/assets/twin.png",
                    url=f"/media/{pid}/assets/twin.png", asset_number=1,
                ))
                await session.commit()
