"""
Tests for the asset catalog: gallery, dashboards and uploads.
"""
import uuid
from typing import Any, Dict

import pytest
from sqlalchemy import select

from marketplace.core.catalog import AssetCatalog
from marketplace.core.context import RequestContext
from marketplace.core.exceptions import AuthRequired, NotFound, ValidationFailure
from marketplace.database.models import Asset
from marketplace.integrations.identity import Session

FILE_URL = "https://res.cloudinary.com/test-cloud/image/upload/v1/asset-marketplace/new.png"


@pytest.fixture
def catalog() -> AssetCatalog:
    return AssetCatalog()


@pytest.fixture
def owner_ctx(seed) -> RequestContext:
    return RequestContext(session=Session(user_id=seed.owner_id))


def upload_fields(**overrides: Any) -> Dict[str, Any]:
    fields = {
        "title": "Desert Road",
        "description": "Empty highway at dusk",
        "category_id": 1,
        "file_url": FILE_URL,
    }
    fields.update(overrides)
    return fields


class TestCatalogReads:
    """Gallery and detail queries."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_categories(self, catalog, test_db, seed) -> None:
        categories = await catalog.list_categories(test_db)

        assert [(c.id, c.name) for c in categories] == [(1, "Photos"), (2, "Illustrations")]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_public_listing_only_shows_approved(self, catalog, test_db, seed) -> None:
        assets = await catalog.list_public_assets(test_db)

        assert {a.id for a in assets} == {seed.approved_photo_id, seed.approved_illustration_id}
        by_id = {a.id: a for a in assets}
        assert by_id[seed.approved_photo_id].category_name == "Photos"
        assert by_id[seed.approved_photo_id].owner_name == "Olive Owner"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_public_listing_category_filter(self, catalog, test_db, seed) -> None:
        photos = await catalog.list_public_assets(test_db, category_id=seed.photos_id)
        empty = await catalog.list_public_assets(test_db, category_id=99)

        assert [a.id for a in photos] == [seed.approved_photo_id]
        assert empty == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_user_assets_include_every_state_oldest_first(
        self, catalog, test_db, seed
    ) -> None:
        assets = await catalog.list_user_assets(test_db, seed.owner_id)

        assert [a.id for a in assets] == [
            seed.approved_photo_id,
            seed.approved_illustration_id,
            seed.pending_asset_id,
        ]
        assert await catalog.list_user_assets(test_db, seed.buyer_id) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_asset_detail(self, catalog, test_db, seed) -> None:
        detail = await catalog.get_asset_detail(test_db, str(seed.approved_photo_id))

        assert detail.title == "Mountain Sunrise"
        assert detail.category_name == "Photos"
        assert detail.owner_name == "Olive Owner"
        assert detail.owner_image == "https://img.example.com/olive.png"

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("asset_id", [str(uuid.uuid4()), "bogus"])
    async def test_asset_detail_not_found(self, catalog, test_db, seed, asset_id) -> None:
        with pytest.raises(NotFound):
            await catalog.get_asset_detail(test_db, asset_id)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_dashboard_loads_both_lists(
        self, catalog, session_factory, seed, owner_ctx
    ) -> None:
        dashboard = await catalog.dashboard(session_factory, owner_ctx)

        assert [c.name for c in dashboard.categories] == ["Photos", "Illustrations"]
        assert len(dashboard.assets) == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_dashboard_requires_session(self, catalog, session_factory, seed) -> None:
        with pytest.raises(AuthRequired):
            await catalog.dashboard(session_factory, RequestContext())


class TestUploadAsset:
    """Asset submission."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_creates_pending_asset_owned_by_caller(
        self, catalog, test_db, seed, owner_ctx
    ) -> None:
        asset = await catalog.upload_asset(test_db, owner_ctx, upload_fields())

        stored = await test_db.get(Asset, asset.id)
        assert stored.approval_state == "pending"
        assert stored.user_id == seed.owner_id
        assert stored.title == "Desert Road"
        assert stored.thumbnail_url == FILE_URL

        public = await catalog.list_public_assets(test_db)
        assert asset.id not in {a.id for a in public}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_explicit_thumbnail_and_string_category(
        self, catalog, test_db, seed, owner_ctx
    ) -> None:
        thumb = "https://res.cloudinary.com/test-cloud/image/upload/t_thumb/new.png"

        asset = await catalog.upload_asset(
            test_db, owner_ctx, upload_fields(category_id="2", thumbnail_url=thumb, title="  Spaced  ")
        )

        assert asset.category_id == 2
        assert asset.thumbnail_url == thumb
        assert asset.title == "Spaced"

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": ""},
            {"title": "   "},
            {"category_id": 0},
            {"category_id": "abc"},
            {"file_url": "ftp://example.com/file.png"},
            {"file_url": "not a url"},
            {"thumbnail_url": "javascript:alert(1)"},
        ],
    )
    async def test_invalid_fields_write_nothing(
        self, catalog, test_db, seed, owner_ctx, overrides
    ) -> None:
        with pytest.raises(ValidationFailure):
            await catalog.upload_asset(test_db, owner_ctx, upload_fields(**overrides))

        assets = (await test_db.execute(select(Asset))).scalars().all()
        assert len(assets) == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_required_field(self, catalog, test_db, seed, owner_ctx) -> None:
        fields = upload_fields()
        del fields["file_url"]

        with pytest.raises(ValidationFailure, match="file_url"):
            await catalog.upload_asset(test_db, owner_ctx, fields)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_category(self, catalog, test_db, seed, owner_ctx) -> None:
        with pytest.raises(ValidationFailure, match="Category 42"):
            await catalog.upload_asset(test_db, owner_ctx, upload_fields(category_id=42))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_requires_session(self, catalog, test_db, seed) -> None:
        with pytest.raises(AuthRequired):
            await catalog.upload_asset(test_db, RequestContext(), upload_fields())


class TestCatalogRoutes:
    """Catalog and dashboard HTTP endpoints."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_categories_and_gallery(self, client, seed) -> None:
        categories = await client.get("/categories")
        gallery = await client.get("/gallery", params={"category_id": seed.illustrations_id})

        assert categories.json() == [{"id": 1, "name": "Photos"}, {"id": 2, "name": "Illustrations"}]
        assert [a["title"] for a in gallery.json()] == ["Ink Fox"]
        assert gallery.json()[0]["category_name"] == "Illustrations"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_asset_detail(self, client, seed) -> None:
        response = await client.get(f"/gallery/{seed.approved_photo_id}")
        missing = await client.get(f"/gallery/{uuid.uuid4()}")

        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Mountain Sunrise"
        assert body["owner_name"] == "Olive Owner"
        assert body["has_purchased"] is False
        assert body["download_url"] is None
        assert missing.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_dashboard(self, client, seed, auth_headers) -> None:
        response = await client.get("/dashboard/assets", headers=auth_headers(seed.owner_id))
        anonymous = await client.get("/dashboard/assets")

        assert response.status_code == 200
        body = response.json()
        assert len(body["categories"]) == 2
        assert [a["approval_state"] for a in body["assets"]] == ["approved", "approved", "pending"]
        assert anonymous.status_code == 401

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_upload(self, client, seed, auth_headers) -> None:
        headers = auth_headers(seed.owner_id)

        created = await client.post("/dashboard/assets", json=upload_fields(), headers=headers)
        invalid = await client.post(
            "/dashboard/assets", json=upload_fields(title=""), headers=headers
        )
        anonymous = await client.post("/dashboard/assets", json=upload_fields())

        assert created.status_code == 201
        assert created.json()["success"] is True
        uuid.UUID(created.json()["asset_id"])

        assert invalid.status_code == 400
        assert invalid.json()["success"] is False
        assert "title" in invalid.json()["error"]

        assert anonymous.status_code == 401
        assert anonymous.json() == {"success": False, "error": "Sign in required"}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_purchases_require_session(self, client, seed) -> None:
        response = await client.get("/dashboard/purchases")

        assert response.status_code == 401
