"""
Tests for product webhook jobs.

Validates:
- products/create inserts the product and its variants for the webhook's shop
- Redelivering the same webhook changes nothing
- A discarded product is never written again
- Lock contention fails fast with a retry and applies nothing, including
  against a row really held by another PostgreSQL session
- A delete that overtakes its create is retried
- Shops never see each other's products
"""

from unittest.mock import patch

import pytest

from soundfy.database.exceptions import RecordLockedError
from soundfy.database.locking import non_blocking_lock
from soundfy.ingestion.jobs.retry import ErrorCategory
from soundfy.jobs.base import JobStatus
from soundfy.jobs.webhooks.products import (
    ProductsCreateJob,
    ProductsDeleteJob,
    ProductsUpdateJob,
    create_or_find_product,
)
from soundfy.models.product import Product
from soundfy.models.variant import Variant


def _webhook(product_id=123, title="Album X", status="ACTIVE", variants=None, **extra):
    payload = {
        "id": product_id,
        "title": title,
        "status": status,
        "image": {"src": "https://cdn.example.com/album-x.jpg"},
        "variants": variants if variants is not None else [{"id": 456, "title": "Track 1"}],
        "vendor": "ignored",
    }
    payload.update(extra)
    return payload


def _arguments(shop, webhook):
    return {"shop_domain": shop.shopify_domain, "webhook": webhook}


def _product(db, shop, uuid="123"):
    db.expire_all()
    return db.query(Product).filter(Product.shop_id == shop.id, Product.shopify_uuid == uuid).one_or_none()


class TestProductsCreate:
    """products/create"""

    @pytest.mark.asyncio
    async def test_creates_product_and_variants(self, db_session, shop_a):
        result = await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, _webhook()))

        assert result.status == JobStatus.SUCCEEDED
        product = _product(db_session, shop_a)
        assert product.title == "Album X"
        assert product.status == "active"
        assert product.image_url == "https://cdn.example.com/album-x.jpg"
        assert product.discarded_at is None

        [variant] = product.variants
        assert variant.shopify_uuid == "456"
        assert variant.title == "Track 1"
        assert variant.shop_id == shop_a.id

    @pytest.mark.asyncio
    async def test_accepts_global_ids(self, db_session, shop_a):
        webhook = _webhook(
            product_id="gid://shop/Product/123",
            variants=[{"id": "gid://shop/ProductVariant/456", "title": "Track 1"}],
        )

        result = await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, webhook))

        assert result.succeeded
        product = _product(db_session, shop_a)
        assert product.variants[0].shopify_uuid == "456"

    @pytest.mark.asyncio
    async def test_image_falls_back_to_images_list(self, db_session, shop_a):
        webhook = _webhook(image=None, images=[{"src": "https://cdn.example.com/first.jpg"}])

        await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, webhook))

        assert _product(db_session, shop_a).image_url == "https://cdn.example.com/first.jpg"

    @pytest.mark.asyncio
    async def test_redelivery_is_a_no_op(self, db_session, shop_a):
        """The same webhook twice leaves one product, one variant, same timestamps."""
        arguments = _arguments(shop_a, _webhook())
        await ProductsCreateJob.perform_now(db_session, arguments)
        product = _product(db_session, shop_a)
        variant_updated_at = product.variants[0].updated_at

        result = await ProductsCreateJob.perform_now(db_session, arguments)

        assert result.succeeded
        assert db_session.query(Product).count() == 1
        assert db_session.query(Variant).count() == 1
        product = _product(db_session, shop_a)
        assert product.title == "Album X"
        assert product.variants[0].updated_at == variant_updated_at

    @pytest.mark.asyncio
    async def test_invalid_payload_is_discarded(self, db_session, shop_a):
        result = await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, {"title": "no id"}))

        assert result.status == JobStatus.DISCARDED
        assert result.error_category == ErrorCategory.INVALID_PAYLOAD
        assert db_session.query(Product).count() == 0

    @pytest.mark.asyncio
    async def test_unknown_shop_is_discarded(self, db_session):
        arguments = {"shop_domain": "nobody.myshopify.com", "webhook": _webhook()}

        result = await ProductsCreateJob.perform_now(db_session, arguments)

        assert result.status == JobStatus.DISCARDED
        assert result.error_category == ErrorCategory.TENANT_NOT_FOUND
        assert db_session.query(Product).count() == 0


class TestProductsUpdate:
    """products/update"""

    @pytest.mark.asyncio
    async def test_updates_fields_and_adds_variants(self, db_session, shop_a):
        await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, _webhook()))

        webhook = _webhook(
            title="Album X (Remastered)",
            status="ARCHIVED",
            variants=[{"id": 456, "title": "Track 1 (2024)"}, {"id": 457, "title": "Track 2"}],
        )
        result = await ProductsUpdateJob.perform_now(db_session, _arguments(shop_a, webhook))

        assert result.succeeded
        product = _product(db_session, shop_a)
        assert product.title == "Album X (Remastered)"
        assert product.status == "archived"
        titles = sorted(v.title for v in product.variants)
        assert titles == ["Track 1 (2024)", "Track 2"]

    @pytest.mark.asyncio
    async def test_update_before_create_creates(self, db_session, shop_a):
        """An update that arrives first still produces the product."""
        result = await ProductsUpdateJob.perform_now(db_session, _arguments(shop_a, _webhook()))

        assert result.succeeded
        assert _product(db_session, shop_a).title == "Album X"

    @pytest.mark.asyncio
    async def test_discarded_product_stays_discarded(self, db_session, shop_a):
        """Updates after a delete are ignored."""
        await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, _webhook()))
        await ProductsDeleteJob.perform_now(db_session, _arguments(shop_a, {"id": 123}))

        result = await ProductsUpdateJob.perform_now(db_session, _arguments(shop_a, _webhook(title="Back again")))

        assert result.succeeded
        product = _product(db_session, shop_a)
        assert product.discarded_at is not None
        assert product.title == "Album X"

    @pytest.mark.asyncio
    async def test_lock_contention_retries_without_applying(self, db_session, shop_a):
        """If the row is locked elsewhere the job retries and writes nothing."""
        await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, _webhook()))

        with patch(
            "soundfy.jobs.webhooks.products.non_blocking_lock",
            side_effect=RecordLockedError("locked", model="Product"),
        ):
            result = await ProductsUpdateJob.perform_now(
                db_session,
                _arguments(shop_a, _webhook(title="Changed", variants=[{"id": 999, "title": "New"}])),
            )

        assert result.status == JobStatus.RETRY
        assert result.error_category == ErrorCategory.RECORD_LOCKED
        assert result.delay_seconds > 0
        product = _product(db_session, shop_a)
        assert product.title == "Album X"
        assert db_session.query(Variant).filter(Variant.shopify_uuid == "999").count() == 0


class TestProductsDelete:
    """products/delete"""

    @pytest.mark.asyncio
    async def test_discards_product_and_variants(self, db_session, shop_a):
        await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, _webhook()))

        result = await ProductsDeleteJob.perform_now(db_session, _arguments(shop_a, {"id": 123}))

        assert result.succeeded
        product = _product(db_session, shop_a)
        assert product is not None
        assert product.discarded_at is not None
        assert all(v.discarded_at is not None for v in product.variants)

    @pytest.mark.asyncio
    async def test_delete_twice_is_a_no_op(self, db_session, shop_a):
        await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, _webhook()))
        await ProductsDeleteJob.perform_now(db_session, _arguments(shop_a, {"id": 123}))
        discarded_at = _product(db_session, shop_a).discarded_at

        result = await ProductsDeleteJob.perform_now(db_session, _arguments(shop_a, {"id": 123}))

        assert result.succeeded
        assert _product(db_session, shop_a).discarded_at == discarded_at

    @pytest.mark.asyncio
    async def test_delete_before_create_retries(self, db_session, shop_a):
        """The delete is retried until the create has landed."""
        result = await ProductsDeleteJob.perform_now(db_session, _arguments(shop_a, {"id": 123}))

        assert result.status == JobStatus.RETRY
        assert result.error_category == ErrorCategory.RECORD_NOT_FOUND
        assert db_session.query(Product).count() == 0

    @pytest.mark.asyncio
    async def test_lock_contention_retries(self, db_session, shop_a):
        await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, _webhook()))

        with patch(
            "soundfy.jobs.webhooks.products.non_blocking_lock",
            side_effect=RecordLockedError("locked"),
        ):
            result = await ProductsDeleteJob.perform_now(db_session, _arguments(shop_a, {"id": 123}))

        assert result.status == JobStatus.RETRY
        assert result.error_category == ErrorCategory.RECORD_LOCKED
        assert _product(db_session, shop_a).discarded_at is None



class TestRowLockContention:
    """A second session meets a product row already locked by the first."""

    @pytest.mark.asyncio
    async def test_update_retries_while_row_is_held(self, postgres_session_factory, db_session, shop_a):
        await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, _webhook()))
        product_id = _product(db_session, shop_a).id
        arguments = _arguments(shop_a, _webhook(title="Changed", variants=[{"id": 999, "title": "New"}]))
        db_session.rollback()

        holder = postgres_session_factory()
        contender = postgres_session_factory()
        try:
            with non_blocking_lock(holder, holder.get(Product, product_id)) as locked:
                locked.title = "Held"
                result = await ProductsUpdateJob.perform_now(contender, arguments)
        finally:
            contender.close()
            holder.close()

        assert result.status == JobStatus.RETRY
        assert result.error_category == ErrorCategory.RECORD_LOCKED
        product = _product(db_session, shop_a)
        assert product.title == "Held"
        assert db_session.query(Variant).filter(Variant.shopify_uuid == "999").count() == 0

    @pytest.mark.asyncio
    async def test_update_applies_once_lock_is_released(self, postgres_session_factory, db_session, shop_a):
        await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, _webhook()))
        product_id = _product(db_session, shop_a).id
        arguments = _arguments(shop_a, _webhook(title="Changed"))
        db_session.rollback()

        holder = postgres_session_factory()
        try:
            with non_blocking_lock(holder, holder.get(Product, product_id)):
                pass
        finally:
            holder.close()
        result = await ProductsUpdateJob.perform_now(db_session, arguments)

        assert result.succeeded
        assert _product(db_session, shop_a).title == "Changed"

@pytest.mark.security
class TestTenantIsolation:
    """Webhooks for one shop never touch another shop's rows."""

    @pytest.mark.asyncio
    async def test_same_product_id_in_two_shops(self, db_session, shop_a, shop_b):
        await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, _webhook(title="A's album")))
        await ProductsCreateJob.perform_now(db_session, _arguments(shop_b, _webhook(title="B's album")))

        await ProductsUpdateJob.perform_now(db_session, _arguments(shop_b, _webhook(title="B renamed")))
        await ProductsDeleteJob.perform_now(db_session, _arguments(shop_b, {"id": 123}))

        product_a = _product(db_session, shop_a)
        product_b = _product(db_session, shop_b)
        assert product_a.title == "A's album"
        assert product_a.discarded_at is None
        assert product_a.variants[0].discarded_at is None
        assert product_b.title == "B renamed"
        assert product_b.discarded_at is not None

    @pytest.mark.asyncio
    async def test_delete_for_other_shop_does_not_find_product(self, db_session, shop_a, shop_b):
        await ProductsCreateJob.perform_now(db_session, _arguments(shop_a, _webhook()))

        result = await ProductsDeleteJob.perform_now(db_session, _arguments(shop_b, {"id": 123}))

        assert result.error_category == ErrorCategory.RECORD_NOT_FOUND
        assert _product(db_session, shop_a).discarded_at is None


class TestCreateOrFindProduct:

    def test_returns_existing_row(self, db_session, shop_a):
        first = create_or_find_product(db_session, shop_a, "123")
        second = create_or_find_product(db_session, shop_a, "123")

        assert first.id == second.id
        assert db_session.query(Product).count() == 1

    def test_conflicting_insert_loads_winner(self, db_session, shop_a):
        """When the pre-check misses a concurrent insert the unique key resolves it."""
        winner = create_or_find_product(db_session, shop_a, "123")

        with patch("soundfy.jobs.webhooks.products.find_product", side_effect=[None, winner]):
            product = create_or_find_product(db_session, shop_a, "123")

        assert product.id == winner.id
        assert db_session.query(Product).count() == 1
