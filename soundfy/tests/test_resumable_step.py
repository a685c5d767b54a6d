"""
Tests for resumable sync steps.

Validates:
- Each batch is committed together with the cursor that follows it
- A crash mid-run keeps the batches already committed and the cursor of
  the last one
- The next run starts after that cursor, not from the beginning
- A completed run clears the cursor so the next run starts fresh
"""

from typing import List, Optional

import pytest

from soundfy.ingestion.importers import ProductImporter
from soundfy.ingestion.jobs.models import CheckpointStatus, SyncCheckpoint
from soundfy.ingestion.jobs.steps import ResumableStep, step_key
from soundfy.integrations.shopify.exceptions import ShopifyConnectionError
from soundfy.integrations.shopify.queries import products_enumerator
from soundfy.models.product import Product

KEY = "SyncProductsJob:shop:process"


class ListEnumerator:
    """Stands in for QueryEnumerator: yields pre-built (nodes, cursor) pages."""

    def __init__(self, pages, after: Optional[str] = None, fail_at: Optional[int] = None):
        self.pages = pages
        self.after = after
        self.fail_at = fail_at

    async def _iterate(self):
        start = 0
        if self.after is not None:
            start = [cursor for _, cursor in self.pages].index(self.after) + 1
        for index in range(start, len(self.pages)):
            if index == self.fail_at:
                raise ShopifyConnectionError()
            yield self.pages[index]

    def __aiter__(self):
        return self._iterate()


def _pages(count: int) -> List:
    return [([{"n": i}], f"c{i + 1}") for i in range(count)]


class TestStepKey:

    def test_format(self):
        assert step_key("SyncProductsJob", "shop-1", "process") == "SyncProductsJob:shop-1:process"


class TestResumableStep:
    """ResumableStep.run with an in-memory enumerator."""

    @pytest.mark.asyncio
    async def test_runs_to_completion(self, db_session):
        processed = []
        step = ResumableStep(db_session, KEY)

        result = await step.run(lambda after: ListEnumerator(_pages(3), after), processed.extend)

        assert [node["n"] for node in processed] == [0, 1, 2]
        assert result.batches == 3
        assert result.records == 3
        assert not result.resumed

        checkpoint = db_session.get(SyncCheckpoint, KEY)
        assert checkpoint.status == CheckpointStatus.COMPLETED
        assert checkpoint.cursor is None
        assert checkpoint.completed_at is not None
        assert step.cursor is None

    @pytest.mark.asyncio
    async def test_crash_keeps_last_committed_cursor(self, db_session):
        """Failing on page 4 leaves the cursor of page 3."""
        step = ResumableStep(db_session, KEY)

        with pytest.raises(ShopifyConnectionError):
            await step.run(lambda after: ListEnumerator(_pages(5), after, fail_at=3), lambda nodes: None)

        db_session.expire_all()
        checkpoint = db_session.get(SyncCheckpoint, KEY)
        assert checkpoint.status == CheckpointStatus.RUNNING
        assert checkpoint.cursor == "c3"
        assert checkpoint.batches_completed == 3
        assert step.cursor == "c3"

    @pytest.mark.asyncio
    async def test_resume_starts_after_stored_cursor(self, db_session):
        """The second run is handed the stored cursor and sees only the rest."""
        step = ResumableStep(db_session, KEY)
        with pytest.raises(ShopifyConnectionError):
            await step.run(lambda after: ListEnumerator(_pages(5), after, fail_at=3), lambda nodes: None)

        handed = []
        processed = []

        def enumerate_from(after):
            handed.append(after)
            return ListEnumerator(_pages(5), after)

        result = await ResumableStep(db_session, KEY).run(enumerate_from, processed.extend)

        assert handed == ["c3"]
        assert [node["n"] for node in processed] == [3, 4]
        assert result.resumed_from == "c3"
        assert result.resumed
        assert result.batches == 2

    @pytest.mark.asyncio
    async def test_completed_step_starts_fresh(self, db_session):
        await ResumableStep(db_session, KEY).run(lambda after: ListEnumerator(_pages(2), after), lambda n: None)

        handed = []

        def enumerate_from(after):
            handed.append(after)
            return ListEnumerator(_pages(2), after)

        result = await ResumableStep(db_session, KEY).run(enumerate_from, lambda n: None)

        assert handed == [None]
        assert result.batches == 2

    @pytest.mark.asyncio
    async def test_async_batch_processor_is_awaited(self, db_session):
        processed = []

        async def process(nodes):
            processed.extend(nodes)

        await ResumableStep(db_session, KEY).run(lambda after: ListEnumerator(_pages(2), after), process)

        assert len(processed) == 2

    @pytest.mark.asyncio
    async def test_failed_batch_is_rolled_back(self, db_session, shop_a):
        """A batch that raises while importing leaves no rows and no cursor advance."""
        importer = ProductImporter(db_session, shop_a)
        calls = []

        def process(nodes):
            calls.append(nodes)
            importer.import_records(nodes)
            if len(calls) == 2:
                raise RuntimeError("boom")

        pages = [
            ([{"id": "gid://shopify/Product/1", "title": "One"}], "c1"),
            ([{"id": "gid://shopify/Product/2", "title": "Two"}], "c2"),
        ]

        with pytest.raises(RuntimeError):
            await ResumableStep(db_session, KEY).run(lambda after: ListEnumerator(pages, after), process)

        db_session.expire_all()
        assert [p.shopify_uuid for p in db_session.query(Product).all()] == ["1"]
        assert db_session.get(SyncCheckpoint, KEY).cursor == "c1"


class TestResumableStepWithShopify:
    """Crash and resume against the fake GraphQL API."""

    @pytest.mark.asyncio
    async def test_resume_requests_only_remaining_pages(self, db_session, shop_a, products_api):
        """After a 503 on page 4, the next run asks Shopify for pages after c3 only."""
        session = shop_a.shopify_session()
        importer = ProductImporter(db_session, shop_a)
        products_api.fail_pages.add(3)

        async with products_api.client_factory(session) as client:
            with pytest.raises(ShopifyConnectionError):
                await ResumableStep(db_session, KEY).run(
                    lambda after: products_enumerator(client, limit=2, after=after),
                    importer.import_records,
                )

        db_session.expire_all()
        assert db_session.query(Product).count() == 6
        assert products_api.cursors_requested == [None, "c1", "c2", "c3"]

        products_api.fail_pages.clear()
        products_api.requests.clear()

        async with products_api.client_factory(session) as client:
            result = await ResumableStep(db_session, KEY).run(
                lambda after: products_enumerator(client, limit=2, after=after),
                importer.import_records,
            )

        assert products_api.cursors_requested == ["c3", "c4"]
        assert result.resumed_from == "c3"
        assert result.records == 4
        assert db_session.query(Product).count() == 10
