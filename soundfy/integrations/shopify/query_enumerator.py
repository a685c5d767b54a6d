"""
Cursor-paginated enumeration of GraphQL connection queries.

The enumerator issues one request per page. Its cursor advances to the
last observed end cursor even when a page comes back empty, so a run of
empty pages cannot loop forever. Iteration yields only non-empty pages.

Usage:
    enumerator = QueryEnumerator(client, PRODUCTS_QUERY, ("products",), {"limit": 10})
    async for nodes, end_cursor in enumerator:
        import_batch(nodes)
        save_cursor(end_cursor)

An enumerator is single-use. To resume, build a new one with the stored
cursor as ``after``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from soundfy.integrations.shopify.client import ShopifyGraphQLClient, dig

logger = logging.getLogger(__name__)


@dataclass
class Page:
    """One page of a connection query."""
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    end_cursor: Optional[str] = None
    has_next_page: bool = False


class QueryEnumerator:
    """Lazily walks a GraphQL connection page by page."""

    def __init__(
        self,
        client: ShopifyGraphQLClient,
        query: str,
        result_path: Sequence[str],
        variables: Optional[Dict[str, Any]] = None,
        after: Optional[str] = None,
    ):
        """
        Args:
            client: GraphQL client for the shop
            query: Connection query taking an $after variable
            result_path: snake_case keys leading to the connection
                (e.g. ("products",))
            variables: Base query variables
            after: Cursor to start after (None starts at the beginning)
        """
        self.client = client
        self.query = query
        self.result_path = tuple(result_path)
        self.variables = dict(variables or {})
        if after is None:
            after = self.variables.get("after")
        self.cursor: Optional[str] = after
        self.exhausted = False
        self.requests = 0

    async def next_page(self) -> Optional[Page]:
        """
        Fetch the next page.

        Returns:
            The page, possibly with no nodes, or None once exhausted.

        Client errors propagate unchanged and leave the cursor untouched.
        """
        if self.exhausted:
            return None

        data = await self.client.execute(self.query, {**self.variables, "after": self.cursor})
        self.requests += 1

        result = dig(data, self.result_path)
        if not isinstance(result, dict):
            logger.warning("shopify_graphql.enumerator.missing_result", extra={
                "result_path": ".".join(self.result_path),
                "shop_domain": self.client.shop_domain,
            })
            self.exhausted = True
            return Page(nodes=[], end_cursor=self.cursor, has_next_page=False)

        page_info = result.get("page_info") or {}
        page = Page(
            nodes=list(result.get("nodes") or []),
            end_cursor=page_info.get("end_cursor"),
            has_next_page=bool(page_info.get("has_next_page")),
        )

        self.cursor = page.end_cursor
        if not page.has_next_page:
            self.exhausted = True

        return page

    async def pages(self) -> AsyncIterator[Tuple[List[Dict[str, Any]], Optional[str]]]:
        """Yield (nodes, end_cursor) for every non-empty page."""
        while True:
            page = await self.next_page()
            if page is None:
                return
            if page.nodes:
                yield page.nodes, page.end_cursor
            if self.exhausted:
                return

    def __aiter__(self):
        return self.pages()
