"""
Connection queries used by the catalog sync.

Request variables are always {limit, after, query}.
"""

from typing import Optional

from soundfy.integrations.shopify.client import ShopifyGraphQLClient
from soundfy.integrations.shopify.query_enumerator import QueryEnumerator

PRODUCTS_QUERY = """
query GetProducts($limit: Int!, $after: String, $query: String) {
    products(first: $limit, after: $after, query: $query) {
        nodes {
            id
            title
            status
            featuredImage {
                url
            }
            variants(first: 100) {
                nodes {
                    id
                    title
                }
            }
        }
        pageInfo {
            hasNextPage
            endCursor
        }
    }
}
"""

COLLECTIONS_QUERY = """
query GetCollections($limit: Int!, $after: String, $query: String) {
    collections(first: $limit, after: $after, query: $query) {
        nodes {
            id
            title
        }
        pageInfo {
            hasNextPage
            endCursor
        }
    }
}
"""


def products_enumerator(
    client: ShopifyGraphQLClient,
    limit: int,
    after: Optional[str] = None,
    search: Optional[str] = None,
) -> QueryEnumerator:
    return QueryEnumerator(
        client,
        PRODUCTS_QUERY,
        ("products",),
        variables={"limit": limit, "after": after, "query": search},
        after=after,
    )


def collections_enumerator(
    client: ShopifyGraphQLClient,
    limit: int,
    after: Optional[str] = None,
    search: Optional[str] = None,
) -> QueryEnumerator:
    return QueryEnumerator(
        client,
        COLLECTIONS_QUERY,
        ("collections",),
        variables={"limit": limit, "after": after, "query": search},
        after=after,
    )
