"""Shopify Admin API integration: session, GraphQL client, pagination."""

from soundfy.integrations.shopify.session import ShopifySession
from soundfy.integrations.shopify.exceptions import (
    ShopifyAPIError,
    APIUserError,
    APIRequestError,
    TooManyRequestsError,
    EntityLockedError,
    ShopifyConnectionError,
)
from soundfy.integrations.shopify.client import ShopifyGraphQLClient
from soundfy.integrations.shopify.query_enumerator import Page, QueryEnumerator
from soundfy.integrations.shopify.gid import shopify_uuid

__all__ = [
    "ShopifySession",
    "ShopifyAPIError",
    "APIUserError",
    "APIRequestError",
    "TooManyRequestsError",
    "EntityLockedError",
    "ShopifyConnectionError",
    "ShopifyGraphQLClient",
    "Page",
    "QueryEnumerator",
    "shopify_uuid",
]
