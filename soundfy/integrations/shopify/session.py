"""
Shopify Admin API session for one shop.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ShopifySession:
    """Credentials used by the GraphQL client for one shop."""
    shop_domain: str
    access_token: str

    def __post_init__(self):
        if not self.shop_domain:
            raise ValueError("shop_domain is required")
        if not self.access_token:
            raise ValueError("access_token is required")

    def __repr__(self) -> str:
        return f"ShopifySession(shop_domain={self.shop_domain!r})"
