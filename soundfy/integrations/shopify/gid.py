"""
Shopify global ID helpers.

GraphQL returns ids like "gid://shopify/Product/123"; webhooks send the
bare number 123. Both map to the local shopify_uuid "123".
"""

from typing import Any


def shopify_uuid(value: Any) -> str:
    """
    Extract the numeric id from a Shopify global id or bare id.

    Raises:
        ValueError: If the value is empty or has no id segment
    """
    if value is None:
        raise ValueError("Shopify id is required")

    raw = str(value).strip()
    if raw.startswith("gid://"):
        # gid://<app>/<Resource>/<id>[?params]
        parts = raw[len("gid://"):].split("?", 1)[0].split("/")
        raw = parts[2] if len(parts) == 3 else ""

    if not raw:
        raise ValueError(f"Invalid Shopify id: {value!r}")
    return raw


def to_gid(resource: str, value: Any) -> str:
    """Build a global id, e.g. to_gid("Product", 123)."""
    return f"gid://shopify/{resource}/{shopify_uuid(value)}"
