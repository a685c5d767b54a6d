"""
Shopify Admin API exceptions.

Hierarchy:
    ShopifyAPIError
    ├── APIUserError            mutation returned userErrors
    ├── APIRequestError         request rejected or GraphQL errors
    │   ├── TooManyRequestsError    throttled
    │   └── EntityLockedError       parallel writes to one product
    └── ShopifyConnectionError  network failure or upstream 5xx
"""

from typing import Any, Dict, List, Optional


class ShopifyAPIError(Exception):
    """Base exception for Shopify Admin API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        response: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or []
        self.response = response or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, status_code={self.status_code})"


class APIUserError(ShopifyAPIError):
    """Raised when a mutation payload carries userErrors."""

    def __init__(self, message: str, user_errors: Optional[List[Dict[str, Any]]] = None, **kwargs):
        super().__init__(message, errors=user_errors, **kwargs)
        self.user_errors = user_errors or []


class APIRequestError(ShopifyAPIError):
    """Raised when Shopify rejects the request or returns GraphQL errors."""
    pass


class TooManyRequestsError(APIRequestError):
    """Raised when the request was throttled (HTTP 429 or "Throttled")."""

    def __init__(
        self,
        message: str = "Throttled - please retry after a delay",
        retry_after: Optional[float] = None,
        **kwargs,
    ):
        kwargs.setdefault("status_code", 429)
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class EntityLockedError(APIRequestError):
    """Raised when Shopify refuses parallel requests for the same product."""

    def __init__(self, message: str = "Too many parallel requests for this product", **kwargs):
        super().__init__(message, **kwargs)


class ShopifyConnectionError(ShopifyAPIError):
    """Raised on network errors and upstream gateway failures."""

    def __init__(self, message: str = "Network error", **kwargs):
        super().__init__(message, **kwargs)
