"""
Shopify GraphQL Admin API client.

Posts queries for one shop and classifies every failure into the
ShopifyAPIError hierarchy so callers can decide between retrying and
giving up without inspecting raw responses.

Each request logs exactly one instrumentation event with the shop domain
as context:
    shopify_graphql.request.success
    shopify_graphql.request.throttled
    shopify_graphql.request.failed
    shopify_graphql.request.connection_error

Documentation: https://shopify.dev/docs/api/admin-graphql
"""

import logging
import re
from typing import Any, Dict, Optional, Sequence

import httpx

from soundfy.config.settings import get_settings
from soundfy.integrations.shopify.exceptions import (
    APIRequestError,
    APIUserError,
    EntityLockedError,
    ShopifyConnectionError,
    TooManyRequestsError,
)
from soundfy.integrations.shopify.session import ShopifySession

logger = logging.getLogger(__name__)

# First error messages Shopify returns when its edge is unhealthy
CONNECTION_ERROR_MESSAGES = frozenset({
    "503 Service Unavailable",
    "503 Service Temporarily Unavailable",
    "504 Gateway Timeout",
    "502 Bad Gateway",
    "520 ",
    "530 ",
    "500 Internal Server Error",
})
THROTTLED_MESSAGE = "Throttled"
ENTITY_LOCKED_CODE = "TOO_MANY_PARALLEL_REQUESTS_FOR_THIS_PRODUCT"

EVENT_SUCCESS = "shopify_graphql.request.success"
EVENT_THROTTLED = "shopify_graphql.request.throttled"
EVENT_FAILED = "shopify_graphql.request.failed"
EVENT_CONNECTION_ERROR = "shopify_graphql.request.connection_error"

_CAMEL_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_WORD = re.compile(r"([a-z\d])([A-Z])")


def underscore(key: str) -> str:
    """Convert a camelCase GraphQL field name to snake_case."""
    key = _CAMEL_BOUNDARY.sub(r"\1_\2", key)
    key = _CAMEL_WORD.sub(r"\1_\2", key)
    return key.replace("-", "_").lower()


def underscore_keys(value: Any) -> Any:
    """Recursively convert mapping keys to snake_case."""
    if isinstance(value, dict):
        return {underscore(k) if isinstance(k, str) else k: underscore_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [underscore_keys(item) for item in value]
    return value


def dig(data: Optional[Dict[str, Any]], path: Sequence[str]) -> Any:
    """Walk nested mappings; returns None as soon as a key is missing."""
    current: Any = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class ShopifyGraphQLClient:
    """
    GraphQL client bound to one shop session.

    SECURITY: the access token is only held in memory and sent as the
    X-Shopify-Access-Token header. It is never logged.
    """

    def __init__(
        self,
        session: ShopifySession,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client for a specific shop.

        Args:
            session: Shop domain and decrypted access token
            api_version: Admin API version (defaults to SHOPIFY_API_VERSION)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        settings = get_settings()
        self.session = session
        self.shop_domain = session.shop_domain.replace("https://", "").replace("http://", "").rstrip("/")
        self.api_version = api_version or settings.shopify_api_version
        self.graphql_url = f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"

        timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": session.access_token,
            },
            transport=transport,
        )

    @property
    def instrumentation_context(self) -> Dict[str, Any]:
        return {"shop_domain": self.shop_domain}

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _instrument(self, event: str, level: int = logging.INFO, **extra) -> None:
        logger.log(level, event, extra={**self.instrumentation_context, **extra})

    async def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute a GraphQL query or mutation.

        Args:
            query: GraphQL document
            variables: Optional query variables

        Returns:
            The response "data" with all keys converted to snake_case

        Raises:
            ShopifyConnectionError: Network failure or upstream 5xx
            TooManyRequestsError: Request throttled
            EntityLockedError: Parallel requests for the same product
            APIRequestError: Any other rejected request or GraphQL error
        """
        payload: Dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = variables

        try:
            response = await self._client.post(self.graphql_url, json=payload)
        except httpx.TransportError as e:
            self._instrument(EVENT_CONNECTION_ERROR, logging.WARNING, error=str(e))
            raise ShopifyConnectionError("Network error") from e

        self._check_status(response)

        try:
            body = response.json()
        except ValueError as e:
            self._instrument(EVENT_FAILED, logging.ERROR, status_code=response.status_code)
            raise APIRequestError(
                "Invalid JSON in Shopify response",
                status_code=response.status_code,
            ) from e

        if not isinstance(body, dict):
            self._instrument(EVENT_FAILED, logging.ERROR, status_code=response.status_code)
            raise APIRequestError(
                f"Unexpected Shopify response body: {type(body).__name__}",
                status_code=response.status_code,
            )

        self._check_errors(body.get("errors"))

        self._instrument(EVENT_SUCCESS)
        return underscore_keys(body.get("data") or {})

    async def mutate(
        self,
        query: str,
        result_path: Sequence[str],
        variables: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Execute a mutation and return its payload.

        Args:
            query: GraphQL mutation
            result_path: snake_case keys leading to the mutation payload
            variables: Optional mutation variables

        Raises:
            APIUserError: If the payload carries userErrors
        """
        data = await self.execute(query, variables)
        result = dig(data, result_path) or {}

        user_errors = result.get("user_errors") or []
        if user_errors:
            logger.warning("shopify_graphql.mutation.user_errors", extra={
                **self.instrumentation_context,
                "user_errors": user_errors,
            })
            raise APIUserError(
                f"Mutation returned user errors: {user_errors}",
                user_errors=user_errors,
            )

        return result

    def _check_status(self, response: httpx.Response) -> None:
        status_code = response.status_code

        if status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            self._instrument(EVENT_THROTTLED, logging.WARNING, retry_after=retry_after)
            raise TooManyRequestsError(retry_after=retry_after)

        if status_code >= 500:
            self._instrument(EVENT_CONNECTION_ERROR, logging.WARNING, status_code=status_code)
            raise ShopifyConnectionError(
                f"Shopify returned {status_code}",
                status_code=status_code,
            )

        if status_code >= 400:
            self._instrument(
                EVENT_FAILED,
                logging.ERROR,
                status_code=status_code,
                response_text=response.text[:500],
            )
            raise APIRequestError(
                f"Shopify API error: {status_code}",
                status_code=status_code,
            )

    def _check_errors(self, errors: Any) -> None:
        if not errors:
            return

        if not isinstance(errors, list):
            errors = [{"message": str(errors)}]

        first = errors[0] if isinstance(errors[0], dict) else {"message": str(errors[0])}
        message = first.get("message")

        if message in CONNECTION_ERROR_MESSAGES:
            self._instrument(EVENT_CONNECTION_ERROR, logging.WARNING, error=message)
            raise ShopifyConnectionError(f"Failed. Response message = {message}.", errors=errors)

        if message == THROTTLED_MESSAGE:
            self._instrument(EVENT_THROTTLED, logging.WARNING)
            raise TooManyRequestsError(errors=errors, status_code=None)

        self._instrument(EVENT_FAILED, logging.ERROR, errors=errors)

        code = (first.get("extensions") or {}).get("code")
        if code == ENTITY_LOCKED_CODE:
            raise EntityLockedError(errors=errors)

        raise APIRequestError(f"GraphQL errors: {errors}", errors=errors)
