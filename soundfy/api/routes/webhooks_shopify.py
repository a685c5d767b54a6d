"""
Shopify webhook receiver.

SECURITY: All webhooks MUST verify HMAC signature before processing.
Shopify signs webhooks with the app's API secret.

The receiver does no work itself: it verifies the request and enqueues
the job registered for the topic with {shop_domain, webhook}. When the
installed backend runs the job inline and it asks to be retried, the
delivery is answered with 503 so Shopify sends it again.

Documentation: https://shopify.dev/docs/apps/webhooks/configuration/https
"""

import base64
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Tuple

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from soundfy.config.settings import get_settings
from soundfy.jobs.backend import JobBackend, get_job_backend
from soundfy.jobs.base import JobResult
from soundfy.jobs.webhooks import WEBHOOK_JOBS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shopify/webhooks", tags=["webhooks"])


def verify_shopify_webhook(data: bytes, hmac_header: str, api_secret: str) -> bool:
    """
    Check the X-Shopify-Hmac-Sha256 header against the raw body.

    The header is the base64 HMAC-SHA256 digest of the body keyed with the
    app's API secret. Missing header or secret never verifies.
    """
    if not hmac_header or not api_secret:
        return False

    digest = hmac.new(api_secret.encode("utf-8"), data, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(expected, hmac_header)


def _reject(status_code: int, detail: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail=detail)


async def get_verified_webhook_body(request: Request) -> Tuple[Dict[str, Any], str]:
    """
    Return (webhook body, shop domain) for a correctly signed request.

    Raises:
        HTTPException: 401 on a missing or invalid signature, 503 when no
            API secret is configured, 400 on a missing shop domain or a body
            that is not a JSON object
    """
    hmac_header = request.headers.get("X-Shopify-Hmac-Sha256")
    if not hmac_header:
        logger.warning("webhook.missing_hmac")
        raise _reject(status.HTTP_401_UNAUTHORIZED, "Missing HMAC signature")

    api_secret = get_settings().shopify_api_secret
    if not api_secret:
        logger.error("webhook.secret_not_configured")
        raise _reject(status.HTTP_503_SERVICE_UNAVAILABLE, "Webhook verification not configured")

    body = await request.body()
    shop_domain = request.headers.get("X-Shopify-Shop-Domain")

    if not verify_shopify_webhook(body, hmac_header, api_secret):
        logger.warning("webhook.invalid_hmac", extra={"shop_domain": shop_domain})
        raise _reject(status.HTTP_401_UNAUTHORIZED, "Invalid HMAC signature")

    if not shop_domain:
        logger.warning("webhook.missing_shop_domain")
        raise _reject(status.HTTP_400_BAD_REQUEST, "Missing shop domain")

    try:
        data = json.loads(body)
    except ValueError:
        logger.error("webhook.invalid_json", extra={"shop_domain": shop_domain})
        raise _reject(status.HTTP_400_BAD_REQUEST, "Invalid JSON body")

    if not isinstance(data, dict):
        logger.error("webhook.not_an_object", extra={"shop_domain": shop_domain})
        raise _reject(status.HTTP_400_BAD_REQUEST, "Webhook body must be a JSON object")

    return data, shop_domain


@router.post("/{topic}", status_code=status.HTTP_204_NO_CONTENT)
async def receive_webhook(
    topic: str,
    request: Request,
    backend: JobBackend = Depends(get_job_backend),
) -> Response:
    """Verify a webhook and enqueue the job for its topic."""
    job_name = WEBHOOK_JOBS.get(topic)
    if job_name is None:
        logger.warning("webhook.unknown_topic", extra={"topic": topic})
        raise _reject(status.HTTP_404_NOT_FOUND, f"Unknown webhook topic: {topic}")

    data, shop_domain = await get_verified_webhook_body(request)

    logger.info("webhook.received", extra={
        "topic": topic,
        "shop_domain": shop_domain,
        "webhook_id": request.headers.get("X-Shopify-Webhook-Id"),
    })

    outcome = await backend.enqueue(job_name, {"shop_domain": shop_domain, "webhook": data})

    # Inline backends run the job now; one that wants a retry is left
    # unacknowledged so Shopify redelivers it.
    if isinstance(outcome, JobResult) and not outcome.is_terminal:
        logger.warning("webhook.retry_requested", extra={
            "topic": topic,
            "shop_domain": shop_domain,
            "error_category": outcome.error_category.value if outcome.error_category else None,
            "delay_seconds": outcome.delay_seconds,
        })
        return Response(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            headers={"Retry-After": str(max(1, int(outcome.delay_seconds)))},
        )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
