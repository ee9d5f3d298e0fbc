import logging
from typing import Any

import httpx

from aiauto.services.generation.errors import UpstreamConfigError, UpstreamError

logger = logging.getLogger("uvicorn.error")


def call_workflow_webhook(url: str, payload: dict, timeout_sec: float, env_name: str = "") -> Any:
    """
    POST the request body to a workflow-automation webhook and return its decoded body.
    - JSON body -> decoded value; anything else -> raw text (normalizer handles both)
    """
    if not url:
        raise UpstreamConfigError(f"{env_name or 'webhook URL'} not configured")

    try:
        r = httpx.post(
            url,
            json=payload,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            timeout=timeout_sec,
        )
    except httpx.TimeoutException as e:
        raise UpstreamError(f"Webhook timed out after {timeout_sec}s") from e
    except httpx.HTTPError as e:
        raise UpstreamError(f"Webhook request failed: {e}") from e

    if r.status_code >= 300:
        logger.error("[generation] webhook HTTP error: %s %s", r.status_code, r.reason_phrase)
        raise UpstreamError(f"Webhook returned {r.status_code}: {r.reason_phrase}")

    logger.info("[generation] webhook response received, status=%s bytes=%s", r.status_code, len(r.content))

    try:
        return r.json()
    except ValueError:
        return r.text
