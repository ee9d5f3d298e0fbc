import logging

import requests
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from aiauto.api.deps import get_webhook_handler
from aiauto.services.billing.stripe_webhook import StripeWebhookHandler, WebhookVerificationError

logger = logging.getLogger("uvicorn.error")

router = APIRouter()


@router.post("/api/webhooks/stripe")
async def api_stripe_webhook(
    request: Request,
    handler: StripeWebhookHandler = Depends(get_webhook_handler),
):
    payload_bytes = await request.body()
    signature = request.headers.get("stripe-signature", "")

    try:
        return handler.handle(payload_bytes, signature)
    except WebhookVerificationError as e:
        logger.warning("[billing] webhook signature verification failed: %s", e)
        return JSONResponse(status_code=400, content={"error": "Webhook processing failed"})
    except (RuntimeError, requests.RequestException) as e:
        # missing env or Supabase write failure: 500 so Stripe retries the event
        logger.exception("[billing] webhook processing failed: %s", e)
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})
